"""
Combination aggregation.

Merges the forward-run and reverse-run buckets that share a combo key into
one file pair per sample.  Forward-run pairs come first, then reverse-run
pairs, each in the order the matcher wrote them.  Because the reverse run
was fed swapped inputs, its ``.1`` files already hold the forward-probe
mate, so every sample's ``.1`` file is in the same orientation.

Combos outside the declared list are never dropped: they are written to an
``unassigned/`` review bucket and reported.
"""

from __future__ import annotations

import concurrent.futures
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from combodemux.config import DemuxConfig
from combodemux.exceptions import (
    DemuxWarning,
    ReconciliationError,
    UnassignedComboWarning,
    UnmatchedComboWarning,
)
from combodemux.models import ComboKey, FilePair, MatchAssignment, SampleGroup
from combodemux.utils import concatenate_pairs, get_logger


@dataclass
class AggregationResult:
    """Per-sample outputs plus everything routed elsewhere."""

    samples: list[SampleGroup] = field(default_factory=list)
    unassigned: list[SampleGroup] = field(default_factory=list)
    unmatched: list[SampleGroup] = field(default_factory=list)
    warnings: list[DemuxWarning] = field(default_factory=list)

    def sample_pairs(self) -> dict[str, FilePair]:
        """sample id → written file pair, declared order."""
        return {g.sample_id: FilePair(g.r1, g.r2) for g in self.samples}

    @property
    def assigned_pairs(self) -> int:
        return sum(g.n_pairs for g in self.samples)

    @property
    def unassigned_pairs(self) -> int:
        return sum(g.n_pairs for g in self.unassigned)


def output_pair(directory: Path, name: str) -> FilePair:
    """``{name}.1.fastq.gz`` / ``{name}.2.fastq.gz`` inside *directory*."""
    return FilePair(Path(directory) / f"{name}.1.fastq.gz", Path(directory) / f"{name}.2.fastq.gz")


def group_assignments(
    *runs: Iterable[MatchAssignment],
) -> dict[ComboKey, list[MatchAssignment]]:
    """Group buckets by combo key, keeping run order then bucket order."""
    groups: dict[ComboKey, list[MatchAssignment]] = {}
    for run in runs:
        for assignment in run:
            if assignment.n_pairs:
                groups.setdefault(assignment.combo, []).append(assignment)
    return groups


def _write_group(job: tuple[SampleGroup, FilePair, int]) -> SampleGroup:
    group, dest, compresslevel = job
    written = concatenate_pairs([m.files for m in group.members], dest, compresslevel=compresslevel)
    if written != group.n_pairs:
        raise ReconciliationError(
            f"Combo {group.combo}: wrote {written:,} pairs, expected {group.n_pairs:,}"
        )
    group.r1, group.r2 = dest
    return group


def aggregate_combos(
    run1_assigned: list[MatchAssignment],
    run2_assigned: list[MatchAssignment],
    declared: list[ComboKey],
    samples_dir: Path,
    unassigned_dir: Path,
    *,
    sample_ids: Optional[dict[ComboKey, str]] = None,
    cfg: Optional[DemuxConfig] = None,
) -> AggregationResult:
    """
    Merge both orientation runs into per-sample file pairs.

    Parameters
    ----------
    run1_assigned, run2_assigned : list of MatchAssignment
        Buckets kept from the forward and reverse runs.
    declared : list of ComboKey
        Expected combos, in the order samples should be reported.
    samples_dir : Path
        Destination for ``{sample_id}.1/.2.fastq.gz``.
    unassigned_dir : Path
        Destination for undeclared combos.
    sample_ids : dict, optional
        combo → sample id; defaults to the textual combo key.
    cfg : DemuxConfig, optional

    Returns
    -------
    AggregationResult
    """
    log = get_logger()
    if cfg is None:
        cfg = DemuxConfig()
    sample_ids = sample_ids or {}

    groups = group_assignments(run1_assigned, run2_assigned)
    result = AggregationResult()
    jobs: list[tuple[SampleGroup, FilePair, int]] = []

    # ---- Declared combos ----
    for combo in declared:
        sample_id = sample_ids.get(combo, str(combo))
        group = SampleGroup(combo, sample_id, groups.pop(combo, []))
        if group.observed:
            result.samples.append(group)
            jobs.append((group, output_pair(samples_dir, sample_id), cfg.compresslevel))
        else:
            result.unmatched.append(group)
            warning = UnmatchedComboWarning(combo, sample_id)
            result.warnings.append(warning)
            log.warning(str(warning))

    # ---- Undeclared combos: review bucket ----
    for combo in sorted(groups):
        group = SampleGroup(combo, str(combo), groups[combo])
        dest = output_pair(unassigned_dir, str(combo))
        result.unassigned.append(group)
        jobs.append((group, dest, cfg.compresslevel))
        warning = UnassignedComboWarning(combo, group.n_pairs, dest.r1.parent)
        result.warnings.append(warning)
        log.warning(str(warning))

    # ---- Write every group; combos are independent ----
    workers = max(1, min(cfg.effective_threads, len(jobs)))
    log.info(f"Writing {len(jobs)} combo group(s) with {workers} worker(s)")
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        for group in executor.map(_write_group, jobs):
            log.debug(f"{group.sample_id}: {group.n_pairs:,} pairs → {group.r1.name}")

    log.info(
        f"Samples: {len(result.samples)} written ({result.assigned_pairs:,} pairs), "
        f"{len(result.unmatched)} empty, {len(result.unassigned)} undeclared combo(s) "
        f"({result.unassigned_pairs:,} pairs)"
    )
    return result
