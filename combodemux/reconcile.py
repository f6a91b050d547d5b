"""
Orientation reconciliation.

Library preparation ligates inserts in either direction, so roughly half
of the pairs carry the forward probe on R2 rather than R1.  A single
matcher run labels those ends ``unknown``.  Reconciliation recovers them:

  1. Run the matcher on (R1, R2)                         → forward run
  2. Pool every pair with at least one unknown end
  3. Run the matcher on (pooled R2, pooled R1)           → reverse run
  4. Pairs the reverse run leaves unknown on both ends:
       • partial in the forward run → kept under their forward-run key
       • unknown on both ends in both runs → discarded

Only fully-matched buckets of the forward run are kept from it; every
pooled pair gets exactly one final assignment, so no pair is counted by
both runs.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

from combodemux.config import DemuxConfig
from combodemux.exceptions import InputMismatchError, ReconciliationError
from combodemux.matcher import CutadaptMatcher, Matcher, MatchRun, bucket_paths
from combodemux.models import UNKNOWN, ComboKey, FilePair, MatchAssignment, Orientation, ReadPair
from combodemux.probes import ProbeSet
from combodemux.utils import (
    count_fastq_reads,
    get_logger,
    iter_fastq,
    iter_read_pairs,
    remove_path,
    write_read_pairs,
)

FULLY_UNKNOWN = ComboKey(UNKNOWN, UNKNOWN)


@dataclass
class ReconcileResult:
    """Outcome of both orientation runs."""

    total_pairs: int = 0
    run1: Optional[MatchRun] = None
    run2: Optional[MatchRun] = None
    pooled: Optional[FilePair] = None
    pooled_pairs: int = 0
    forward_unknown: int = 0  # forward-run pairs without a forward label
    reverse_unknown: int = 0  # forward-run pairs without a reverse label
    discarded_pairs: int = 0  # unknown on both ends in both runs
    # forward-run partial pairs the reverse run could not label
    rescued: list[MatchAssignment] = field(default_factory=list)

    @property
    def run1_assigned(self) -> list[MatchAssignment]:
        """Forward-run buckets with both labels known."""
        if self.run1 is None:
            return []
        return [a for a in self.run1.observed() if a.combo.is_known]

    @property
    def forward_assigned(self) -> list[MatchAssignment]:
        """Every bucket whose labels come from the forward run."""
        return self.run1_assigned + self.rescued

    @property
    def run2_assigned(self) -> list[MatchAssignment]:
        """Reverse-run buckets except the fully unknown one."""
        if self.run2 is None:
            return []
        return [a for a in self.run2.observed() if not a.combo.is_fully_unknown]

    @property
    def recovered_pairs(self) -> int:
        """Pooled pairs matched on both ends by the reverse run."""
        return sum(a.n_pairs for a in self.run2_assigned if a.combo.is_known)

    @property
    def rescued_pairs(self) -> int:
        return sum(a.n_pairs for a in self.rescued)

    def summary(self) -> str:
        run1_kept = sum(a.n_pairs for a in self.run1_assigned)
        return (
            f"Input pairs: {self.total_pairs:,}\n"
            f"Forward run: {run1_kept:,} fully matched, {self.pooled_pairs:,} pooled "
            f"(forward unknown {self.forward_unknown:,}, reverse unknown {self.reverse_unknown:,})\n"
            f"Reverse run: {self.recovered_pairs:,} recovered, "
            f"{self.rescued_pairs:,} kept as forward-run partial matches, "
            f"{self.discarded_pairs:,} discarded as unknown on both ends"
        )


def check_pair_counts(read1: Path, read2: Path) -> int:
    """Return the number of pairs, or raise if R1 and R2 disagree."""
    n1, n2 = count_fastq_reads(read1), count_fastq_reads(read2)
    if n1 != n2:
        raise InputMismatchError("R1 and R2 have different record counts", read1, read2, (n1, n2))
    return n1


def _verify_partition(read1: Path, kept: list[MatchAssignment], pooled: FilePair) -> None:
    """
    Fail unless kept buckets plus the pool hold each input pair exactly once.

    Compared as name multisets, so inputs that repeat a read name are fine.
    """
    expected = Counter(rec.pair_name for rec in iter_fastq(read1))
    seen = Counter(rec.pair_name for a in kept for rec in iter_fastq(a.files.r1))
    seen.update(rec.pair_name for rec in iter_fastq(pooled.r1))
    if seen == expected:
        return
    name = sorted((seen - expected) + (expected - seen))[0]
    raise ReconciliationError(
        f"Read pair '{name}' occurs {seen[name]:,} time(s) across kept forward-run buckets "
        f"and the pool, but {expected[name]:,} time(s) in the input"
    )


def _split_leftover(
    leftover: FilePair,
    pooled: FilePair,
    origins: list[ComboKey],
) -> Iterator[tuple[ComboKey, ReadPair]]:
    """
    Pair each reverse-run ``unknown-unknown`` record with its pooled pair.

    The leftover bucket holds untouched pooled pairs (R1/R2 swapped) in pool
    order, so a single forward scan of the pool finds them.  Yields the
    forward-run key and the pooled pair in forward-run orientation.
    """
    pool = zip(origins, iter_read_pairs(pooled))
    for left in iter_read_pairs(leftover):
        for origin, pair in pool:
            if (
                pair.reverse.name == left.forward.name
                and pair.reverse.sequence == left.forward.sequence
            ):
                yield origin, pair
                break
        else:
            raise ReconciliationError(
                f"Reverse-run pair '{left.forward.pair_name}' left unknown on both ends "
                f"was not found in the pool (matcher reordered or altered records)"
            )


def reconcile_orientations(
    read1: Path,
    read2: Path,
    forward_probes: ProbeSet,
    reverse_probes: ProbeSet,
    work_dir: Path,
    *,
    matcher: Optional[Matcher] = None,
    cfg: Optional[DemuxConfig] = None,
    total_pairs: Optional[int] = None,
) -> ReconcileResult:
    """
    Label every read pair by probe combination in both orientations.

    Parameters
    ----------
    read1, read2 : Path
        Raw paired FASTQ files as delivered by the sequencer.
    forward_probes, reverse_probes : ProbeSet
        Validated probe sets.
    work_dir : Path
        Directory for intermediate files; must be empty.
    matcher : Matcher, optional
        Adapter matcher; defaults to cutadapt.
    cfg : DemuxConfig, optional
    total_pairs : int, optional
        Pair count already verified by the caller; skips the recount.

    Returns
    -------
    ReconcileResult with the forward-run and reverse-run assignments.
    """
    log = get_logger()
    if cfg is None:
        cfg = DemuxConfig()
    if matcher is None:
        matcher = CutadaptMatcher(cfg)

    read1, read2 = Path(read1), Path(read2)
    work_dir = Path(work_dir)
    result = ReconcileResult()

    # ---- Pair count check (before any output) ----
    if total_pairs is None:
        total_pairs = check_pair_counts(read1, read2)
    result.total_pairs = total_pairs
    log.info(f"Input: {result.total_pairs:,} read pairs")

    # ================================================================
    # Forward run: R1 carries the forward probe
    # ================================================================
    run1 = matcher.match(
        read1,
        read2,
        forward_probes,
        reverse_probes,
        work_dir / "run1_forward",
        Orientation.FORWARD_RUN,
    )
    result.run1 = run1
    if run1.total_pairs != result.total_pairs:
        raise ReconciliationError(
            f"Forward run accounted for {run1.total_pairs:,} of "
            f"{result.total_pairs:,} input pairs"
        )

    # ================================================================
    # Pool every pair with an unknown end, pairing order preserved
    # ================================================================
    unknown_buckets = [a for a in run1.observed() if not a.combo.is_known]
    result.forward_unknown = sum(a.n_pairs for a in unknown_buckets if a.combo.forward_unknown)
    result.reverse_unknown = sum(a.n_pairs for a in unknown_buckets if a.combo.reverse_unknown)

    result.pooled = FilePair(
        work_dir / "pooled" / "unknown.1.fastq.gz",
        work_dir / "pooled" / "unknown.2.fastq.gz",
    )
    origins: list[ComboKey] = []  # forward-run key of each pooled pair

    def _pool() -> Iterator[ReadPair]:
        for bucket in unknown_buckets:
            for pair in iter_read_pairs(bucket.files):
                origins.append(bucket.combo)
                yield pair

    result.pooled_pairs = write_read_pairs(_pool(), result.pooled, compresslevel=1)
    log.info(
        f"Pooled {result.pooled_pairs:,} pairs with an unknown end "
        f"(forward unknown {result.forward_unknown:,}, "
        f"reverse unknown {result.reverse_unknown:,})"
    )

    if cfg.verify_disjoint:
        _verify_partition(read1, result.run1_assigned, result.pooled)

    # ================================================================
    # Reverse run: swapped inputs, same probe sets
    # ================================================================
    if result.pooled_pairs == 0:
        log.info("No unknown pairs; skipping the reverse orientation run")
        return result

    run2 = matcher.match(
        result.pooled.r2,
        result.pooled.r1,
        forward_probes,
        reverse_probes,
        work_dir / "run2_reverse",
        Orientation.REVERSE_RUN,
    )
    result.run2 = run2
    if run2.total_pairs != result.pooled_pairs:
        raise ReconciliationError(
            f"Reverse run accounted for {run2.total_pairs:,} of "
            f"{result.pooled_pairs:,} pooled pairs"
        )

    # ================================================================
    # Still unknown on both ends: keep forward-run partials, discard the rest
    # ================================================================
    leftover = run2.assignments.get(FULLY_UNKNOWN)
    if leftover is not None and leftover.n_pairs:
        partials: dict[ComboKey, list[ReadPair]] = {}
        for origin, pair in _split_leftover(leftover.files, result.pooled, origins):
            if origin.is_fully_unknown:
                result.discarded_pairs += 1
            else:
                partials.setdefault(origin, []).append(pair)

        for combo in sorted(partials):
            files = bucket_paths(work_dir / "rescued", combo)
            n = write_read_pairs(partials[combo], files, compresslevel=1)
            result.rescued.append(MatchAssignment(combo, Orientation.FORWARD_RUN, files, n))
            log.debug(f"Kept {n:,} forward-run partial pairs as {combo}")

    if leftover is not None:
        remove_path(leftover.files.r1)
        remove_path(leftover.files.r2)

    log.info(
        f"Reverse run recovered {result.recovered_pairs:,} pairs; "
        f"kept {result.rescued_pairs:,} forward-run partial pairs; "
        f"discarded {result.discarded_pairs:,} unknown on both ends"
    )
    return result
