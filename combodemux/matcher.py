"""
Adapter matching module: wraps **cutadapt** combinatorial demultiplexing.

One matcher run assigns every read pair a forward label (from the probe
found on R1) and a reverse label (from the probe found on R2), each
independently, and writes the pair to ``{forward}-{reverse}.1/.2.fastq.gz``.
Ends without a match get the label ``unknown``.

Matching settings (from DemuxConfig):
  • fixed maximum error rate (``-e``), no indels (``--no-indels``)
  • minimum overlap (``-O``)
  • ``--cores N`` with ``0`` meaning autodetect
A JSON report is always written for the audit trail.
"""

from __future__ import annotations

import json
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol

from combodemux.config import DemuxConfig, cutadapt_command
from combodemux.exceptions import MatcherError, ReconciliationError
from combodemux.models import COMBO_SEP, ComboKey, FilePair, MatchAssignment, Orientation
from combodemux.probes import ProbeSet
from combodemux.utils import count_fastq_reads, file_size_human, get_logger, run_cmd

OUTPUT_SUFFIX_R1 = ".1.fastq.gz"
OUTPUT_SUFFIX_R2 = ".2.fastq.gz"
_BUCKET = re.compile(r"^(?P<fwd>[^/]+?)" + re.escape(COMBO_SEP) + r"(?P<rev>[^/]+)$")


@dataclass
class MatchReport:
    """Parsed summary of a cutadapt run."""

    input_pairs: int = 0
    read1_with_adapter: int = 0
    read2_with_adapter: int = 0
    output_pairs: int = 0

    def summary(self) -> str:
        return (
            f"Pairs: {self.input_pairs:,}  "
            f"R1 with probe: {self.read1_with_adapter:,}  "
            f"R2 with probe: {self.read2_with_adapter:,}"
        )


@dataclass
class MatchRun:
    """Every output bucket of one matcher run."""

    orientation: Orientation
    output_dir: Path
    assignments: dict[ComboKey, MatchAssignment] = field(default_factory=dict)
    report: Optional[MatchReport] = None

    @property
    def total_pairs(self) -> int:
        return sum(a.n_pairs for a in self.assignments.values())

    def observed(self) -> list[MatchAssignment]:
        """Non-empty buckets, sorted by combo key."""
        return [self.assignments[k] for k in sorted(self.assignments) if self.assignments[k].n_pairs]


class Matcher(Protocol):
    """Anything that can label read pairs by probe combination."""

    def match(
        self,
        read1: Path,
        read2: Path,
        forward_probes: ProbeSet,
        reverse_probes: ProbeSet,
        output_dir: Path,
        orientation: Orientation,
    ) -> MatchRun: ...


def parse_cutadapt_json(json_path: Path) -> MatchReport:
    """Extract key counts from cutadapt's JSON report."""
    with open(json_path) as fh:
        data = json.load(fh)

    rc = data.get("read_counts", {})
    return MatchReport(
        input_pairs=rc.get("input", 0),
        read1_with_adapter=rc.get("read1_with_adapter") or 0,
        read2_with_adapter=rc.get("read2_with_adapter") or 0,
        output_pairs=rc.get("output", 0),
    )


def bucket_paths(output_dir: Path, combo: ComboKey) -> FilePair:
    """Where a matcher run writes the pairs assigned to *combo*."""
    return FilePair(
        Path(output_dir) / f"{combo}{OUTPUT_SUFFIX_R1}",
        Path(output_dir) / f"{combo}{OUTPUT_SUFFIX_R2}",
    )


def collect_match_run(
    output_dir: Path,
    orientation: Orientation,
    report: Optional[MatchReport] = None,
) -> MatchRun:
    """
    Discover the ``{fwd}-{rev}.1/.2.fastq.gz`` buckets in *output_dir* and
    count the pairs in each.
    """
    log = get_logger()
    output_dir = Path(output_dir)
    run = MatchRun(orientation=orientation, output_dir=output_dir, report=report)

    for r1 in sorted(output_dir.glob(f"*{OUTPUT_SUFFIX_R1}")):
        stem = r1.name[: -len(OUTPUT_SUFFIX_R1)]
        m = _BUCKET.match(stem)
        if m is None:
            log.debug(f"Ignoring non-bucket file {r1.name}")
            continue
        combo = ComboKey(m.group("fwd"), m.group("rev"))
        files = bucket_paths(output_dir, combo)
        if not files.r2.exists():
            raise ReconciliationError(f"Matcher wrote {r1.name} without its mate {files.r2.name}")
        n1, n2 = count_fastq_reads(files.r1), count_fastq_reads(files.r2)
        if n1 != n2:
            raise ReconciliationError(
                f"Matcher bucket {combo} has {n1:,} R1 but {n2:,} R2 records"
            )
        run.assignments[combo] = MatchAssignment(combo, orientation, files, n1)

    log.debug(
        f"{orientation.value} run: {len(run.observed())} non-empty buckets, "
        f"{run.total_pairs:,} pairs"
    )
    return run


class CutadaptMatcher:
    """Run cutadapt in combinatorial demultiplexing mode."""

    def __init__(self, cfg: Optional[DemuxConfig] = None):
        self.cfg = cfg if cfg is not None else DemuxConfig()

    def build_command(
        self,
        read1: Path,
        read2: Path,
        forward_fasta: Path,
        reverse_fasta: Path,
        output_dir: Path,
        report_path: Path,
    ) -> list[str]:
        cfg = self.cfg
        cmd: list[str] = [
            *cutadapt_command(),
            # Matching
            "-e",
            str(cfg.error_rate),
            *(["--no-indels"] if cfg.no_indels else []),
            "-O",
            str(cfg.min_overlap),
            # Threading (0 = autodetect)
            "--cores",
            str(cfg.threads),
            # Probe sets: forward on R1, reverse on R2
            "-g",
            f"file:{forward_fasta}",
            "-G",
            f"file:{reverse_fasta}",
            # Outputs
            "-o",
            str(Path(output_dir) / f"{{name1}}{COMBO_SEP}{{name2}}{OUTPUT_SUFFIX_R1}"),
            "-p",
            str(Path(output_dir) / f"{{name1}}{COMBO_SEP}{{name2}}{OUTPUT_SUFFIX_R2}"),
            "--json",
            str(report_path),
        ]
        if cfg.matcher_extra_args:
            cmd.extend(cfg.matcher_extra_args.split())
        cmd.extend([str(read1), str(read2)])
        return cmd

    def match(
        self,
        read1: Path,
        read2: Path,
        forward_probes: ProbeSet,
        reverse_probes: ProbeSet,
        output_dir: Path,
        orientation: Orientation,
    ) -> MatchRun:
        """
        Demultiplex one orientation run.

        Parameters
        ----------
        read1, read2 : Path
            Inputs in the order cutadapt should treat as R1 and R2.
        forward_probes, reverse_probes : ProbeSet
            Probes searched on R1 and R2 respectively.
        output_dir : Path
            Fresh directory for this run's buckets and report.
        orientation : Orientation
            Recorded on every resulting assignment.

        Returns
        -------
        MatchRun with one MatchAssignment per bucket written.
        """
        log = get_logger()
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        forward_fasta = forward_probes.to_fasta(output_dir / "forward_probes.fasta")
        reverse_fasta = reverse_probes.to_fasta(output_dir / "reverse_probes.fasta")
        report_path = output_dir / "cutadapt_report.json"

        try:
            cmd = self.build_command(
                read1, read2, forward_fasta, reverse_fasta, output_dir, report_path
            )
        except EnvironmentError as exc:
            raise MatcherError(str(exc)) from exc
        log.info(
            f"Matching {Path(read1).name} + {Path(read2).name} "
            f"({file_size_human(Path(read1))})  [{orientation.value} orientation]"
        )
        try:
            run_cmd(cmd, desc=f"cutadapt ({orientation.value} orientation)", capture=True)
        except subprocess.CalledProcessError as exc:
            raise MatcherError(
                (exc.stderr or "")[-2000:], " ".join(str(c) for c in cmd), exc.returncode
            ) from exc
        except FileNotFoundError as exc:
            raise MatcherError(str(exc), " ".join(str(c) for c in cmd)) from exc

        report = parse_cutadapt_json(report_path) if report_path.exists() else None
        if report is not None:
            log.info(report.summary())
        return collect_match_run(output_dir, orientation, report)
