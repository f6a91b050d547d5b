"""
Full pipeline orchestrator.

Chains every module together:
  Validate → Reconcile orientations → Aggregate combos → Manifest → Tables → Plots

Refuses to start on top of a previous run's intermediate files, because
pooled unknowns would otherwise be counted twice.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import pandas as pd
from rich.console import Console
from rich.panel import Panel

from combodemux.aggregate import AggregationResult, aggregate_combos
from combodemux.combos import load_combo_list, load_rename_list, resolve_sample_ids
from combodemux.config import DemuxConfig
from combodemux.exceptions import (
    ConfigurationError,
    DemuxWarning,
    IntermediateStateError,
    ReconciliationError,
    StaleOutputWarning,
)
from combodemux.manifest import build_manifest, write_manifest
from combodemux.matcher import Matcher
from combodemux.models import ManifestEntry, Orientation
from combodemux.probes import load_probe_set
from combodemux.reconcile import ReconcileResult, check_pair_counts, reconcile_orientations
from combodemux.utils import fmt_elapsed, get_logger, remove_path

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Intermediate state
# ---------------------------------------------------------------------------


def clean_outputs(cfg: DemuxConfig) -> list[Path]:
    """Remove every pipeline-owned path under the output directory."""
    log = get_logger()
    removed = [p for p in cfg.owned_paths if remove_path(p)]
    for p in removed:
        log.info(f"Removed {p}")
    return removed


def check_clean_state(cfg: DemuxConfig, *, clean: bool = False) -> None:
    """Fail if a previous run left intermediate files, unless *clean* removes them."""
    if clean:
        clean_outputs(cfg)
    tmp = cfg.temp_dir
    if tmp.exists() and any(tmp.iterdir()):
        raise IntermediateStateError(
            "Intermediate files from a previous run are present; "
            "rerun with --clean or remove them",
            tmp,
        )


def find_stale_outputs(cfg: DemuxConfig, aggregation: AggregationResult) -> list[Path]:
    """Files in samples/ and unassigned/ that this run did not write."""
    written = {
        Path(p).resolve()
        for g in aggregation.samples + aggregation.unassigned
        for p in (g.r1, g.r2)
        if p is not None
    }
    stale = []
    for directory in (cfg.samples_dir, cfg.unassigned_dir):
        if directory.is_dir():
            stale.extend(
                p for p in sorted(directory.iterdir()) if p.is_file() and p.resolve() not in written
            )
    return stale


# ---------------------------------------------------------------------------
# Result tables
# ---------------------------------------------------------------------------


def sample_counts_frame(aggregation: AggregationResult) -> pd.DataFrame:
    """One row per declared or observed combo."""
    rows = []
    for status, groups in (
        ("sample", aggregation.samples),
        ("empty", aggregation.unmatched),
        ("unassigned", aggregation.unassigned),
    ):
        for g in groups:
            rows.append(
                (
                    g.sample_id,
                    str(g.combo),
                    g.combo.forward,
                    g.combo.reverse,
                    g.pairs_from(Orientation.FORWARD_RUN),
                    g.pairs_from(Orientation.REVERSE_RUN),
                    g.n_pairs,
                    status,
                )
            )
    return pd.DataFrame(
        rows,
        columns=[
            "sample_id",
            "combo",
            "forward",
            "reverse",
            "forward_run_pairs",
            "reverse_run_pairs",
            "total_pairs",
            "status",
        ],
    )


def combo_matrix_frame(counts: pd.DataFrame) -> pd.DataFrame:
    """Forward × reverse matrix of observed read pairs."""
    observed = counts[counts["total_pairs"] > 0]
    if observed.empty:
        return pd.DataFrame()
    matrix = observed.pivot_table(
        index="forward", columns="reverse", values="total_pairs", aggfunc="sum", fill_value=0
    )
    return matrix.sort_index().sort_index(axis=1).astype(int)


def summary_frame(reconcile: ReconcileResult, aggregation: AggregationResult) -> pd.DataFrame:
    run1_kept = sum(a.n_pairs for a in reconcile.run1_assigned)
    rows = [
        ("Input", "read_pairs", reconcile.total_pairs),
        ("Forward run", "fully_matched", run1_kept),
        ("Forward run", "pooled", reconcile.pooled_pairs),
        ("Forward run", "forward_unknown", reconcile.forward_unknown),
        ("Forward run", "reverse_unknown", reconcile.reverse_unknown),
        ("Reverse run", "recovered", reconcile.recovered_pairs),
        ("Reverse run", "kept_forward_partial", reconcile.rescued_pairs),
        ("Reverse run", "discarded_unknown", reconcile.discarded_pairs),
        ("Aggregation", "samples_written", len(aggregation.samples)),
        ("Aggregation", "samples_empty", len(aggregation.unmatched)),
        ("Aggregation", "assigned_pairs", aggregation.assigned_pairs),
        ("Aggregation", "unassigned_combos", len(aggregation.unassigned)),
        ("Aggregation", "unassigned_pairs", aggregation.unassigned_pairs),
    ]
    return pd.DataFrame(rows, columns=["Step", "Metric", "Value"])


def _write_result_tables(
    reconcile: ReconcileResult,
    aggregation: AggregationResult,
    cfg: DemuxConfig,
) -> dict[str, Path]:
    """Write run results as CSV tables for programmatic access."""
    log = get_logger()
    tables_dir = cfg.tables_dir
    tables_dir.mkdir(parents=True, exist_ok=True)
    written: dict[str, Path] = {}

    summary_path = tables_dir / "demux_summary.csv"
    summary_frame(reconcile, aggregation).to_csv(summary_path, index=False)
    written["summary"] = summary_path
    log.info(f"Saved summary table → {summary_path}")

    counts = sample_counts_frame(aggregation)
    counts_path = tables_dir / "sample_counts.csv"
    counts.to_csv(counts_path, index=False)
    written["sample_counts"] = counts_path
    log.info(f"Saved sample counts → {counts_path}")

    matrix = combo_matrix_frame(counts)
    if not matrix.empty:
        matrix_path = tables_dir / "combo_matrix.csv"
        matrix.to_csv(matrix_path)
        written["combo_matrix"] = matrix_path
        log.info(f"Saved combo matrix → {matrix_path}")

    return written


@dataclass
class DemuxResult:
    """Container for all pipeline outputs."""

    reconcile: Optional[ReconcileResult] = None
    aggregation: Optional[AggregationResult] = None
    manifest_path: Optional[Path] = None
    manifest: list[ManifestEntry] = field(default_factory=list)
    tables: dict[str, Path] = field(default_factory=dict)
    plots: list[Path] = field(default_factory=list)
    warnings: list[DemuxWarning] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def partition(self) -> dict[str, int]:
        """Where every input pair ended up."""
        return {
            "samples": self.aggregation.assigned_pairs if self.aggregation else 0,
            "unassigned": self.aggregation.unassigned_pairs if self.aggregation else 0,
            "discarded": self.reconcile.discarded_pairs if self.reconcile else 0,
        }

    def warning_summary(self) -> str:
        if not self.warnings:
            return "No warnings"
        lines = [f"{len(self.warnings)} warning(s):"]
        lines.extend(f"  • {w}" for w in self.warnings)
        return "\n".join(lines)


def run_pipeline(
    read1: Path,
    read2: Path,
    forward_probes: Path,
    reverse_probes: Path,
    combo_list: Path,
    *,
    rename_list: Optional[Path] = None,
    cfg: Optional[DemuxConfig] = None,
    matcher: Optional[Matcher] = None,
    clean: bool = False,
) -> DemuxResult:
    """
    Execute the complete demultiplexing pipeline.

    Parameters
    ----------
    read1, read2 : Path
        Raw paired FASTQ files.
    forward_probes, reverse_probes : Path
        Probe-set FASTA files.
    combo_list : Path
        Declared ``FWD-REV`` combo keys.
    rename_list : Path, optional
        ``pattern sample-id`` rows.
    cfg : DemuxConfig
        Pipeline configuration.
    matcher : Matcher, optional
        Adapter matcher; defaults to cutadapt.
    clean : bool
        Remove previous outputs and intermediates before starting.

    Returns
    -------
    DemuxResult with paths to every output.
    """
    log = get_logger()
    if cfg is None:
        cfg = DemuxConfig()
    read1, read2 = Path(read1), Path(read2)
    t0 = time.perf_counter()
    result = DemuxResult()

    # ================================================================
    # Preconditions: nothing is written until all of these pass
    # ================================================================
    check_clean_state(cfg, clean=clean)

    fwd = load_probe_set(forward_probes)
    rev = load_probe_set(reverse_probes)
    log.info(
        f"Probes: {len(fwd)} forward ({fwd.source.name}), "
        f"{len(rev)} reverse ({rev.source.name})"
    )

    declared = load_combo_list(combo_list, fwd, rev)
    rename = load_rename_list(rename_list) if rename_list is not None else None
    sample_ids = resolve_sample_ids(declared, rename)
    log.info(f"Declared combos: {len(declared)}")

    for path in (read1, read2):
        if not path.is_file():
            raise ConfigurationError("input FASTQ not found", path)
    total_pairs = check_pair_counts(read1, read2)

    get_logger(cfg.log_file)
    cfg.ensure_dirs()
    log.info(f"System: {cfg.system_summary}")
    console.print(
        Panel.fit(
            "[bold magenta]ComboDemux[/bold magenta]: "
            "combinatorial dual-index demultiplexing\n"
            f"Input: {read1.name} + {read2.name}\n"
            f"Output: {cfg.output_dir}",
            border_style="blue",
        )
    )

    # ================================================================
    # Step 1: Orientation reconciliation (two matcher runs)
    # ================================================================
    log.info("[bold]Step 1/4: Orientation Reconciliation[/bold]")
    result.reconcile = reconcile_orientations(
        read1,
        read2,
        fwd,
        rev,
        cfg.temp_dir,
        matcher=matcher,
        cfg=cfg,
        total_pairs=total_pairs,
    )

    # ================================================================
    # Step 2: Combination aggregation
    # ================================================================
    log.info("[bold]Step 2/4: Combination Aggregation[/bold]")
    result.aggregation = aggregate_combos(
        result.reconcile.forward_assigned,
        result.reconcile.run2_assigned,
        declared,
        cfg.samples_dir,
        cfg.unassigned_dir,
        sample_ids=sample_ids,
        cfg=cfg,
    )
    result.warnings.extend(result.aggregation.warnings)

    stale = find_stale_outputs(cfg, result.aggregation)
    if stale:
        warning = StaleOutputWarning(stale)
        result.warnings.append(warning)
        log.warning(str(warning))

    accounted = sum(result.partition.values())
    if accounted != result.reconcile.total_pairs:
        raise ReconciliationError(
            f"{accounted:,} of {result.reconcile.total_pairs:,} input pairs accounted for "
            f"({result.partition})"
        )

    # ================================================================
    # Step 3: Manifest
    # ================================================================
    log.info("[bold]Step 3/4: Manifest[/bold]")
    pairs = result.aggregation.sample_pairs()
    result.manifest = build_manifest(list(pairs.values()), sample_ids=list(pairs))
    result.manifest_path = write_manifest(result.manifest, cfg.manifest_path)

    # ================================================================
    # Step 4: Tables and plots
    # ================================================================
    log.info("[bold]Step 4/4: Summary Tables[/bold]")
    result.tables = _write_result_tables(result.reconcile, result.aggregation, cfg)
    if cfg.make_plots:
        from combodemux.visualize import generate_all_plots

        counts = sample_counts_frame(result.aggregation)
        result.plots = generate_all_plots(
            counts, combo_matrix_frame(counts), cfg.plots_dir, cfg=cfg
        )
    else:
        log.info("Skipping plots")

    if not cfg.keep_intermediate:
        remove_path(cfg.temp_dir)
        log.debug(f"Removed intermediate directory {cfg.temp_dir}")

    # ================================================================
    # Done
    # ================================================================
    result.elapsed_seconds = time.perf_counter() - t0
    log.info(result.reconcile.summary())
    if result.warnings:
        log.warning(result.warning_summary())
    console.print(
        Panel.fit(
            f"[bold green]Demultiplexing completed in {fmt_elapsed(result.elapsed_seconds)}"
            f"[/bold green]\n"
            f"Samples: {len(result.aggregation.samples)}  "
            f"Warnings: {len(result.warnings)}\n"
            f"Manifest: {result.manifest_path}",
            border_style="green",
        )
    )
    return result
