"""
Command-line interface for ComboDemux.

Usage examples
--------------
# Demultiplex a run
combodemux demux \\
    --r1 run_R1.fastq.gz \\
    --r2 run_R2.fastq.gz \\
    --forward-probes forward.fasta \\
    --reverse-probes reverse.fasta \\
    --combo-list combos.txt \\
    --rename-list rename.tsv \\
    --out-dir ./demux \\
    --threads 0

# Build a manifest for an existing directory of per-sample files
combodemux manifest ./demux/samples --prefix-length 6 -o manifest.tsv

# Remove outputs and intermediates of a previous run
combodemux clean --out-dir ./demux

# Check tool availability
combodemux check
"""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from combodemux import __version__
from combodemux.config import DemuxConfig, find_tools
from combodemux.exceptions import DemuxError
from combodemux.models import Orientation
from combodemux.utils import get_logger

console = Console(stderr=True)

BANNER = r"""
   ___                _         ___
  / __|___ _ __  ___ | |__  ___|   \ ___ _ __ _  ___ __
 | (__/ _ \ '  \/ _ \| '_ \/ _ \ |) / -_) '  \ || \ \ /
  \___\___/_|_|_\___/|_.__/\___/___/\___|_|_|_\_,_/_\_\
  Combinatorial Dual-Index Demultiplexing
"""


def _fail(exc: DemuxError) -> None:
    """Print a diagnostic and exit with the error's code."""
    console.print(f"[bold red]{type(exc).__name__}:[/bold red] {exc}")
    sys.exit(exc.exit_code)


# ======================================================================
# Top-level group
# ======================================================================


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(__version__, prog_name="ComboDemux")
def main():
    """ComboDemux: Combinatorial Dual-Index Demultiplexing of Paired-End Reads."""
    pass


# ======================================================================
# combodemux check: verify external tools
# ======================================================================


@main.command()
def check():
    """Check that the external adapter matcher is installed."""
    console.print(BANNER, style="bold magenta")
    tools = find_tools()
    tbl = Table(title="External Tool Availability", show_lines=True)
    tbl.add_column("Tool", style="bold")
    tbl.add_column("Status")
    tbl.add_column("Path")

    for name, path in tools.items():
        if path:
            tbl.add_row(name, "[green]✔ Found[/green]", path)
        else:
            tbl.add_row(name, "[red]✘ Missing[/red]", "—")

    console.print(tbl)
    if tools.get("cutadapt"):
        console.print("[bold green]Adapter matcher available![/bold green]")
    else:
        console.print(
            "[yellow]cutadapt is missing. Install it and add to PATH.[/yellow]\n"
            "qiime is optional: only needed to import manifest.tsv downstream."
        )


# ======================================================================
# combodemux demux: full pipeline
# ======================================================================


@main.command("demux")
@click.option("--r1", "-1", "read1", required=True, type=click.Path(exists=True), help="R1 FASTQ.")
@click.option("--r2", "-2", "read2", required=True, type=click.Path(exists=True), help="R2 FASTQ.")
@click.option(
    "--forward-probes",
    "-f",
    required=True,
    type=click.Path(exists=True),
    help="FASTA of forward probes (searched on R1).",
)
@click.option(
    "--reverse-probes",
    "-r",
    required=True,
    type=click.Path(exists=True),
    help="FASTA of reverse probes (searched on R2).",
)
@click.option(
    "--combo-list",
    "-c",
    required=True,
    type=click.Path(exists=True),
    help="Expected FWD-REV combo keys, one per line.",
)
@click.option(
    "--rename-list",
    default=None,
    type=click.Path(exists=True),
    help="Two columns: combo glob pattern and sample id.",
)
@click.option(
    "--out-dir", "-o", default="combodemux_output", type=click.Path(), help="Output directory."
)
@click.option("--threads", "-t", default=0, type=click.IntRange(min=0), help="Threads (0 = auto).")
@click.option("--error-rate", "-e", default=0.15, type=float, help="Max probe error rate.")
@click.option("--min-overlap", "-O", default=3, type=int, help="Min probe overlap (bp).")
@click.option("--keep-intermediate", is_flag=True, help="Keep both matcher runs' raw buckets.")
@click.option("--clean", is_flag=True, help="Remove outputs of a previous run first.")
@click.option("--skip-plots", is_flag=True, help="Skip plot generation.")
def demux_cmd(
    read1,
    read2,
    forward_probes,
    reverse_probes,
    combo_list,
    rename_list,
    out_dir,
    threads,
    error_rate,
    min_overlap,
    keep_intermediate,
    clean,
    skip_plots,
):
    """Demultiplex paired reads by forward/reverse probe combination."""
    console.print(BANNER, style="bold magenta")

    cfg = DemuxConfig(
        output_dir=Path(out_dir),
        threads=threads,
        error_rate=error_rate,
        min_overlap=min_overlap,
        keep_intermediate=keep_intermediate,
        make_plots=not skip_plots,
    )
    from combodemux.pipeline import run_pipeline

    try:
        result = run_pipeline(
            Path(read1),
            Path(read2),
            Path(forward_probes),
            Path(reverse_probes),
            Path(combo_list),
            rename_list=Path(rename_list) if rename_list else None,
            cfg=cfg,
            clean=clean,
        )
    except DemuxError as exc:
        _fail(exc)
        return

    # Final summary
    tbl = Table(title="Samples", show_lines=True)
    tbl.add_column("Sample", style="bold cyan")
    tbl.add_column("Combo")
    tbl.add_column("Forward run", justify="right")
    tbl.add_column("Reverse run", justify="right")
    tbl.add_column("Total", justify="right", style="green")

    for g in result.aggregation.samples:
        tbl.add_row(
            g.sample_id,
            str(g.combo),
            f"{g.pairs_from(Orientation.FORWARD_RUN):,}",
            f"{g.pairs_from(Orientation.REVERSE_RUN):,}",
            f"{g.n_pairs:,}",
        )
    console.print(tbl)
    console.print(Panel(result.reconcile.summary(), title="Reconciliation", border_style="blue"))
    if result.warnings:
        console.print(Panel(result.warning_summary(), title="Warnings", border_style="yellow"))


# ======================================================================
# combodemux manifest: standalone manifest builder
# ======================================================================


@main.command("manifest")
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option(
    "--prefix-length", "-n", default=None, type=int, help="Sample id = first N file-name chars."
)
@click.option(
    "--id-list",
    "-i",
    default=None,
    type=click.Path(exists=True),
    help="File with one sample id per line.",
)
@click.option(
    "--output", "-o", default="manifest.tsv", type=click.Path(), help="Manifest path to write."
)
def manifest_cmd(directory, prefix_length, id_list, output):
    """Build an import manifest from {id}.1/.2.fastq.gz files."""
    from combodemux.manifest import (
        build_manifest,
        discover_sample_pairs,
        load_id_list,
        write_manifest,
    )

    get_logger()
    try:
        pairs = discover_sample_pairs(Path(directory))
        entries = build_manifest(
            pairs,
            prefix_length=prefix_length,
            sample_ids=load_id_list(Path(id_list)) if id_list else None,
        )
        path = write_manifest(entries, Path(output))
    except DemuxError as exc:
        _fail(exc)
        return
    console.print(f"[green]Manifest with {len(entries)} samples: {path}[/green]")


# ======================================================================
# combodemux clean: remove previous outputs
# ======================================================================


@main.command("clean")
@click.option("--out-dir", "-o", required=True, type=click.Path(), help="Output directory.")
def clean_cmd(out_dir):
    """Remove outputs and intermediate files of a previous run."""
    from combodemux.pipeline import clean_outputs

    get_logger()
    removed = clean_outputs(DemuxConfig(output_dir=Path(out_dir)))
    console.print(f"[green]Removed {len(removed)} path(s) from {out_dir}[/green]")


if __name__ == "__main__":
    main()
