"""
Visualisation module for ComboDemux.

Generates demultiplexing summary plots:
  • Horizontal bar chart of read pairs per sample, split by orientation run
  • Forward × reverse probe heatmap of read pairs per combo

Every plot is saved as **both PNG (raster) and PDF (vector)** by default.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import matplotlib

matplotlib.use("Agg")  # non-interactive backend

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from combodemux.config import DemuxConfig
from combodemux.utils import get_logger


# ---------------------------------------------------------------------------
# Global style
# ---------------------------------------------------------------------------

_STYLE_APPLIED = False


def _apply_style() -> None:
    """Apply publication-quality matplotlib defaults once."""
    global _STYLE_APPLIED
    if _STYLE_APPLIED:
        return
    plt.rcParams.update(
        {
            "font.family": "sans-serif",
            "font.sans-serif": ["Arial", "Helvetica", "DejaVu Sans"],
            "font.size": 12,
            "axes.titlesize": 16,
            "axes.titleweight": "bold",
            "axes.labelsize": 13,
            "xtick.labelsize": 11,
            "ytick.labelsize": 11,
            "legend.fontsize": 11,
            "figure.dpi": 150,
            "savefig.dpi": 300,
            "savefig.bbox": "tight",
            "savefig.facecolor": "white",
            "axes.spines.top": False,
            "axes.spines.right": False,
            "axes.grid": False,
        }
    )
    _STYLE_APPLIED = True


def _save(fig: plt.Figure, path: Path, dpi: int = 300, extra_format: str = "png") -> list[Path]:
    """Save figure as both PNG and PDF (plus *extra_format*). Returns list of saved paths."""
    _apply_style()
    path.parent.mkdir(parents=True, exist_ok=True)
    log = get_logger()
    saved: list[Path] = []

    png_path = path.with_suffix(".png")
    fig.savefig(png_path, dpi=dpi, bbox_inches="tight", facecolor="white")
    saved.append(png_path)
    log.info(f"Saved plot → {png_path}")

    pdf_path = path.with_suffix(".pdf")
    fig.savefig(pdf_path, format="pdf", bbox_inches="tight", facecolor="white")
    saved.append(pdf_path)
    log.info(f"Saved plot → {pdf_path}")

    if extra_format not in ("png", "pdf"):
        extra_path = path.with_suffix(f".{extra_format}")
        fig.savefig(extra_path, format=extra_format, bbox_inches="tight", facecolor="white")
        saved.append(extra_path)
        log.info(f"Saved plot → {extra_path}")

    plt.close(fig)
    return saved


# ---------------------------------------------------------------------------
# 1. Read pairs per sample
# ---------------------------------------------------------------------------


def plot_sample_counts(
    counts: pd.DataFrame,
    output_path: Path,
    *,
    title: str = "Read Pairs per Sample",
    cfg: Optional[DemuxConfig] = None,
) -> list[Path]:
    """Stacked horizontal bars: forward-run vs reverse-run pairs per sample."""
    _apply_style()
    if cfg is None:
        cfg = DemuxConfig()

    data = counts[counts["status"] == "sample"].sort_values("total_pairs")
    n = len(data)

    fig, ax = plt.subplots(figsize=(10, max(4, n * 0.4)))
    colors = sns.color_palette("viridis", 2)
    ax.barh(
        data["sample_id"],
        data["forward_run_pairs"],
        color=colors[0],
        edgecolor="white",
        linewidth=0.5,
        label="Forward run",
    )
    ax.barh(
        data["sample_id"],
        data["reverse_run_pairs"],
        left=data["forward_run_pairs"],
        color=colors[1],
        edgecolor="white",
        linewidth=0.5,
        label="Reverse run (recovered)",
    )

    max_val = data["total_pairs"].max() if n else 0
    for y, val in enumerate(data["total_pairs"]):
        ax.text(val + max_val * 0.01, y, f" {val:,.0f}", va="center", ha="left", fontsize=11)

    ax.set_xlabel("Read Pairs", fontsize=13)
    ax.set_title(title, fontsize=16, pad=12)
    if max_val:
        ax.set_xlim(0, max_val * 1.2)
    ax.legend(frameon=False, loc="lower right")
    ax.ticklabel_format(axis="x", style="plain")
    fig.tight_layout()

    return _save(fig, output_path, dpi=cfg.dpi, extra_format=cfg.plot_format)


# ---------------------------------------------------------------------------
# 2. Combo heatmap
# ---------------------------------------------------------------------------


def plot_combo_heatmap(
    matrix: pd.DataFrame,
    output_path: Path,
    *,
    title: str = "Read Pairs per Probe Combination",
    cfg: Optional[DemuxConfig] = None,
) -> list[Path]:
    """Forward (rows) × reverse (columns) probe heatmap (log10 scale)."""
    _apply_style()
    if cfg is None:
        cfg = DemuxConfig()

    log_matrix = np.log10(matrix.clip(lower=1).astype(float))
    n_rows, n_cols = matrix.shape
    fig, ax = plt.subplots(figsize=(max(5, n_cols * 0.8 + 2), max(4, n_rows * 0.5 + 1)))
    sns.heatmap(
        log_matrix,
        annot=matrix.values,
        fmt=".0f",
        annot_kws={"fontsize": 10},
        cmap="YlOrRd",
        cbar_kws={"label": "log₁₀(read pairs)", "shrink": 0.6},
        linewidths=0.8,
        linecolor="white",
        ax=ax,
    )
    ax.set_title(title, fontsize=16, pad=12)
    ax.set_ylabel("Forward probe")
    ax.set_xlabel("Reverse probe")
    ax.tick_params(axis="y", rotation=0)
    fig.tight_layout()

    return _save(fig, output_path, dpi=cfg.dpi, extra_format=cfg.plot_format)


# ---------------------------------------------------------------------------
# Convenience: generate all default plots
# ---------------------------------------------------------------------------


def generate_all_plots(
    counts: pd.DataFrame,
    matrix: pd.DataFrame,
    output_dir: Path,
    *,
    cfg: Optional[DemuxConfig] = None,
) -> list[Path]:
    """Generate the standard set of visualisation outputs (PNG + PDF each)."""
    _apply_style()
    if cfg is None:
        cfg = DemuxConfig()

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    paths: list[Path] = []
    if (counts["status"] == "sample").any():
        paths.extend(plot_sample_counts(counts, output_dir / "sample_counts.png", cfg=cfg))
    if not matrix.empty:
        paths.extend(plot_combo_heatmap(matrix, output_dir / "combo_heatmap.png", cfg=cfg))
    return paths
