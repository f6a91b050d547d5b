"""
Configuration management for ComboDemux.

Centralises matcher parameters, external tool paths, resource limits,
and the output layout so that every module shares a single source
of truth.
"""

from __future__ import annotations

import importlib.util
import multiprocessing
import platform
import shutil
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import psutil


# ---------------------------------------------------------------------------
# External tool discovery
# ---------------------------------------------------------------------------


def _find_tool(name: str) -> Optional[str]:
    """Return the absolute path to *name* if it is on PATH, else None."""
    return shutil.which(name)


def find_tools() -> dict[str, Optional[str]]:
    """Scan PATH for every external binary ComboDemux may call."""
    names = [
        "cutadapt",
        "qiime",  # downstream import of manifest.tsv; never called directly
    ]
    found: dict[str, Optional[str]] = {}
    for n in names:
        found[n] = _find_tool(n)
    # cutadapt installed as a package but without its script on PATH
    if found.get("cutadapt") is None and importlib.util.find_spec("cutadapt") is not None:
        found["cutadapt"] = f"{sys.executable} -m cutadapt"
    return found


def require_tool(name: str) -> str:
    """Return the path to *name* or raise with a helpful message."""
    path = _find_tool(name)
    if path is None:
        raise EnvironmentError(
            f"Required external tool '{name}' was not found on PATH.\n"
            f"Please install it and make sure it is accessible.\n"
            f"  - cutadapt: https://github.com/marcelm/cutadapt\n"
            f"  - qiime:    https://qiime2.org\n"
        )
    return path


def cutadapt_command() -> list[str]:
    """Command prefix for cutadapt: the PATH script, else ``python -m cutadapt``."""
    path = _find_tool("cutadapt")
    if path is not None:
        return [path]
    if importlib.util.find_spec("cutadapt") is not None:
        return [sys.executable, "-m", "cutadapt"]
    return [require_tool("cutadapt")]


# ---------------------------------------------------------------------------
# System resource helpers
# ---------------------------------------------------------------------------


def total_memory_gb() -> float:
    """Return total physical memory in GiB."""
    return psutil.virtual_memory().total / (1024**3)


def available_cpus() -> int:
    """Number of execution units available to this process."""
    return psutil.cpu_count(logical=True) or multiprocessing.cpu_count()


def resolve_threads(threads: int) -> int:
    """Resolve the ``0 = autodetect`` convention to a concrete worker count."""
    if threads < 0:
        raise ValueError(f"threads must be >= 0, got {threads}")
    return threads if threads > 0 else available_cpus()


# ---------------------------------------------------------------------------
# Pipeline configuration dataclass
# ---------------------------------------------------------------------------


@dataclass
class DemuxConfig:
    """Master configuration object passed through the pipeline."""

    # --- I/O ---
    output_dir: Path = field(default_factory=lambda: Path("combodemux_output"))
    temp_dir: Optional[Path] = None  # defaults to output_dir / "tmp"
    log_file: Optional[Path] = None  # defaults to output_dir / "combodemux.log"
    manifest_name: str = "manifest.tsv"

    # --- Computing resources ---
    threads: int = 0  # 0 = all available CPUs (cutadapt --cores 0)
    compresslevel: int = 6  # gzip level for sample outputs

    # --- Adapter matching (cutadapt) ---
    error_rate: float = 0.15
    min_overlap: int = 3
    no_indels: bool = True
    matcher_extra_args: str = ""  # arbitrary cutadapt flags

    # --- Reconciliation ---
    verify_disjoint: bool = True  # check kept + pooled pairs hold each input pair once
    keep_intermediate: bool = False

    # --- Visualisation ---
    make_plots: bool = True
    plot_format: str = "png"  # png | pdf | svg
    dpi: int = 300

    def __post_init__(self) -> None:
        self.output_dir = Path(self.output_dir)
        if self.temp_dir is None:
            self.temp_dir = self.output_dir / "tmp"
        else:
            self.temp_dir = Path(self.temp_dir)
        if self.log_file is None:
            self.log_file = self.output_dir / "combodemux.log"
        else:
            self.log_file = Path(self.log_file)

    # --- Output layout ---

    @property
    def samples_dir(self) -> Path:
        return self.output_dir / "samples"

    @property
    def unassigned_dir(self) -> Path:
        return self.output_dir / "unassigned"

    @property
    def tables_dir(self) -> Path:
        return self.output_dir / "tables"

    @property
    def plots_dir(self) -> Path:
        return self.output_dir / "plots"

    @property
    def manifest_path(self) -> Path:
        return self.output_dir / self.manifest_name

    @property
    def owned_paths(self) -> list[Path]:
        """Every path under output_dir that a run creates (log file excluded)."""
        return [
            self.temp_dir,
            self.samples_dir,
            self.unassigned_dir,
            self.tables_dir,
            self.plots_dir,
            self.manifest_path,
        ]

    @property
    def effective_threads(self) -> int:
        return resolve_threads(self.threads)

    def ensure_dirs(self) -> None:
        """Create output and temp directories if they do not exist."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.temp_dir.mkdir(parents=True, exist_ok=True)

    @property
    def system_summary(self) -> str:
        mem = total_memory_gb()
        cpu = available_cpus()
        return (
            f"OS={platform.system()} {platform.release()}  "
            f"CPUs={cpu}  RAM={mem:.1f} GiB  "
            f"Threads={self.threads or 'auto'}  ErrorRate={self.error_rate}  "
            f"MinOverlap={self.min_overlap}"
        )
