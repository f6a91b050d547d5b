"""
Shared utility helpers for ComboDemux.

Covers subprocess execution with real-time logging, FASTQ streaming and
deterministic gzip writing, file-size helpers, and elapsed-time formatting.
"""

from __future__ import annotations

import gzip
import io
import logging
import os
import shutil
import subprocess
import time
from contextlib import contextmanager
from itertools import zip_longest
from pathlib import Path
from typing import IO, Iterable, Iterator, Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler

from combodemux.exceptions import FastqFormatError, InputMismatchError
from combodemux.models import FastqRecord, FilePair, ReadPair

console = Console(stderr=True)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

_logger: Optional[logging.Logger] = None
_log_files: set[Path] = set()


def get_logger(log_file: Optional[Path] = None) -> logging.Logger:
    """Return (and lazily configure) the package-wide logger."""
    global _logger
    if _logger is None:
        _logger = logging.getLogger("combodemux")
        _logger.setLevel(logging.DEBUG)

        # Rich console handler (INFO+)
        rh = RichHandler(console=console, show_path=False, markup=True)
        rh.setLevel(logging.INFO)
        _logger.addHandler(rh)

    # File handler (DEBUG+), one per distinct log file
    if log_file is not None and Path(log_file).resolve() not in _log_files:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fmt = logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s")
        fh.setFormatter(fmt)
        _logger.addHandler(fh)
        _log_files.add(log_file.resolve())

    return _logger


# ---------------------------------------------------------------------------
# Subprocess runner
# ---------------------------------------------------------------------------


def run_cmd(
    cmd: Sequence[str],
    *,
    desc: str = "",
    capture: bool = False,
    check: bool = True,
    env: Optional[dict] = None,
    cwd: Optional[Path] = None,
    timeout: Optional[int] = None,
) -> subprocess.CompletedProcess:
    """
    Execute an external command with logging and error handling.

    Parameters
    ----------
    cmd : list of str
        The command and its arguments.
    desc : str
        Human-readable description printed before execution.
    capture : bool
        If True, capture stdout/stderr and return them.
    check : bool
        If True, raise on non-zero exit code.
    env : dict, optional
        Extra environment variables (merged with os.environ).
    cwd : Path, optional
        Working directory.
    timeout : int, optional
        Maximum seconds to wait.

    Returns
    -------
    subprocess.CompletedProcess
    """
    log = get_logger()

    cmd_str = " ".join(str(c) for c in cmd)
    if desc:
        log.info(f"[bold cyan]{desc}[/bold cyan]")
    log.debug(f"CMD: {cmd_str}")

    merged_env = {**os.environ, **(env or {})}
    start = time.perf_counter()

    try:
        result = subprocess.run(
            [str(c) for c in cmd],
            stdout=subprocess.PIPE if capture else None,
            stderr=subprocess.PIPE if capture else subprocess.STDOUT,
            text=True,
            check=check,
            env=merged_env,
            cwd=str(cwd) if cwd else None,
            timeout=timeout,
        )
    except FileNotFoundError:
        log.error(f"Command not found: {cmd[0]}")
        raise
    except subprocess.CalledProcessError as exc:
        log.error(f"Command failed (exit {exc.returncode}): {cmd_str}")
        if exc.stderr:
            log.error(exc.stderr[:2000])
        raise
    except subprocess.TimeoutExpired:
        log.error(f"Command timed out after {timeout}s: {cmd_str}")
        raise

    elapsed = time.perf_counter() - start
    log.debug(f"Finished in {fmt_elapsed(elapsed)}")
    return result


# ---------------------------------------------------------------------------
# FASTQ streaming helpers (memory-efficient)
# ---------------------------------------------------------------------------


def _opener(path: Path):
    return gzip.open if str(path).endswith(".gz") else open


def iter_fastq(path: Path) -> Iterator[FastqRecord]:
    """Yield records from a (possibly gzipped) FASTQ file in file order."""
    path = Path(path)
    n = 0
    with _opener(path)(path, "rt") as fh:
        while True:
            name = fh.readline()
            if not name:
                return
            if not name.strip():
                continue
            seq, sep, qual = fh.readline(), fh.readline(), fh.readline()
            n += 1
            if not qual:
                raise FastqFormatError("truncated FASTQ record", path, n)
            if not name.startswith("@") or not sep.startswith("+"):
                raise FastqFormatError("malformed FASTQ record", path, n)
            yield FastqRecord(
                name.rstrip("\r\n"),
                seq.rstrip("\r\n"),
                sep.rstrip("\r\n"),
                qual.rstrip("\r\n"),
            )


def count_fastq_reads(path: Path) -> int:
    """Count records in a (possibly gzipped) FASTQ file; truncated records raise."""
    return sum(1 for _ in iter_fastq(path))


def iter_read_pairs(files: FilePair) -> Iterator[ReadPair]:
    """Yield mate pairs from an R1/R2 file pair, failing if one runs out early."""
    for rec1, rec2 in zip_longest(iter_fastq(files.r1), iter_fastq(files.r2)):
        if rec1 is None or rec2 is None:
            raise InputMismatchError("R1 and R2 have different record counts", files.r1, files.r2)
        yield ReadPair(rec1, rec2, files)


@contextmanager
def open_fastq_writer(path: Path, compresslevel: int = 6) -> Iterator[IO[str]]:
    """
    Open *path* for writing FASTQ text.

    ``.gz`` paths are written with a zero gzip mtime so that identical
    records always produce identical bytes.
    """
    path = ensure_parent(Path(path))
    if str(path).endswith(".gz"):
        raw = gzip.GzipFile(path, "wb", compresslevel=compresslevel, mtime=0)
        fh: IO[str] = io.TextIOWrapper(raw, encoding="utf-8", newline="\n")
    else:
        fh = open(path, "w", encoding="utf-8", newline="\n")
    try:
        yield fh
    finally:
        fh.close()


def write_read_pairs(
    pairs: Iterable[ReadPair],
    dest: FilePair,
    *,
    compresslevel: int = 6,
) -> int:
    """Write mate pairs to *dest*; returns the number of pairs written."""
    n = 0
    with open_fastq_writer(dest.r1, compresslevel) as out1, open_fastq_writer(
        dest.r2, compresslevel
    ) as out2:
        for pair in pairs:
            out1.write(pair.forward.to_text())
            out2.write(pair.reverse.to_text())
            n += 1
    return n


def concatenate_pairs(
    sources: Sequence[FilePair],
    dest: FilePair,
    *,
    compresslevel: int = 6,
) -> int:
    """Stream every source pair, in order, into one destination pair."""

    def _chain() -> Iterator[ReadPair]:
        for files in sources:
            yield from iter_read_pairs(files)

    return write_read_pairs(_chain(), dest, compresslevel=compresslevel)


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def file_size_human(path: Path) -> str:
    """Return human-readable file size string."""
    size = path.stat().st_size
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} PB"


def fmt_elapsed(seconds: float) -> str:
    """Format seconds into H:MM:SS or M:SS."""
    h, rem = divmod(int(seconds), 3600)
    m, s = divmod(rem, 60)
    if h:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"


def ensure_parent(path: Path) -> Path:
    """Create parent directories and return *path*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def remove_path(path: Path) -> bool:
    """Delete a file or directory tree; returns True if something was removed."""
    path = Path(path)
    if path.is_dir():
        shutil.rmtree(path)
        return True
    if path.exists():
        path.unlink()
        return True
    return False
