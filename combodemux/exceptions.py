"""Custom exceptions and warnings for ComboDemux."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

PathLike = Union[str, Path]


class DemuxError(Exception):
    """Base exception for all errors that abort a demultiplexing run."""

    exit_code = 1


class ConfigurationError(DemuxError):
    """Exception raised for invalid probe sets, combo lists or settings."""

    exit_code = 3

    def __init__(self, message: str, source: Optional[PathLike] = None, label: str = None):
        self.source = source
        self.label = label

        if source is not None:
            message = f"Configuration error in {source}: {message}"
        if label is not None:
            message = f"{message} (label: {label})"

        super().__init__(message)


class InputMismatchError(DemuxError):
    """Exception raised when R1 and R2 inputs do not describe the same pairs."""

    exit_code = 4

    def __init__(
        self,
        message: str,
        read1: Optional[PathLike] = None,
        read2: Optional[PathLike] = None,
        counts: Optional[tuple[int, int]] = None,
    ):
        self.read1 = read1
        self.read2 = read2
        self.counts = counts

        if read1 is not None and read2 is not None:
            message = f"{message}: {read1} vs {read2}"
        if counts is not None:
            message = f"{message} ({counts[0]:,} vs {counts[1]:,} records)"

        super().__init__(message)


class NamingMismatchError(DemuxError):
    """Exception raised when sample identifiers are ambiguous or missing."""

    exit_code = 5

    def __init__(self, message: str, sample_id: str = None):
        self.sample_id = sample_id

        if sample_id is not None:
            message = f"Sample '{sample_id}': {message}"

        super().__init__(message)


class IntermediateStateError(DemuxError):
    """Exception raised when a previous run left intermediate files behind."""

    exit_code = 6

    def __init__(self, message: str, path: Optional[PathLike] = None):
        self.path = path

        if path is not None:
            message = f"{message}: {path}"

        super().__init__(message)


class FastqFormatError(DemuxError):
    """Exception raised for truncated or malformed FASTQ records."""

    def __init__(self, message: str, path: Optional[PathLike] = None, record: int = None):
        self.path = path
        self.record = record

        if path is not None:
            message = f"{path}: {message}"
        if record is not None:
            message = f"{message} (record {record:,})"

        super().__init__(message)


class MatcherError(DemuxError):
    """Exception raised when the external adapter matcher fails."""

    def __init__(self, message: str, command: str = None, return_code: int = None):
        self.command = command
        self.return_code = return_code

        if command is not None:
            message = f"Adapter matcher failed: {command}\n{message}"
        if return_code is not None:
            message = f"{message} (exit code: {return_code})"

        super().__init__(message)


class ReconciliationError(DemuxError):
    """Exception raised when the two orientation runs do not partition the input."""


# ---------------------------------------------------------------------------
# Non-fatal conditions (collected, reported at the end of a run)
# ---------------------------------------------------------------------------


class DemuxWarning(UserWarning):
    """Base class for conditions that are reported but do not halt a run."""


class UnmatchedComboWarning(DemuxWarning):
    """A declared combo key received no read pairs in either run."""

    def __init__(self, combo, sample_id: str):
        self.combo = combo
        self.sample_id = sample_id
        super().__init__(
            f"Declared combo {combo} (sample '{sample_id}') has no read pairs; "
            f"no output files written"
        )


class UnassignedComboWarning(DemuxWarning):
    """An observed combo key is not declared; its reads went to the review bucket."""

    def __init__(self, combo, n_pairs: int, path: Optional[Path] = None):
        self.combo = combo
        self.n_pairs = n_pairs
        self.path = path
        super().__init__(
            f"Undeclared combo {combo} with {n_pairs:,} read pairs routed to "
            f"{path if path is not None else 'the unassigned bucket'}"
        )


class StaleOutputWarning(DemuxWarning):
    """Output directories hold files this run did not write (left by an earlier run)."""

    def __init__(self, paths: list):
        self.paths = list(paths)
        shown = ", ".join(Path(p).name for p in self.paths[:5])
        more = f" and {len(self.paths) - 5} more" if len(self.paths) > 5 else ""
        super().__init__(
            f"{len(self.paths)} file(s) from an earlier run remain next to this run's "
            f"outputs ({shown}{more}); rerun with --clean to remove them"
        )
