"""Data models for ComboDemux."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import NamedTuple, Optional

UNKNOWN = "unknown"
COMBO_SEP = "-"


class Orientation(Enum):
    """Strand direction assumed by one matcher run."""

    FORWARD_RUN = "forward"
    REVERSE_RUN = "reverse"


class ComboKey(NamedTuple):
    """(forward label, reverse label) identifying one physical sample."""

    forward: str
    reverse: str

    def __str__(self) -> str:
        return f"{self.forward}{COMBO_SEP}{self.reverse}"

    @classmethod
    def parse(cls, text: str) -> "ComboKey":
        """Parse ``FWD-REV`` (or two whitespace-separated labels)."""
        text = text.strip()
        parts = text.split()
        if len(parts) == 1:
            parts = text.split(COMBO_SEP)
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"Cannot parse combo key '{text}' (expected FWD{COMBO_SEP}REV)")
        return cls(parts[0], parts[1])

    @property
    def forward_unknown(self) -> bool:
        return self.forward == UNKNOWN

    @property
    def reverse_unknown(self) -> bool:
        return self.reverse == UNKNOWN

    @property
    def is_known(self) -> bool:
        """True when both ends matched a probe."""
        return not (self.forward_unknown or self.reverse_unknown)

    @property
    def is_fully_unknown(self) -> bool:
        return self.forward_unknown and self.reverse_unknown


class FilePair(NamedTuple):
    """R1/R2 file pair."""

    r1: Path
    r2: Path


class FastqRecord(NamedTuple):
    """One four-line FASTQ record (line terminators stripped)."""

    name: str
    sequence: str
    separator: str
    quality: str

    @property
    def pair_name(self) -> str:
        """Read name without the leading ``@``, comment, or ``/1``/``/2`` suffix."""
        name = self.name[1:].split(None, 1)[0] if self.name else ""
        if name.endswith(("/1", "/2")):
            name = name[:-2]
        return name

    def to_text(self) -> str:
        return f"{self.name}\n{self.sequence}\n{self.separator}\n{self.quality}\n"


@dataclass(frozen=True)
class ReadPair:
    """A mate pair together with the file pair it was read from."""

    forward: FastqRecord
    reverse: FastqRecord
    source: Optional[FilePair] = None


@dataclass
class MatchAssignment:
    """One output bucket of a matcher run: every pair assigned to *combo*."""

    combo: ComboKey
    orientation: Orientation
    files: FilePair
    n_pairs: int = 0


@dataclass
class SampleGroup:
    """Read pairs from both runs sharing a combo key."""

    combo: ComboKey
    sample_id: str
    members: list[MatchAssignment] = field(default_factory=list)
    r1: Optional[Path] = None
    r2: Optional[Path] = None

    @property
    def n_pairs(self) -> int:
        return sum(m.n_pairs for m in self.members)

    def pairs_from(self, orientation: Orientation) -> int:
        return sum(m.n_pairs for m in self.members if m.orientation is orientation)

    @property
    def observed(self) -> bool:
        return self.n_pairs > 0


@dataclass(frozen=True)
class ManifestEntry:
    """One row of the downstream import manifest."""

    sample_id: str
    forward_path: Path
    reverse_path: Path
