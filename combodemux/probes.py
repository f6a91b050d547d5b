"""
Adapter probe sets.

A probe-set file is FASTA: one ``>label`` header per probe followed by its
sequence.  A sequence may start with a run of ``N`` wildcards (length
heterogeneity spacers) and a single anchor symbol, written before or after
the wildcard run:

    >F01
    ^NNNNACACTGTG

``^`` anchors the probe at the 5' end of the read and ``X`` forbids internal
matches, following cutadapt's adapter syntax.  Labels must be unique within
a set; duplicates are rejected before any matching work starts.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

from combodemux.exceptions import ConfigurationError
from combodemux.models import COMBO_SEP, UNKNOWN
from combodemux.utils import ensure_parent

ANCHORS = ("^", "X")
_IUPAC = set("ACGTURYSWKMBDHVN")
_LEADING = re.compile(r"^(?P<a1>[\^X]?)(?P<wild>[Nn]*)(?P<a2>[\^X]?)(?P<core>.*)$")


@dataclass(frozen=True)
class AdapterProbe:
    """A single named probe."""

    label: str
    sequence: str  # nucleotide core, wildcards and anchor stripped
    leading_wildcards: int = 0
    anchor: str = ""

    @property
    def pattern(self) -> str:
        """Probe as the adapter matcher expects it."""
        return f"{self.anchor}{'N' * self.leading_wildcards}{self.sequence}"

    @classmethod
    def from_raw(cls, label: str, raw: str, source: Optional[Path] = None) -> "AdapterProbe":
        """Split a raw FASTA sequence into anchor, wildcard run and core."""
        m = _LEADING.match(raw.strip())
        a1, wild, a2, core = m.group("a1"), m.group("wild"), m.group("a2"), m.group("core")
        if a1 and a2:
            raise ConfigurationError("more than one anchor symbol", source, label)
        if not core:
            raise ConfigurationError("probe has no nucleotides after its wildcards", source, label)
        bad = sorted(set(core.upper()) - _IUPAC)
        if bad:
            raise ConfigurationError(
                f"invalid symbol(s) {''.join(bad)!r} in probe sequence", source, label
            )
        return cls(label=label, sequence=core, leading_wildcards=len(wild), anchor=a1 or a2)


@dataclass(frozen=True)
class ProbeSet:
    """Ordered, label-unique collection of probes loaded from one file."""

    probes: tuple[AdapterProbe, ...]
    source: Optional[Path] = None
    _index: dict = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        index: dict[str, AdapterProbe] = {}
        for probe in self.probes:
            if probe.label in index:
                raise ConfigurationError("duplicate probe label", self.source, probe.label)
            index[probe.label] = probe
        object.__setattr__(self, "_index", index)

    def __len__(self) -> int:
        return len(self.probes)

    def __iter__(self) -> Iterator[AdapterProbe]:
        return iter(self.probes)

    def __contains__(self, label: object) -> bool:
        return label in self._index

    def __getitem__(self, label: str) -> AdapterProbe:
        return self._index[label]

    @property
    def labels(self) -> list[str]:
        return [p.label for p in self.probes]

    def to_fasta(self, path: Path) -> Path:
        """Write the set in matcher syntax."""
        path = ensure_parent(Path(path))
        with open(path, "w", encoding="utf-8") as fh:
            for probe in self.probes:
                fh.write(f">{probe.label}\n{probe.pattern}\n")
        return path


def _check_label(label: str, source: Optional[Path]) -> None:
    if not label:
        raise ConfigurationError("empty probe label", source)
    if label == UNKNOWN:
        raise ConfigurationError(f"'{UNKNOWN}' is reserved for unmatched ends", source, label)
    if COMBO_SEP in label or "/" in label:
        raise ConfigurationError(
            f"probe labels may not contain '{COMBO_SEP}' or '/'", source, label
        )


def parse_probe_fasta(text: str, source: Optional[Path] = None) -> ProbeSet:
    """Parse probe-set FASTA text."""
    entries: list[tuple[str, list[str]]] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith(";"):
            continue
        if line.startswith(">"):
            fields = line[1:].split()
            entries.append((fields[0] if fields else "", []))
        elif not entries:
            raise ConfigurationError(f"line {lineno}: sequence before first '>' header", source)
        else:
            entries[-1][1].append(line)

    if not entries:
        raise ConfigurationError("no probes found", source)

    probes = []
    for label, chunks in entries:
        _check_label(label, source)
        if not chunks:
            raise ConfigurationError("probe has no sequence", source, label)
        probes.append(AdapterProbe.from_raw(label, "".join(chunks), source))
    return ProbeSet(tuple(probes), source)


def load_probe_set(path: Path) -> ProbeSet:
    """Load and validate a probe-set FASTA file."""
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError("probe-set file not found", path)
    return parse_probe_fasta(path.read_text(encoding="utf-8"), source=path)
