"""
Declared combo keys and sample naming.

The combo list names every (forward, reverse) probe pair expected in the
run, one ``FWD-REV`` key per line.  The optional rename list maps combo
keys to sample identifiers with glob patterns:

    # pattern   sample-id
    F01-R01     soil_A
    F02-*       blank_plate2
"""

from __future__ import annotations

import fnmatch
import re
from pathlib import Path
from typing import Optional

from combodemux.exceptions import ConfigurationError, NamingMismatchError
from combodemux.models import ComboKey
from combodemux.probes import ProbeSet

_SAMPLE_ID = re.compile(r"^[^\s/\\]+$")


def _content_lines(path: Path) -> list[tuple[int, str]]:
    """Non-blank, non-comment lines with their 1-based line numbers."""
    out = []
    for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        line = line.strip()
        if line and not line.startswith("#"):
            out.append((lineno, line))
    return out


def load_combo_list(
    path: Path,
    forward_probes: Optional[ProbeSet] = None,
    reverse_probes: Optional[ProbeSet] = None,
) -> list[ComboKey]:
    """
    Read the declared combo keys, in file order.

    When probe sets are given, every label must exist in its set.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError("combo list not found", path)

    combos: list[ComboKey] = []
    seen: set[ComboKey] = set()
    for lineno, line in _content_lines(path):
        try:
            key = ComboKey.parse(line)
        except ValueError as exc:
            raise ConfigurationError(f"line {lineno}: {exc}", path) from exc
        if key in seen:
            raise ConfigurationError(f"line {lineno}: duplicate combo key", path, str(key))
        if forward_probes is not None and key.forward not in forward_probes:
            raise ConfigurationError(
                f"line {lineno}: forward label not in forward probe set", path, key.forward
            )
        if reverse_probes is not None and key.reverse not in reverse_probes:
            raise ConfigurationError(
                f"line {lineno}: reverse label not in reverse probe set", path, key.reverse
            )
        seen.add(key)
        combos.append(key)

    if not combos:
        raise ConfigurationError("combo list is empty", path)
    return combos


def load_rename_list(path: Path) -> list[tuple[str, str]]:
    """Read ``(pattern, sample_id)`` rows in file order."""
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError("rename list not found", path)

    rows = []
    for lineno, line in _content_lines(path):
        fields = line.split()
        if len(fields) != 2:
            raise ConfigurationError(
                f"line {lineno}: expected 'pattern sample-id', got {len(fields)} field(s)", path
            )
        rows.append((fields[0], fields[1]))
    return rows


def resolve_sample_ids(
    combos: list[ComboKey],
    rename: Optional[list[tuple[str, str]]] = None,
) -> dict[ComboKey, str]:
    """
    Map each declared combo to its sample id.

    Combos no pattern matches keep their textual key.  Raises
    NamingMismatchError on conflicting patterns or colliding ids.
    """
    rename = rename or []
    resolved: dict[ComboKey, str] = {}
    owners: dict[str, ComboKey] = {}

    for combo in combos:
        key = str(combo)
        ids = {sid for pattern, sid in rename if fnmatch.fnmatchcase(key, pattern)}
        if len(ids) > 1:
            raise NamingMismatchError(
                f"combo {key} matches rename patterns with different ids: {', '.join(sorted(ids))}"
            )
        sample_id = ids.pop() if ids else key
        if not _SAMPLE_ID.match(sample_id):
            raise NamingMismatchError("ids may not contain whitespace or path separators", sample_id)
        if sample_id in owners:
            raise NamingMismatchError(
                f"assigned to both {owners[sample_id]} and {key}", sample_id
            )
        owners[sample_id] = combo
        resolved[combo] = sample_id

    return resolved
