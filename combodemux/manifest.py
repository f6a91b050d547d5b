"""
Import manifest for the downstream microbiome platform.

Writes the tab-separated paired-end manifest (Phred33 V2 layout):

    sample-id   forward-absolute-filepath   reverse-absolute-filepath

Sample identifiers come either from a fixed-length prefix of each file name
or from an explicit id list; both schemes must identify every sample
unambiguously.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from combodemux.exceptions import NamingMismatchError
from combodemux.models import FilePair, ManifestEntry
from combodemux.utils import ensure_parent, get_logger

MANIFEST_COLUMNS = ["sample-id", "forward-absolute-filepath", "reverse-absolute-filepath"]
R1_SUFFIX = ".1.fastq.gz"
R2_SUFFIX = ".2.fastq.gz"


def pair_stem(pair: FilePair) -> str:
    """File name of R1 without the ``.1.fastq.gz`` suffix."""
    name = Path(pair.r1).name
    return name[: -len(R1_SUFFIX)] if name.endswith(R1_SUFFIX) else name


def discover_sample_pairs(directory: Path) -> list[FilePair]:
    """Find ``*.1.fastq.gz`` files with a matching ``.2`` mate, sorted by name."""
    directory = Path(directory)
    pairs = []
    for r1 in sorted(directory.glob(f"*{R1_SUFFIX}")):
        r2 = r1.with_name(r1.name[: -len(R1_SUFFIX)] + R2_SUFFIX)
        if r2.exists():
            pairs.append(FilePair(r1, r2))
        else:
            get_logger().warning(f"No reverse mate for {r1.name}; skipped")
    return pairs


def _id_matches(stem: str, sample_id: str) -> bool:
    if stem == sample_id:
        return True
    return stem.startswith(sample_id) and not stem[len(sample_id)].isalnum()


def assign_sample_ids(
    pairs: Sequence[FilePair],
    *,
    prefix_length: Optional[int] = None,
    sample_ids: Optional[Sequence[str]] = None,
) -> dict[str, FilePair]:
    """
    Map sample ids to file pairs using exactly one naming scheme.

    Raises NamingMismatchError when ids collide, when an id matches zero or
    several pairs, or when the scheme is not specified exactly once.
    """
    if (prefix_length is None) == (sample_ids is None):
        raise NamingMismatchError("give exactly one of a prefix length or an id list")

    assigned: dict[str, FilePair] = {}

    if prefix_length is not None:
        if prefix_length < 1:
            raise NamingMismatchError(f"prefix length must be positive, got {prefix_length}")
        for pair in pairs:
            stem = pair_stem(pair)
            sample_id = stem[:prefix_length]
            if sample_id in assigned:
                raise NamingMismatchError(
                    f"prefix length {prefix_length} does not distinguish "
                    f"{pair_stem(assigned[sample_id])} from {stem}",
                    sample_id,
                )
            assigned[sample_id] = pair
        return assigned

    for sample_id in sample_ids:
        if sample_id in assigned:
            raise NamingMismatchError("listed more than once", sample_id)
        hits = [p for p in pairs if pair_stem(p) == sample_id]
        if not hits:
            hits = [p for p in pairs if _id_matches(pair_stem(p), sample_id)]
        if not hits:
            raise NamingMismatchError("no file pair matches this id", sample_id)
        if len(hits) > 1:
            raise NamingMismatchError(
                f"matches {len(hits)} file pairs: {', '.join(pair_stem(p) for p in hits)}",
                sample_id,
            )
        assigned[sample_id] = hits[0]
    return assigned


def build_manifest(
    pairs: Sequence[FilePair],
    *,
    prefix_length: Optional[int] = None,
    sample_ids: Optional[Sequence[str]] = None,
) -> list[ManifestEntry]:
    """Build manifest rows with absolute paths."""
    assigned = assign_sample_ids(pairs, prefix_length=prefix_length, sample_ids=sample_ids)
    return [
        ManifestEntry(sid, Path(p.r1).resolve(), Path(p.r2).resolve())
        for sid, p in assigned.items()
    ]


def manifest_frame(entries: Sequence[ManifestEntry]) -> pd.DataFrame:
    return pd.DataFrame(
        [(e.sample_id, str(e.forward_path), str(e.reverse_path)) for e in entries],
        columns=MANIFEST_COLUMNS,
    )


def write_manifest(entries: Sequence[ManifestEntry], path: Path) -> Path:
    """Write the manifest TSV."""
    path = ensure_parent(Path(path))
    manifest_frame(entries).to_csv(path, sep="\t", index=False)
    get_logger().info(f"Saved manifest ({len(entries)} samples) → {path}")
    return path


def read_manifest(path: Path) -> list[ManifestEntry]:
    """Read a manifest TSV written by :func:`write_manifest`."""
    df = pd.read_csv(path, sep="\t", dtype=str, comment="#")
    missing = [c for c in MANIFEST_COLUMNS if c not in df.columns]
    if missing:
        raise NamingMismatchError(f"{path} lacks column(s): {', '.join(missing)}")
    return [
        ManifestEntry(
            row["sample-id"],
            Path(row["forward-absolute-filepath"]),
            Path(row["reverse-absolute-filepath"]),
        )
        for _, row in df.iterrows()
    ]


def load_id_list(path: Path) -> list[str]:
    """One sample id per line; blank lines and ``#`` comments ignored."""
    ids = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            ids.append(line.split()[0])
    return ids
