"""
Test data generator for ComboDemux.

Creates a small dual-indexed paired-end run with reads that:
  • carry the forward probe on R1 and the reverse probe on R2
  • carry them flipped (forward probe on R2): recovered by the reverse run
  • carry an undeclared probe combination: routed to ``unassigned/``
  • carry no probe at all: discarded
  • carry a single probe: pooled, then routed to ``unassigned/`` under
    whichever run labelled one end

Inserts are homopolymers so that cutadapt cannot find a probe inside them.
"""

from __future__ import annotations

import gzip
from pathlib import Path
from typing import Optional

FORWARD_PROBES = {"F1": "ACACTGTG", "F2": "TGAGCACA"}
REVERSE_PROBES = {"R1": "CTCTGAGA", "R2": "GTCAGTAC"}

INSERT = "T" * 30
GARBAGE = "G" * 38

DECLARED = ["F1-R1", "F1-R2", "F2-R1"]
RENAME = [("F1-R1", "soilA"), ("F1-R2", "soilB")]

# (kind, R1 prefix, R2 prefix, count)
LAYOUT = [
    ("F1R1_fwd", FORWARD_PROBES["F1"], REVERSE_PROBES["R1"], 5),
    ("F1R1_flip", REVERSE_PROBES["R1"], FORWARD_PROBES["F1"], 3),
    ("F1R2_fwd", FORWARD_PROBES["F1"], REVERSE_PROBES["R2"], 4),
    ("F1R2_flip", REVERSE_PROBES["R2"], FORWARD_PROBES["F1"], 2),
    ("F2R2_fwd", FORWARD_PROBES["F2"], REVERSE_PROBES["R2"], 2),
    ("garbage", None, None, 3),
    ("F1_only", FORWARD_PROBES["F1"], None, 1),
    ("F2_on_R2", None, FORWARD_PROBES["F2"], 1),
]

# Where every pair of LAYOUT ends up
EXPECTED = {
    "total": 21,
    "run1_kept": 11,
    "pooled": 10,
    "forward_unknown": 9,
    "reverse_unknown": 10,
    "recovered": 5,
    "rescued": 1,
    "discarded": 3,
    "samples": {"soilA": 8, "soilB": 6},
    "unassigned": {"F1-unknown": 1, "F2-R2": 2, "F2-unknown": 1},
    "unmatched": ["F2-R1"],
}


def _read(prefix: Optional[str]) -> str:
    return GARBAGE if prefix is None else prefix + INSERT


def fastq_record(name: str, seq: str, mate: int) -> str:
    return f"@{name} {mate}:N:0:1\n{seq}\n+\n{'I' * len(seq)}\n"


def write_pairs(r1_path: Path, r2_path: Path, pairs: list[tuple[str, str, str]]) -> None:
    """Write ``(name, r1_seq, r2_seq)`` tuples as gzipped FASTQ."""
    with gzip.open(r1_path, "wt") as fh1, gzip.open(r2_path, "wt") as fh2:
        for name, s1, s2 in pairs:
            fh1.write(fastq_record(name, s1, 1))
            fh2.write(fastq_record(name, s2, 2))


def write_probes(path: Path, probes: dict[str, str]) -> Path:
    path.write_text("".join(f">{label}\n{seq}\n" for label, seq in probes.items()))
    return path


def layout_pairs() -> list[tuple[str, str, str]]:
    """All pairs of LAYOUT, interleaved by kind as a sequencer would."""
    per_kind = [
        [(f"{kind}_{i}", _read(p1), _read(p2)) for i in range(count)]
        for kind, p1, p2, count in LAYOUT
    ]
    out = []
    for i in range(max(len(k) for k in per_kind)):
        for kind_pairs in per_kind:
            if i < len(kind_pairs):
                out.append(kind_pairs[i])
    return out


def generate_demux_inputs(
    output_dir: Path,
    *,
    drop_last_r2: bool = False,
    duplicate_label: bool = False,
) -> dict[str, Path]:
    """
    Write reads, probe sets, combo list and rename list.

    Returns
    -------
    dict with keys: read1, read2, forward_probes, reverse_probes,
    combo_list, rename_list.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    pairs = layout_pairs()
    r1, r2 = output_dir / "run_R1.fastq.gz", output_dir / "run_R2.fastq.gz"
    write_pairs(r1, r2, pairs)
    if drop_last_r2:
        with gzip.open(r2, "wt") as fh:
            for name, _, s2 in pairs[:-1]:
                fh.write(fastq_record(name, s2, 2))

    forward = dict(FORWARD_PROBES)
    fwd_path = write_probes(output_dir / "forward.fasta", forward)
    if duplicate_label:
        with open(fwd_path, "a") as fh:
            fh.write(">F1\nGGATCCAA\n")

    combo_list = output_dir / "combos.txt"
    combo_list.write_text("# expected samples\n" + "\n".join(DECLARED) + "\n")
    rename_list = output_dir / "rename.tsv"
    rename_list.write_text("".join(f"{pattern}\t{sid}\n" for pattern, sid in RENAME))

    return {
        "read1": r1,
        "read2": r2,
        "forward_probes": fwd_path,
        "reverse_probes": write_probes(output_dir / "reverse.fasta", REVERSE_PROBES),
        "combo_list": combo_list,
        "rename_list": rename_list,
    }


# ---------------------------------------------------------------------------
# CLI entry point for generating example data
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import sys

    out = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("test_data")
    paths = generate_demux_inputs(out)
    print("Generated test data:")
    for k, v in paths.items():
        print(f"  {k}: {v}  ({v.stat().st_size} bytes)")
