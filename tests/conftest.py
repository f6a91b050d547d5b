"""Pytest fixtures for ComboDemux tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from combodemux.matcher import MatchRun, bucket_paths, collect_match_run
from combodemux.models import UNKNOWN, ComboKey, FilePair, Orientation, ReadPair
from combodemux.probes import ProbeSet
from combodemux.utils import iter_read_pairs, write_read_pairs


class PrefixMatcher:
    """
    In-process matcher: a probe matches when its core sits exactly at the
    start of the read (after its wildcard spacer).  Writes buckets in the
    same layout as cutadapt.
    """

    def __init__(self):
        self.calls: list[tuple[Path, Path, Path, Orientation]] = []

    @staticmethod
    def _label(seq: str, probes: ProbeSet) -> str:
        for probe in probes:
            offset = probe.leading_wildcards
            if seq[offset : offset + len(probe.sequence)].upper() == probe.sequence.upper():
                return probe.label
        return UNKNOWN

    def match(
        self,
        read1: Path,
        read2: Path,
        forward_probes: ProbeSet,
        reverse_probes: ProbeSet,
        output_dir: Path,
        orientation: Orientation,
    ) -> MatchRun:
        self.calls.append((Path(read1), Path(read2), Path(output_dir), orientation))
        buckets: dict[ComboKey, list[ReadPair]] = {}
        for pair in iter_read_pairs(FilePair(Path(read1), Path(read2))):
            combo = ComboKey(
                self._label(pair.forward.sequence, forward_probes),
                self._label(pair.reverse.sequence, reverse_probes),
            )
            buckets.setdefault(combo, []).append(pair)

        Path(output_dir).mkdir(parents=True, exist_ok=True)
        for combo, pairs in buckets.items():
            write_read_pairs(pairs, bucket_paths(output_dir, combo))
        return collect_match_run(output_dir, orientation)


@pytest.fixture
def prefix_matcher() -> PrefixMatcher:
    return PrefixMatcher()


@pytest.fixture(scope="session")
def test_data_dir(tmp_path_factory) -> Path:
    """Generate the demultiplexing inputs once per session."""
    from tests.generate_test_data import generate_demux_inputs

    d = tmp_path_factory.mktemp("combodemux_test")
    generate_demux_inputs(d)
    return d


@pytest.fixture(scope="session")
def demux_inputs(test_data_dir) -> dict[str, Path]:
    return {
        "read1": test_data_dir / "run_R1.fastq.gz",
        "read2": test_data_dir / "run_R2.fastq.gz",
        "forward_probes": test_data_dir / "forward.fasta",
        "reverse_probes": test_data_dir / "reverse.fasta",
        "combo_list": test_data_dir / "combos.txt",
        "rename_list": test_data_dir / "rename.tsv",
    }


@pytest.fixture
def test_read1(demux_inputs) -> Path:
    return demux_inputs["read1"]


@pytest.fixture
def test_read2(demux_inputs) -> Path:
    return demux_inputs["read2"]

