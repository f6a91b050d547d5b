"""
ComboDemux: Orientation-aware demultiplexing of paired-end reads with
combinatorial dual indexes.

Pipeline: FASTQ pair → Match (cutadapt, forward orientation) → Pool unknowns
→ Match (cutadapt, swapped orientation) → Aggregate per combo → Manifest
"""

__version__ = "0.2.0"
__author__ = "ComboDemux Team"
