"""
GPCR Evo — Conservation and Sequence-Logo Statistics.

Per-column statistics of aligned sequences, in two families:

Entropy mode
    Shannon entropy of the residue distribution and the information
    content ``max_bits - H`` that sets sequence-logo stack heights.
    Two deliberate variants:

    * residues only (default): 20-letter alphabet, denominator = number
      of standard residues in the column, ``max_bits = log2(20)``;
      used for single-alignment logos.
    * gaps as symbol: gaps (and non-standard letters) form a 21st
      symbol, denominator = all sequences, ``max_bits = log2(21)``;
      used when two alignments are drawn against each other, so gappy
      columns shrink.

Match mode
    Percentage of sequences matching the most frequent residue or a
    residue of its similarity group, over the whole alignment (gapped
    sequences included), plus the cross-alignment vote and the pairwise
    overlap matrix built on it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray
from scipy.stats import entropy as shannon_entropy

from gpcrevo.fasta import GAP


# ═══════════════════════════════════════════════════════════════════════
# Constants
# ═══════════════════════════════════════════════════════════════════════

AMINO_ACIDS: str = "ACDEFGHIKLMNPQRSTVWY"
"""The 20 standard amino acids (one-letter codes, alphabetical)."""

AA_SET = frozenset(AMINO_ACIDS)

SIMILARITY_GROUPS: Dict[str, Tuple[str, ...]] = {
    "acidic": ("E", "D"),
    "aromatic": ("W", "Y", "H", "F"),
    "basic": ("R", "K"),
    "polar": ("Q", "N"),
    "hydrophobic_vi": ("V", "I"),
    "hydrophobic_ml": ("M", "L"),
}
"""Residues that count as matches of each other in match mode."""

AA_GROUP: Dict[str, Tuple[str, ...]] = {
    aa: members for members in SIMILARITY_GROUPS.values() for aa in members
}

MAX_BITS: float = math.log2(20)
"""Maximum information content with a 20-letter alphabet."""

MAX_BITS_WITH_GAPS: float = math.log2(21)
"""Maximum information content when gaps are a 21st symbol."""

MATCH_MODE_MAX_BITS: float = 4.32
"""Stack height of a 100 % match column in match mode (≈ log2(20))."""

DEFAULT_MIN_OCCUPANCY: float = 0.1
"""Fraction of sequences that must have a residue for a column to be profiled."""

DEFAULT_OVERLAP_THRESHOLD: float = 50.0
"""Conservation percentage used by the overlap matrix."""

DEFAULT_BLUR_THRESHOLD: float = 0.0
"""Match-mode cross-alignment percentage below which positions are blurred."""

LOGO_MODES: Tuple[str, ...] = ("entropy", "entropy_gaps", "match")


# ═══════════════════════════════════════════════════════════════════════
# Data classes
# ═══════════════════════════════════════════════════════════════════════


@dataclass
class PositionLogoData:
    """Logo statistics of one alignment column.

    Attributes
    ----------
    column : int
        0-based alignment column.
    residue_counts : Dict[str, int]
        Count per standard amino acid present.
    total_sequences : int
        Denominator of ``frequencies`` (residue count, or all sequences
        when gaps are modelled).
    information_content : float
        Stack height in bits.
    letter_heights : Dict[str, float]
        ``frequency × information_content`` per amino acid.
    frequencies : Dict[str, float]
        Relative frequency per amino acid.
    entropy : float
        Shannon entropy in bits (0 in match mode).
    gap_count : int
        Gaps and non-standard characters in the column.
    match_percentage : float, optional
        Match-mode conservation percentage.
    most_conserved_aa : str, optional
        Match-mode most frequent residue.
    """
    column: int
    residue_counts: Dict[str, int]
    total_sequences: int
    information_content: float
    letter_heights: Dict[str, float]
    frequencies: Dict[str, float] = field(default_factory=dict)
    entropy: float = 0.0
    gap_count: int = 0
    match_percentage: Optional[float] = None
    most_conserved_aa: Optional[str] = None


@dataclass
class MatchConservation:
    """Match-mode conservation of one column."""
    column: int
    match_percentage: float
    most_conserved_aa: str
    residue_counts: Dict[str, int]
    match_counts: Dict[str, int]
    total_sequences: int
    n_residues: int


@dataclass
class CrossAlignmentConservation:
    """Agreement of the per-alignment top residues at one column.

    Attributes
    ----------
    column : int
        0-based alignment column.
    match_percentage : float
        Matching alignments over all alignments considered.
    most_conserved_aa : str
        Residue voted for by most alignments ("" if no votes).
    alignment_aas : Dict[str, str]
        Top residue per alignment that has residues at this column.
    match_count : int
        Alignments whose top residue equals or is similar to the winner.
    total_alignments : int
        All alignments, including those with only gaps here.
    """
    column: int
    match_percentage: float
    most_conserved_aa: str
    alignment_aas: Dict[str, str]
    match_count: int
    total_alignments: int


@dataclass
class LogoPosition:
    """One displayed logo position of one alignment."""
    position: int
    column: int
    data: Optional[PositionLogoData]
    cross_alignment: CrossAlignmentConservation
    blurred: bool = False


@dataclass
class ColumnConservation:
    """Overlap-matrix statistics of one column."""
    column: int
    most_conserved_aa: str
    conservation_frequency: float
    residue_counts: Dict[str, int]
    total_sequences: int


# ═══════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════


def _residue_at(sequence: str, column: int) -> str:
    if 0 <= column < len(sequence):
        return sequence[column].upper()
    return GAP


def count_residues(sequences: Sequence[str], column: int) -> Dict[str, int]:
    """Standard amino-acid counts at a column, in first-seen order."""
    counts: Dict[str, int] = {}
    for seq in sequences:
        residue = _residue_at(seq, column)
        if residue in AA_SET:
            counts[residue] = counts.get(residue, 0) + 1
    return counts


def most_frequent(counts: Mapping[str, int]) -> str:
    """Key with the highest count; the first one wins ties ("" if empty)."""
    best, best_count = "", 0
    for residue, count in counts.items():
        if count > best_count:
            best, best_count = residue, count
    return best


def are_similar(aa1: str, aa2: str) -> bool:
    """Identical, or members of the same similarity group."""
    if aa1 == aa2:
        return True
    return aa2 in AA_GROUP.get(aa1, ())


def _alignment_length(sequences: Iterable[str]) -> int:
    return max((len(s) for s in sequences), default=0)


# ═══════════════════════════════════════════════════════════════════════
# Entropy mode
# ═══════════════════════════════════════════════════════════════════════


def position_logo_data(
    sequences: Sequence[str],
    column: int,
    gaps_as_symbol: bool = False,
) -> Optional[PositionLogoData]:
    """Entropy-based logo statistics of one column.

    Parameters
    ----------
    sequences : Sequence of str
        Aligned sequences (case-insensitive).
    column : int
        0-based column.
    gaps_as_symbol : bool
        Treat gaps and non-standard letters as a 21st symbol: frequencies
        are over all sequences, the gap fraction enters the entropy and
        ``max_bits = log2(21)``. Letter heights cover amino acids only.

    Returns
    -------
    PositionLogoData or None
        None when the column holds no standard residue.
    """
    counts = count_residues(sequences, column)
    n_residues = sum(counts.values())
    if n_residues == 0:
        return None

    gap_count = len(sequences) - n_residues
    if gaps_as_symbol:
        total = len(sequences)
        symbol_counts = list(counts.values()) + ([gap_count] if gap_count else [])
        max_bits = MAX_BITS_WITH_GAPS
    else:
        total = n_residues
        symbol_counts = list(counts.values())
        max_bits = MAX_BITS

    h = float(shannon_entropy(np.asarray(symbol_counts, dtype=np.float64), base=2))
    info = max(0.0, max_bits - h)
    freqs = {aa: c / total for aa, c in counts.items()}

    return PositionLogoData(
        column=column,
        residue_counts=counts,
        total_sequences=total,
        information_content=info,
        letter_heights={aa: f * info for aa, f in freqs.items()},
        frequencies=freqs,
        entropy=h,
        gap_count=gap_count,
    )


# ═══════════════════════════════════════════════════════════════════════
# Match mode
# ═══════════════════════════════════════════════════════════════════════


def simple_conservation(sequences: Sequence[str], column: int) -> MatchConservation:
    """Match percentage of the most frequent residue and its group.

    The percentage is taken over every sequence of the alignment, so
    gapped sequences lower it.
    """
    counts = count_residues(sequences, column)
    n_residues = sum(counts.values())
    total = len(sequences)
    if n_residues == 0:
        return MatchConservation(column, 0.0, "", {}, {}, total, 0)

    match_counts: Dict[str, int] = {}
    for residue, count in counts.items():
        similar = sum(
            counts.get(other, 0)
            for other in AA_GROUP.get(residue, ())
            if other != residue
        )
        match_counts[residue] = count + similar

    top = most_frequent(counts)
    return MatchConservation(
        column=column,
        match_percentage=match_counts[top] / total * 100,
        most_conserved_aa=top,
        residue_counts=counts,
        match_counts=match_counts,
        total_sequences=total,
        n_residues=n_residues,
    )


def position_match_logo_data(sequences: Sequence[str], column: int) -> Optional[PositionLogoData]:
    """Logo statistics with stack height scaled by match percentage.

    Height = ``match_percentage / 100 × 4.32``; letters split it by
    their frequency among the residues present.
    """
    result = simple_conservation(sequences, column)
    if result.n_residues == 0:
        return None
    info = result.match_percentage / 100 * MATCH_MODE_MAX_BITS
    freqs = {aa: c / result.n_residues for aa, c in result.residue_counts.items()}
    return PositionLogoData(
        column=column,
        residue_counts=result.residue_counts,
        total_sequences=result.n_residues,
        information_content=info,
        letter_heights={aa: f * info for aa, f in freqs.items()},
        frequencies=freqs,
        gap_count=result.total_sequences - result.n_residues,
        match_percentage=result.match_percentage,
        most_conserved_aa=result.most_conserved_aa,
    )


def cross_alignment_conservation(
    alignments: Mapping[str, Sequence[str]],
    column: int,
) -> CrossAlignmentConservation:
    """Vote across alignments: each contributes its top residue.

    The winning residue is the most common vote; alignments voting for
    it or a similar residue match. The percentage is over all
    alignments, including those with only gaps at this column.
    """
    alignment_aas: Dict[str, str] = {}
    votes: Dict[str, int] = {}
    for name, sequences in alignments.items():
        top = most_frequent(count_residues(sequences, column))
        if top:
            alignment_aas[name] = top
            votes[top] = votes.get(top, 0) + 1

    total = len(alignments)
    winner = most_frequent(votes)
    if not winner:
        return CrossAlignmentConservation(column, 0.0, "", {}, 0, total)

    match_count = sum(1 for aa in alignment_aas.values() if are_similar(winner, aa))
    return CrossAlignmentConservation(
        column=column,
        match_percentage=match_count / total * 100,
        most_conserved_aa=winner,
        alignment_aas=alignment_aas,
        match_count=match_count,
        total_alignments=total,
    )


def alignment_logo_profiles(
    alignments: Mapping[str, Sequence[str]],
    mode: str = "entropy",
    blur_threshold: float = DEFAULT_BLUR_THRESHOLD,
) -> Dict[str, List[LogoPosition]]:
    """Logo positions of several alignments on a shared column axis.

    Parameters
    ----------
    alignments : Mapping[str, Sequence[str]]
        Alignment name → aligned sequences. All alignments share one
        column frame.
    mode : str
        ``entropy``, ``entropy_gaps`` or ``match``.
    blur_threshold : float
        In match mode, positions whose cross-alignment percentage is
        below this are flagged ``blurred``.

    Returns
    -------
    Dict[str, List[LogoPosition]]
        Per alignment, every column with residues in any alignment,
        numbered consecutively from 1. Columns where only other
        alignments have residues carry ``data=None``.
    """
    if mode not in LOGO_MODES:
        raise ValueError(f"Unknown logo mode {mode!r}; expected one of {LOGO_MODES}")

    n_columns = max((_alignment_length(seqs) for seqs in alignments.values()), default=0)
    per_alignment: Dict[str, Dict[int, PositionLogoData]] = {}
    for name, sequences in alignments.items():
        columns: Dict[int, PositionLogoData] = {}
        for col in range(_alignment_length(sequences)):
            if mode == "match":
                data = position_match_logo_data(sequences, col)
            else:
                data = position_logo_data(sequences, col, gaps_as_symbol=(mode == "entropy_gaps"))
            if data is not None:
                columns[col] = data
        per_alignment[name] = columns

    shown = [
        col for col in range(n_columns)
        if any(col in columns for columns in per_alignment.values())
    ]
    cross = {col: cross_alignment_conservation(alignments, col) for col in shown}

    profiles: Dict[str, List[LogoPosition]] = {}
    for name, columns in per_alignment.items():
        profiles[name] = [
            LogoPosition(
                position=i + 1,
                column=col,
                data=columns.get(col),
                cross_alignment=cross[col],
                blurred=mode == "match" and cross[col].match_percentage < blur_threshold,
            )
            for i, col in enumerate(shown)
        ]
    return profiles


# ═══════════════════════════════════════════════════════════════════════
# Pairwise overlap
# ═══════════════════════════════════════════════════════════════════════


def column_conservation_profile(
    sequences: Sequence[str],
    min_fraction: float = DEFAULT_MIN_OCCUPANCY,
) -> List[ColumnConservation]:
    """Match-mode conservation of every sufficiently occupied column.

    Columns with fewer than ``max(1, floor(min_fraction × N))`` residues
    are skipped.
    """
    if not sequences:
        return []
    min_residues = max(1, math.floor(len(sequences) * min_fraction))
    profile = []
    for col in range(_alignment_length(sequences)):
        result = simple_conservation(sequences, col)
        if result.n_residues < min_residues:
            continue
        profile.append(ColumnConservation(
            column=col,
            most_conserved_aa=result.most_conserved_aa,
            conservation_frequency=result.match_percentage,
            residue_counts=result.residue_counts,
            total_sequences=result.total_sequences,
        ))
    return profile


def overlap_matrix(
    profiles: Sequence[Sequence[ColumnConservation]],
    threshold: float = DEFAULT_OVERLAP_THRESHOLD,
) -> NDArray:
    """Shared conserved positions between alignments.

    Diagonal entries count the columns of one alignment at or above
    ``threshold``; off-diagonal entries count columns where both
    alignments reach it and their top residues are similar.

    Returns
    -------
    NDArray
        (n, n) symmetric integer matrix.
    """
    n = len(profiles)
    matrix = np.zeros((n, n), dtype=np.int64)
    conserved = [
        {p.column: p for p in profile if p.conservation_frequency >= threshold}
        for profile in profiles
    ]
    for i in range(n):
        matrix[i, i] = len(conserved[i])
        for j in range(i + 1, n):
            shared = sum(
                1 for col, pi in conserved[i].items()
                if col in conserved[j]
                and are_similar(pi.most_conserved_aa, conserved[j][col].most_conserved_aa)
            )
            matrix[i, j] = matrix[j, i] = shared
    return matrix


# ═══════════════════════════════════════════════════════════════════════
# Consensus sequences
# ═══════════════════════════════════════════════════════════════════════


def occupied_column_span(alignments: Iterable[Sequence[str]]) -> List[int]:
    """Every column from the first to the last holding a residue in any alignment."""
    occupied = [
        col
        for sequences in alignments
        for col in range(_alignment_length(sequences))
        if any(_residue_at(s, col) != GAP for s in sequences)
    ]
    if not occupied:
        return []
    return list(range(min(occupied), max(occupied) + 1))


def consensus_sequences(
    sequences: Sequence[str],
    n: int = 1,
    columns: Optional[Sequence[Optional[int]]] = None,
) -> List[str]:
    """Top-``n`` consensus sequences of an alignment.

    For each column the non-gap characters are ranked by count; the
    k-th sequence takes the k-th ranked character, or the top one when
    fewer than ``n`` distinct characters occur. Empty columns (and
    ``None`` entries of ``columns``) emit ``-``.

    Parameters
    ----------
    sequences : Sequence of str
        Aligned sequences.
    n : int
        Number of consensus sequences (≥ 1).
    columns : Sequence of int or None, optional
        Columns to emit, in order. Defaults to every column.
    """
    if n < 1:
        raise ValueError("n must be at least 1")
    if columns is None:
        columns = range(_alignment_length(sequences))

    results: List[List[str]] = [[] for _ in range(n)]
    for col in columns:
        counts: Dict[str, int] = {}
        if col is not None:
            for seq in sequences:
                ch = _residue_at(seq, col)
                if ch != GAP:
                    counts[ch] = counts.get(ch, 0) + 1
        if not counts:
            for chars in results:
                chars.append(GAP)
            continue
        ranked = [ch for ch, _ in sorted(counts.items(), key=lambda kv: kv[1], reverse=True)][:n]
        ranked += [ranked[0]] * (n - len(ranked))
        for chars, ch in zip(results, ranked):
            chars.append(ch)
    return ["".join(chars) for chars in results]


def consensus_header(name: str, rank: int, n: int, source: str) -> str:
    """FASTA header of the ``rank``-th of ``n`` consensus sequences."""
    return f"{name}|consensus_rank:{rank}/{n}|source:{source}|aligned:custom"
