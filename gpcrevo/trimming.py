"""
GPCR Evo — Gap Trimming and Column Removal.

Column operations on aligned sequence sets: restricting an alignment to
the columns where a reference is non-gap, dropping all-gap columns, and
projecting trimmed ortholog rows back into a gapped reference frame.
"""

from __future__ import annotations

from typing import List, Sequence as SequenceType

from gpcrevo.errors import AlignmentLengthError
from gpcrevo.fasta import GAP, Sequence, validate_alignment


def non_gap_columns(reference: str) -> List[int]:
    """Indices of the columns where ``reference`` is not a gap."""
    return [i for i, ch in enumerate(reference) if ch != GAP]


def _take_columns(sequence: str, columns: List[int]) -> str:
    n = len(sequence)
    return "".join(sequence[i] if i < n else GAP for i in columns)


def trim_to_reference_columns(
    reference: str,
    sequences: SequenceType[Sequence],
) -> List[Sequence]:
    """Keep only the columns where ``reference`` has a residue.

    Parameters
    ----------
    reference : str
        Aligned reference sequence (may itself be one of ``sequences``).
    sequences : Sequence of Sequence
        Records to trim. Positions beyond a record's end become ``-``.

    Returns
    -------
    List[Sequence]
        New records, each exactly as long as the reference's residue
        count. Reapplying with the trimmed reference changes nothing.
    """
    columns = non_gap_columns(reference)
    return [Sequence(s.header, _take_columns(s.sequence, columns)) for s in sequences]


def trim_to_first_sequence(sequences: SequenceType[Sequence]) -> List[Sequence]:
    """Trim every record to the non-gap columns of the first record."""
    if not sequences:
        return []
    return trim_to_reference_columns(sequences[0].sequence, sequences)


def remove_all_gap_columns(sequences: SequenceType[Sequence]) -> List[Sequence]:
    """Drop columns that are gaps in every record.

    Raises
    ------
    AlignmentLengthError
        If the records do not share one length.
    """
    length = validate_alignment(sequences)
    keep = [
        i for i in range(length)
        if any(s.sequence[i] != GAP for s in sequences)
    ]
    return [Sequence(s.header, _take_columns(s.sequence, keep)) for s in sequences]


def project_onto_reference(
    reference_frame: str,
    sequences: SequenceType[Sequence],
) -> List[Sequence]:
    """Re-insert the gaps of ``reference_frame`` into ungapped-frame rows.

    Each row is consumed left to right: a gap column of the frame emits
    ``-``; any other column emits the row's next character, or ``-``
    once the row is exhausted.

    Raises
    ------
    AlignmentLengthError
        If a row has more characters than the frame has residues.
    """
    n_slots = len(reference_frame) - reference_frame.count(GAP)
    projected = []
    for s in sequences:
        if len(s.sequence) > n_slots:
            raise AlignmentLengthError(
                f"{s.header!r} has {len(s.sequence)} columns but the reference "
                f"frame has only {n_slots} residues"
            )
        chars = []
        k = 0
        for ch in reference_frame:
            if ch == GAP:
                chars.append(GAP)
            else:
                chars.append(s.sequence[k] if k < len(s.sequence) else GAP)
                k += 1
        projected.append(Sequence(s.header, "".join(chars)))
    return projected
