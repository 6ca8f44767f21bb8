"""
GPCR Evo — Residue Renumbering and Cross-Receptor Mapping.

Translates alignment columns into per-receptor residue numbers and
builds the tables that line up residues of several receptors:

    aligned sequences
        → per-column residue numbering (fold over columns)
        → rows kept where the reference has a residue
        → conservation annotations merged in
        → pandas DataFrame / TSV

Residue counters advance on every non-gap character whether or not the
column ends up in the output, so each receptor's numbers always equal
its own ungapped numbering.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from gpcrevo.conservation import ConservationRecord, ConservationTable
from gpcrevo.errors import ReceptorSelectionError
from gpcrevo.fasta import GAP

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# Constants
# ═══════════════════════════════════════════════════════════════════════

MISSING: str = "-"
"""Placeholder for gap / missing fields in mapping rows."""

DEFAULT_CONSERVATION_THRESHOLD: float = 90.0
"""Percent conservation at which a residue counts as conserved."""

HIGH_SCORE_PAIRS: frozenset = frozenset({
    ("R", "K"), ("N", "B"), ("D", "B"), ("Q", "E"), ("Q", "Z"),
    ("E", "Z"), ("H", "Y"), ("I", "V"), ("I", "J"), ("L", "M"),
    ("L", "J"), ("M", "J"), ("F", "Y"), ("W", "Y"), ("V", "J"),
})
"""Distinct amino-acid pairs with a positive BLOSUM80 score."""

CATEGORIES: Tuple[str, ...] = ("common", "specific_both", "specific1", "specific2")

ColumnNumbering = Tuple[Optional[int], ...]


# ═══════════════════════════════════════════════════════════════════════
# Data classes
# ═══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ReceptorSequence:
    """An aligned sequence labelled with its receptor (gene) name."""
    name: str
    sequence: str


@dataclass(frozen=True)
class ResiduePair:
    """Residue numbers of two receptors at one alignment column.

    ``None`` marks a gap on that side.
    """
    column: int
    res_num1: Optional[int]
    res_num2: Optional[int]


@dataclass(frozen=True)
class CategorizedResidue:
    """A conserved residue of a pairwise receptor comparison.

    Attributes
    ----------
    category : str
        ``common`` (both conserved, similar), ``specific_both`` (both
        conserved, dissimilar), ``specific1`` / ``specific2`` (conserved
        on one side only).
    res_num1, res_num2 : int, optional
        Residue numbers (None for a gap).
    human_aa1, human_aa2 : str
        Reference amino acids from the conservation tables.
    conserved_aa1, conserved_aa2 : str
        Most conserved amino acids across orthologs.
    perc1, perc2 : float
        Percent conservation (0 for gaps / missing records).
    region1, region2, gpcrdb1, gpcrdb2 : str
        Structural annotations.
    """
    category: str
    res_num1: Optional[int]
    res_num2: Optional[int]
    human_aa1: str
    human_aa2: str
    conserved_aa1: str
    conserved_aa2: str
    perc1: float
    perc2: float
    region1: str
    region2: str
    gpcrdb1: str
    gpcrdb2: str


# ═══════════════════════════════════════════════════════════════════════
# Column numbering
# ═══════════════════════════════════════════════════════════════════════


def _advance(counters: Tuple[int, ...], column: Tuple[str, ...]) -> Tuple[int, ...]:
    return tuple(c + 1 if ch != GAP else c for c, ch in zip(counters, column))


def number_columns(sequences: Sequence[str]) -> List[ColumnNumbering]:
    """Residue number of every sequence at every alignment column.

    Parameters
    ----------
    sequences : Sequence of str
        Aligned sequences of equal length.

    Returns
    -------
    List[ColumnNumbering]
        One tuple per column, one entry per sequence: the 1-based
        residue number, or None where the sequence has a gap.

    Examples
    --------
    >>> number_columns(["A-BC", "DE-F"])
    [(1, 1), (None, 2), (2, None), (3, 3)]
    """
    counters: Tuple[int, ...] = (0,) * len(sequences)
    numbering: List[ColumnNumbering] = []
    for column in zip(*sequences):
        counters = _advance(counters, column)
        numbering.append(tuple(
            c if ch != GAP else None for c, ch in zip(counters, column)
        ))
    return numbering


def column_of_residue(sequence: str, residue_number: int) -> Optional[int]:
    """Alignment column holding the given 1-based residue, or None."""
    count = 0
    for i, ch in enumerate(sequence):
        if ch != GAP:
            count += 1
            if count == residue_number:
                return i
    return None


def residue_number_at_column(sequence: str, column: int) -> Optional[int]:
    """1-based residue number at ``column``, or None for a gap / out of range."""
    if column < 0 or column >= len(sequence) or sequence[column] == GAP:
        return None
    return len(sequence[:column + 1].replace(GAP, ""))


# ═══════════════════════════════════════════════════════════════════════
# Multi-receptor mapping table
# ═══════════════════════════════════════════════════════════════════════


def mapping_columns(names: Sequence[str], reference: str) -> List[str]:
    """Column order of a mapping table."""
    columns = [f"{reference}_region", f"{reference}_gpcrdb"]
    for name in names:
        columns.extend([
            f"{name}_resNum",
            f"{name}_AA",
            f"{name}_Conservation",
            f"{name}_Conserved_AA",
        ])
    return columns


def _receptor_fields(
    name: str,
    residue: str,
    res_num: Optional[int],
    record: Optional[ConservationRecord],
) -> Dict[str, str]:
    if res_num is None:
        return {
            f"{name}_resNum": MISSING,
            f"{name}_AA": MISSING,
            f"{name}_Conservation": MISSING,
            f"{name}_Conserved_AA": MISSING,
        }
    return {
        f"{name}_resNum": str(res_num),
        f"{name}_AA": residue,
        f"{name}_Conservation": record.conservation_label if record else MISSING,
        f"{name}_Conserved_AA": (record.conserved_aa or MISSING) if record else MISSING,
    }


def map_residues(
    receptor_sequences: Sequence[ReceptorSequence],
    conservation_by_receptor: Mapping[str, ConservationTable],
    reference: Optional[str] = None,
) -> List[Dict[str, str]]:
    """Build the residue-mapping table of several aligned receptors.

    Parameters
    ----------
    receptor_sequences : Sequence of ReceptorSequence
        Aligned receptor sequences (equal length is a precondition).
    conservation_by_receptor : Mapping[str, ConservationTable]
        Conservation records per receptor name; absent receptors or
        residues yield ``-``.
    reference : str, optional
        Receptor whose residues define the retained rows. Defaults to
        the first receptor.

    Returns
    -------
    List[Dict[str, str]]
        One row per column where the reference has a residue, keys in
        ``mapping_columns`` order.

    Raises
    ------
    ReceptorSelectionError
        If the reference is not among the receptors or a name repeats.
    """
    names = [r.name for r in receptor_sequences]
    if not names:
        return []
    if len(set(names)) != len(names):
        raise ReceptorSelectionError(f"Duplicate receptor names in {names}")
    if reference is None:
        reference = names[0]
    if reference not in names:
        raise ReceptorSelectionError(f"Reference {reference!r} is not among {names}")

    ref_idx = names.index(reference)
    ref_table = conservation_by_receptor.get(reference, {})
    sequences = [r.sequence for r in receptor_sequences]
    rows: List[Dict[str, str]] = []

    for col, numbering in enumerate(number_columns(sequences)):
        ref_num = numbering[ref_idx]
        if ref_num is None:
            continue

        ref_record = ref_table.get(str(ref_num))
        row: Dict[str, str] = {
            f"{reference}_region": (ref_record.region or MISSING) if ref_record else MISSING,
            f"{reference}_gpcrdb": (ref_record.gpcrdb or MISSING) if ref_record else MISSING,
        }
        for name, seq, res_num in zip(names, sequences, numbering):
            table = conservation_by_receptor.get(name, {})
            record = table.get(str(res_num)) if res_num is not None else None
            row.update(_receptor_fields(name, seq[col], res_num, record))
        rows.append(row)

    return rows


def parse_residue_allowlist(text: str) -> List[int]:
    """Parse ``"12, 45,3"`` into positive residue numbers.

    Tokens that are not positive integers are dropped with a warning.
    """
    numbers: List[int] = []
    for token in text.split(","):
        token = token.strip()
        if not token:
            continue
        try:
            value = int(token)
        except ValueError:
            logger.warning("Ignoring residue number %r: not an integer", token)
            continue
        if value <= 0:
            logger.warning("Ignoring residue number %d: must be positive", value)
            continue
        numbers.append(value)
    return numbers


def filter_by_residue_numbers(
    rows: Sequence[Dict[str, str]],
    reference: str,
    residue_numbers: Sequence[int],
) -> List[Dict[str, str]]:
    """Keep rows whose reference residue number is listed (empty ⇒ all)."""
    if not residue_numbers:
        return list(rows)
    wanted = {str(n) for n in residue_numbers}
    return [row for row in rows if row.get(f"{reference}_resNum") in wanted]


def mapping_to_dataframe(rows: Sequence[Dict[str, str]], columns: Sequence[str]) -> pd.DataFrame:
    """Mapping rows as a string-typed DataFrame with a fixed column order."""
    return pd.DataFrame(list(rows), columns=list(columns), dtype=str)


def mapping_to_tsv(rows: Sequence[Dict[str, str]], columns: Sequence[str]) -> str:
    """Tab-separated mapping table: header row then one line per row."""
    df = mapping_to_dataframe(rows, columns)
    return df.to_csv(sep="\t", index=False, lineterminator="\n")


# ═══════════════════════════════════════════════════════════════════════
# Pairwise comparison
# ═══════════════════════════════════════════════════════════════════════


def pair_residues(seq1: str, seq2: str) -> List[ResiduePair]:
    """Residue-number pairs of two aligned sequences.

    Columns where both sequences have a gap are skipped.
    """
    pairs = []
    for col, (n1, n2) in enumerate(number_columns([seq1, seq2])):
        if n1 is None and n2 is None:
            continue
        pairs.append(ResiduePair(col, n1, n2))
    return pairs


def blosum80_score(aa1: str, aa2: str) -> int:
    """Coarse BLOSUM80 similarity of two residues.

    -1 if either is a gap or empty, 3 if identical, 2 for a high-scoring
    pair, 1 otherwise. Ambiguous labels such as ``"L/M"`` are scored by
    their first residue.
    """
    if not aa1 or not aa2 or aa1 == GAP or aa2 == GAP:
        return -1
    a = aa1.split("/")[0]
    b = aa2.split("/")[0]
    if a == b:
        return 3
    if (a, b) in HIGH_SCORE_PAIRS or (b, a) in HIGH_SCORE_PAIRS:
        return 2
    return 1


def categorize_residues(
    pairs: Sequence[ResiduePair],
    table1: Mapping[str, ConservationRecord],
    table2: Mapping[str, ConservationRecord],
    threshold: float = DEFAULT_CONSERVATION_THRESHOLD,
) -> List[CategorizedResidue]:
    """Classify the residues of a pairwise comparison.

    Parameters
    ----------
    pairs : Sequence of ResiduePair
        Output of ``pair_residues``.
    table1, table2 : Mapping[str, ConservationRecord]
        Conservation tables of the two receptors.
    threshold : float
        Percent conservation at or above which a residue is conserved.

    Returns
    -------
    List[CategorizedResidue]
        Conserved residues only, in alignment order.
    """
    results: List[CategorizedResidue] = []

    for pair in pairs:
        rec1 = table1.get(str(pair.res_num1)) if pair.res_num1 is not None else None
        rec2 = table2.get(str(pair.res_num2)) if pair.res_num2 is not None else None
        perc1 = rec1.conservation if rec1 else 0.0
        perc2 = rec2.conservation if rec2 else 0.0
        conserved1 = pair.res_num1 is not None and perc1 >= threshold
        conserved2 = pair.res_num2 is not None and perc2 >= threshold

        if conserved1 and conserved2:
            similar = blosum80_score(
                rec1.conserved_aa if rec1 else MISSING,
                rec2.conserved_aa if rec2 else MISSING,
            ) > 1
            category = "common" if similar else "specific_both"
        elif conserved1:
            category = "specific1"
        elif conserved2:
            category = "specific2"
        else:
            continue

        results.append(CategorizedResidue(
            category=category,
            res_num1=pair.res_num1,
            res_num2=pair.res_num2,
            human_aa1=rec1.aa if rec1 else MISSING,
            human_aa2=rec2.aa if rec2 else MISSING,
            conserved_aa1=rec1.conserved_aa if rec1 else MISSING,
            conserved_aa2=rec2.conserved_aa if rec2 else MISSING,
            perc1=perc1,
            perc2=perc2,
            region1=rec1.region if rec1 else MISSING,
            region2=rec2.region if rec2 else MISSING,
            gpcrdb1=rec1.gpcrdb if rec1 else MISSING,
            gpcrdb2=rec2.gpcrdb if rec2 else MISSING,
        ))

    return results


def categorized_to_dataframe(residues: Sequence[CategorizedResidue]) -> pd.DataFrame:
    """Categorised residues as a DataFrame (gaps shown as ``gap``)."""
    records = []
    for r in residues:
        records.append({
            "category": r.category,
            "resNum1": str(r.res_num1) if r.res_num1 is not None else "gap",
            "humanAa1": r.human_aa1,
            "conservedAa1": r.conserved_aa1,
            "perc1": r.perc1,
            "resNum2": str(r.res_num2) if r.res_num2 is not None else "gap",
            "humanAa2": r.human_aa2,
            "conservedAa2": r.conserved_aa2,
            "perc2": r.perc2,
            "region1": r.region1,
            "region2": r.region2,
            "gpcrdb1": r.gpcrdb1,
            "gpcrdb2": r.gpcrdb2,
        })
    return pd.DataFrame(records, columns=[
        "category", "resNum1", "humanAa1", "conservedAa1", "perc1",
        "resNum2", "humanAa2", "conservedAa2", "perc2",
        "region1", "region2", "gpcrdb1", "gpcrdb2",
    ])
