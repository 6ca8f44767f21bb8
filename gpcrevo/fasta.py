"""
GPCR Evo — FASTA Parsing and Serialisation.

FASTA reading through Biopython's ``Bio.SeqIO`` and writing, plus the
alignment checks and gene lookups the mapping pipelines need.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from io import StringIO
from typing import Dict, Iterable, List, Optional, Sequence as SequenceType

from Bio import SeqIO

from gpcrevo.errors import AlignmentLengthError, FastaParseError

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# Constants
# ═══════════════════════════════════════════════════════════════════════

GAP: str = "-"
"""Alignment gap character."""

_NON_SEQUENCE = re.compile(r"[^A-Z-]")


# ═══════════════════════════════════════════════════════════════════════
# Data classes
# ═══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Sequence:
    """One FASTA record.

    Attributes
    ----------
    header : str
        Header text after ``>`` (trimmed).
    sequence : str
        Residues, one letter per alignment column (``-`` for gaps).
    """
    header: str
    sequence: str

    @property
    def id(self) -> str:
        """Header up to the first whitespace."""
        return self.header.split()[0] if self.header.strip() else ""

    @property
    def gene_name(self) -> Optional[str]:
        return gene_name_from_header(self.header)

    @property
    def n_residues(self) -> int:
        return len(self.sequence) - self.sequence.count(GAP)

    def __len__(self) -> int:
        return len(self.sequence)


# ═══════════════════════════════════════════════════════════════════════
# Parsing
# ═══════════════════════════════════════════════════════════════════════


def clean_sequence_line(line: str) -> str:
    """Uppercase and keep only letters and gaps."""
    return _NON_SEQUENCE.sub("", line.upper())


def parse_fasta(text: str, clean: bool = False) -> List[Sequence]:
    """Parse FASTA text with ``Bio.SeqIO``.

    Parameters
    ----------
    text : str
        FASTA content; ``\\n`` or ``\\r\\n`` line endings.
    clean : bool
        Uppercase sequences and drop everything except ``A-Z`` and ``-``.

    Returns
    -------
    List[Sequence]
        Records in file order. A header with no sequence lines is kept
        with an empty sequence.

    Raises
    ------
    FastaParseError
        If sequence data appears before the first header.
    """
    lines = [raw.strip() for raw in text.splitlines()]
    for lineno, line in enumerate(lines, start=1):
        if line.startswith(">"):
            break
        if line:
            raise FastaParseError(
                f"Sequence data before first header on line {lineno}"
            )

    records: List[Sequence] = []
    for record in SeqIO.parse(StringIO("\n".join(lines)), "fasta"):
        residues = str(record.seq)
        if clean:
            residues = clean_sequence_line(residues)
        else:
            residues = "".join(residues.split())
        records.append(Sequence(record.description.strip(), residues))
    return records


def read_fasta_file(filepath: str, clean: bool = False) -> List[Sequence]:
    """Parse a FASTA file from disk."""
    with open(filepath, "r") as f:
        text = f.read()
    records = parse_fasta(text, clean=clean)
    logger.info("Read %d sequences from %s", len(records), os.path.basename(filepath))
    return records


def format_fasta(sequences: Iterable[Sequence]) -> str:
    """Serialise records as ``>header\\nsequence\\n`` each."""
    return "".join(f">{s.header}\n{s.sequence}\n" for s in sequences)


# ═══════════════════════════════════════════════════════════════════════
# Validation and lookup
# ═══════════════════════════════════════════════════════════════════════


def validate_alignment(sequences: SequenceType[Sequence]) -> int:
    """Check that all records share one length.

    Returns
    -------
    int
        The common alignment length (0 for an empty set).

    Raises
    ------
    AlignmentLengthError
        Naming the first record whose length differs from the first.
    """
    if not sequences:
        return 0
    expected = len(sequences[0].sequence)
    for s in sequences[1:]:
        if len(s.sequence) != expected:
            raise AlignmentLengthError(
                f"Sequence length mismatch: {s.header!r} has {len(s.sequence)} "
                f"columns, expected {expected}"
            )
    return expected


def gene_name_from_header(header: str) -> Optional[str]:
    """Gene token of a UniProt-style header.

    ``sp|P25021|HRH2_HUMAN/1-359`` → ``HRH2``. Returns None for headers
    without at least three ``|``-separated fields.
    """
    parts = header.split("|")
    if len(parts) < 3 or not parts[2]:
        return None
    return parts[2].split("_")[0]


def sequences_by_gene(sequences: Iterable[Sequence]) -> Dict[str, Sequence]:
    """Index records by gene name, skipping unrecognised headers.

    The first record wins when a gene occurs more than once.
    """
    index: Dict[str, Sequence] = {}
    for s in sequences:
        gene = gene_name_from_header(s.header)
        if gene is None:
            logger.warning("Unexpected FASTA header format: %s", s.header)
            continue
        index.setdefault(gene, s)
    return index


def filter_by_genes(sequences: Iterable[Sequence], genes: Iterable[str]) -> List[Sequence]:
    """Records whose gene is in ``genes``, in file order.

    Headers are truncated at the first ``/`` (drops the residue range
    suffix of Stockholm-derived alignments).
    """
    wanted = set(genes)
    selected = []
    for gene, record in sequences_by_gene(sequences).items():
        if gene in wanted:
            selected.append(Sequence(record.header.split("/")[0], record.sequence))
    return selected


def find_by_header(sequences: Iterable[Sequence], header: str) -> Optional[Sequence]:
    """First record with exactly this header."""
    for s in sequences:
        if s.header == header:
            return s
    return None
