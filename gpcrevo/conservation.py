"""
GPCR Evo — Conservation Tables.

Reader for the per-receptor tab-separated conservation files:

    residue_number  conservation  conserved_AA  human_AA  region  gpcrdb
    1               45.50         M             M         N-term  1x23
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping

from gpcrevo.errors import ConservationTableError
from gpcrevo.fasta import GAP

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# Constants
# ═══════════════════════════════════════════════════════════════════════

HEADER_KEY: str = "residue_number"
"""First cell of the (skipped) header row, compared case-insensitively."""

MIN_COLUMNS: int = 6
"""Rows with fewer tab-separated cells are ignored."""


# ═══════════════════════════════════════════════════════════════════════
# Data classes
# ═══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ConservationRecord:
    """Conservation annotation of one residue of a reference receptor.

    Attributes
    ----------
    residue_number : str
        1-based residue number (table key).
    conservation : float
        Percent conservation, 0–100.
    conserved_aa : str
        Most conserved amino acid(s) across orthologs.
    aa : str
        Amino acid of the reference (human) receptor.
    region : str
        Structural region label (e.g. ``TM3``, ``ICL2``).
    gpcrdb : str
        GPCRdb generic residue number (e.g. ``3x50``).
    """
    residue_number: str
    conservation: float
    conserved_aa: str
    aa: str
    region: str
    gpcrdb: str

    @property
    def conservation_label(self) -> str:
        return f"{self.conservation:.2f}%"


ConservationTable = Dict[str, ConservationRecord]


# ═══════════════════════════════════════════════════════════════════════
# Parsing
# ═══════════════════════════════════════════════════════════════════════


def parse_conservation_table(text: str) -> ConservationTable:
    """Parse a conservation TSV into records keyed by residue number.

    Raises
    ------
    ConservationTableError
        If a data row's conservation value is not a number.
    """
    table: ConservationTable = {}
    for lineno, line in enumerate(text.splitlines(), start=1):
        parts = line.split("\t")
        if parts[0].strip().lower() == HEADER_KEY:
            continue
        if len(parts) < MIN_COLUMNS:
            if line.strip():
                logger.debug("Skipping short conservation row %d", lineno)
            continue

        res_num = parts[0].strip()
        try:
            conservation = float(parts[1].strip())
        except ValueError:
            raise ConservationTableError(
                f"Line {lineno}: conservation value {parts[1]!r} for residue "
                f"{res_num} is not a number"
            ) from None

        table[res_num] = ConservationRecord(
            residue_number=res_num,
            conservation=conservation,
            conserved_aa=parts[2].strip(),
            aa=parts[3].strip(),
            region=parts[4].strip(),
            gpcrdb=parts[5].strip(),
        )
    return table


def gpcrdb_column_map(aligned_sequence: str, table: Mapping[str, ConservationRecord]) -> List[str]:
    """Label each alignment column of a reference with its GPCRdb number.

    Residue columns fall back to the plain residue number when the table
    has no GPCRdb label; gap columns get ``""``.
    """
    labels: List[str] = []
    residue_number = 0
    for ch in aligned_sequence:
        if ch == GAP:
            labels.append("")
            continue
        residue_number += 1
        record = table.get(str(residue_number))
        if record is not None and record.gpcrdb:
            labels.append(record.gpcrdb)
        else:
            labels.append(str(residue_number))
    return labels
