"""
GPCR Evo — Exception hierarchy.

Parsers raise the ``ValueError`` subclasses on malformed input; the
lookup errors are raised by the catalog and the analysis pipelines when
an entity essential to the requested operation is missing.
"""

from __future__ import annotations


class GpcrEvoError(Exception):
    """Base class for every error raised by gpcrevo."""


# ── Malformed input ──


class NewickParseError(GpcrEvoError, ValueError):
    """Newick text could not be parsed."""


class FastaParseError(GpcrEvoError, ValueError):
    """FASTA text could not be parsed."""


class AlignmentLengthError(GpcrEvoError, ValueError):
    """Sequences of one alignment do not share the same length."""


class ConservationTableError(GpcrEvoError, ValueError):
    """A conservation table row carries an unparseable field."""


# ── Missing cross-reference data ──


class ReceptorNotFoundError(GpcrEvoError, KeyError):
    """Gene name absent from the receptor catalog."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ""


class SequenceNotFoundError(GpcrEvoError):
    """Selected receptor has no sequence in the alignment."""


class DataFileNotFoundError(GpcrEvoError, FileNotFoundError):
    """Data file missing from the data source."""


# ── Selection problems ──


class ReceptorSelectionError(GpcrEvoError):
    """Receptor selection is incomplete or contradictory."""


class ClassMismatchError(ReceptorSelectionError):
    """Selected receptors span more than one GPCR class."""
