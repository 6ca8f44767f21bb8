"""
GPCR Evo — Receptor Catalog and Data Source.

The catalog is the JSON list of receptor records shipped with the site;
the data source resolves the site-relative paths it contains
(``/alignments/...``, ``/conservation_files/...``) against a local
directory.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from gpcrevo.errors import ClassMismatchError, DataFileNotFoundError, ReceptorNotFoundError

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# Configuration
# ═══════════════════════════════════════════════════════════════════════

DATA_DIR_ENV: str = "GPCREVO_DATA_DIR"
"""Environment variable naming the data directory."""

DEFAULT_DATA_DIR: str = "public"
"""Data directory used when neither the CLI nor the environment sets one."""

CATALOG_PATH: str = "/receptors.json"
"""Catalog location inside the data directory."""

CLASS_REFERENCE_GENES: Dict[str, str] = {
    "A": "HRH2",
    "T": "T2R39",
    "B1": "PTH1R",
    "B2": "AGRL3",
    "C": "CASR",
    "F": "FZD7",
    "Olfactory": "O52I2",
}
"""Representative human receptor of each class alignment."""


def default_data_dir() -> str:
    return os.getenv(DATA_DIR_ENV, DEFAULT_DATA_DIR)


def class_alignment_path(receptor_class: str) -> str:
    """Site path of the human-only MSA of a class."""
    return f"/alignments/class{receptor_class}_humans_MSA.fasta"


def conservation_path(gene_name: str) -> str:
    """Site path of a receptor's conservation table."""
    return f"/conservation_files/{gene_name}_conservation.txt"


# ═══════════════════════════════════════════════════════════════════════
# Catalog
# ═══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Receptor:
    """One catalog record.

    Attributes
    ----------
    gene_name : str
        Gene symbol (e.g. ``HRH2``).
    receptor_class : str
        GPCR class code (``A``, ``B1``, ``C``, ...).
    num_orthologs : int
        Orthologs in the receptor's alignment.
    lca : str
        Last common ancestor of the orthologs.
    gpcrdb_id : str
        GPCRdb entry name; empty when the receptor is not in GPCRdb.
    name : str
        Full receptor name.
    tree, alignment, conservation_file, snake_plot, svg_tree : str
        Site-relative file paths (empty when absent).
    """
    gene_name: str
    receptor_class: str
    num_orthologs: int = 0
    lca: str = ""
    gpcrdb_id: str = ""
    name: str = ""
    tree: str = ""
    alignment: str = ""
    conservation_file: str = ""
    snake_plot: str = ""
    svg_tree: str = ""

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> "Receptor":
        return cls(
            gene_name=record["geneName"],
            receptor_class=str(record["class"]),
            num_orthologs=int(record.get("numOrthologs") or 0),
            lca=record.get("lca") or "",
            gpcrdb_id=record.get("gpcrdbId") or "",
            name=record.get("name") or "",
            tree=record.get("tree") or "",
            alignment=record.get("alignment") or "",
            conservation_file=record.get("conservationFile") or "",
            snake_plot=record.get("snakePlot") or "",
            svg_tree=record.get("svgTree") or "",
        )


class ReceptorCatalog:
    """Lookup table of receptors by gene name (case-insensitive)."""

    def __init__(self, receptors: Iterable[Receptor]):
        self.receptors: List[Receptor] = list(receptors)
        self._by_gene: Dict[str, Receptor] = {}
        for r in self.receptors:
            self._by_gene.setdefault(r.gene_name.lower(), r)

    @classmethod
    def from_json(cls, text: str) -> "ReceptorCatalog":
        return cls(Receptor.from_dict(rec) for rec in json.loads(text))

    def __len__(self) -> int:
        return len(self.receptors)

    def __contains__(self, gene_name: str) -> bool:
        return gene_name.lower() in self._by_gene

    def get(self, gene_name: str) -> Receptor:
        """Receptor by gene name.

        Raises
        ------
        ReceptorNotFoundError
            If the gene is not in the catalog.
        """
        try:
            return self._by_gene[gene_name.lower()]
        except KeyError:
            raise ReceptorNotFoundError(f"Receptor {gene_name} not found") from None

    def search(self, term: str, limit: int = 10) -> List[Receptor]:
        """Receptors whose gene or full name contains ``term``."""
        low = term.lower()
        hits = [
            r for r in self.receptors
            if low in r.gene_name.lower() or low in r.name.lower()
        ]
        return hits[:limit]

    def by_class(self, receptor_class: str) -> List[Receptor]:
        return [r for r in self.receptors if r.receptor_class == receptor_class]

    def require_same_class(self, gene_names: Sequence[str]) -> List[Receptor]:
        """Resolve receptors and check they share one class.

        Raises
        ------
        ReceptorNotFoundError
            If any gene is missing.
        ClassMismatchError
            If the receptors span several classes.
        """
        receptors = [self.get(g) for g in gene_names]
        if not receptors:
            return receptors
        expected = receptors[0].receptor_class
        others = [r for r in receptors[1:] if r.receptor_class != expected]
        if others:
            listed = ", ".join(f"{r.gene_name} (class {r.receptor_class})" for r in others)
            raise ClassMismatchError(
                f"All receptors must belong to class {expected} like "
                f"{receptors[0].gene_name}; got {listed}"
            )
        return receptors


# ═══════════════════════════════════════════════════════════════════════
# Data source
# ═══════════════════════════════════════════════════════════════════════


class LocalDataSource:
    """Reads site-relative data files from a local directory."""

    def __init__(self, root: Optional[str] = None):
        self.root = root if root is not None else default_data_dir()

    def resolve(self, site_path: str) -> str:
        return os.path.join(self.root, site_path.lstrip("/"))

    def exists(self, site_path: str) -> bool:
        return bool(site_path) and os.path.isfile(self.resolve(site_path))

    def read_text(self, site_path: str) -> str:
        """Contents of a data file.

        Raises
        ------
        DataFileNotFoundError
            If the file does not exist.
        """
        path = self.resolve(site_path)
        if not site_path or not os.path.isfile(path):
            raise DataFileNotFoundError(f"Data file not found: {site_path or '(empty path)'}")
        with open(path, "r") as f:
            return f.read()

    def load_catalog(self, site_path: str = CATALOG_PATH) -> ReceptorCatalog:
        catalog = ReceptorCatalog.from_json(self.read_text(site_path))
        logger.info("Loaded %d receptors from %s", len(catalog), site_path)
        return catalog
