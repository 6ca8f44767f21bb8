"""
GPCR Evo — Analysis Pipelines.

High-level pipelines that combine the parsers and engines with the
receptor catalog and data source, producing annotated results for the
CLI. Selections are validated before any data file is read; receptors
whose optional files are missing are logged and skipped.
"""

from __future__ import annotations

import functools
import logging
import textwrap
from dataclasses import dataclass, field
from typing import AbstractSet, Dict, List, Mapping, Optional, Sequence as SequenceType

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from gpcrevo.catalog import (
    CLASS_REFERENCE_GENES,
    LocalDataSource,
    Receptor,
    ReceptorCatalog,
    class_alignment_path,
    conservation_path,
)
from gpcrevo.conservation import (
    ConservationTable,
    gpcrdb_column_map,
    parse_conservation_table,
)
from gpcrevo.errors import (
    AlignmentLengthError,
    ConservationTableError,
    DataFileNotFoundError,
    ReceptorSelectionError,
    SequenceNotFoundError,
)
from gpcrevo.fasta import (
    Sequence,
    filter_by_genes,
    find_by_header,
    format_fasta,
    parse_fasta,
    sequences_by_gene,
    validate_alignment,
)
from gpcrevo.logo_stats import (
    DEFAULT_BLUR_THRESHOLD,
    DEFAULT_OVERLAP_THRESHOLD,
    ColumnConservation,
    LogoPosition,
    alignment_logo_profiles,
    column_conservation_profile,
    consensus_header,
    consensus_sequences,
    occupied_column_span,
    overlap_matrix,
)
from gpcrevo.newick import NewickNode, iter_nodes, parse_newick
from gpcrevo.residue_mapping import (
    CATEGORIES,
    DEFAULT_CONSERVATION_THRESHOLD,
    CategorizedResidue,
    ReceptorSequence,
    ResiduePair,
    categorize_residues,
    categorized_to_dataframe,
    column_of_residue,
    filter_by_residue_numbers,
    map_residues,
    mapping_columns,
    mapping_to_dataframe,
    mapping_to_tsv,
    pair_residues,
    residue_number_at_column,
)
from gpcrevo.tree_layout import (
    DEFAULT_LEAF_ROW_SPACING,
    DEFAULT_TREE_WIDTH_PX,
    TreeLayout,
    layout_tree,
)
from gpcrevo.trimming import (
    project_onto_reference,
    remove_all_gap_columns,
    trim_to_reference_columns,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# Analysis dataclasses
# ═══════════════════════════════════════════════════════════════════════


@dataclass
class TreeAnalysis:
    """Parsed and laid-out phylogenetic tree.

    Attributes
    ----------
    layout : TreeLayout
        Coordinates for the requested view.
    n_leaves : int
        Leaves in the full tree (collapsed ones included).
    n_internal : int
        Internal nodes in the full tree.
    n_supported : int
        Internal nodes carrying a support value.
    explanation : str
        Human-readable summary.
    """
    layout: TreeLayout
    n_leaves: int
    n_internal: int
    n_supported: int
    explanation: str

    @property
    def tree(self) -> NewickNode:
        return self.layout.tree


@dataclass
class ReceptorTable:
    """Residue-mapping table of a reference and target receptors.

    Attributes
    ----------
    reference : str
        Reference gene name.
    receptors : List[str]
        All receptors, reference first.
    columns : List[str]
        Column order of the table.
    rows : List[Dict[str, str]]
        Mapping rows (after any residue filter).
    missing_conservation : List[str]
        Receptors without conservation data.
    explanation : str
    """
    reference: str
    receptors: List[str]
    columns: List[str]
    rows: List[Dict[str, str]]
    missing_conservation: List[str]
    explanation: str

    @property
    def dataframe(self) -> pd.DataFrame:
        return mapping_to_dataframe(self.rows, self.columns)

    def to_tsv(self) -> str:
        return mapping_to_tsv(self.rows, self.columns)


@dataclass
class ReceptorComparison:
    """Pairwise comparison of two receptors' conserved residues.

    Attributes
    ----------
    gene1, gene2 : str
        Compared receptors.
    threshold : float
        Percent conservation threshold used.
    pairs : List[ResiduePair]
        Aligned residue pairs.
    residues : List[CategorizedResidue]
        Conserved residues with their category.
    category_counts : Dict[str, int]
        Residues per category.
    explanation : str
    """
    gene1: str
    gene2: str
    threshold: float
    pairs: List[ResiduePair]
    residues: List[CategorizedResidue]
    category_counts: Dict[str, int]
    explanation: str

    @property
    def dataframe(self) -> pd.DataFrame:
        return categorized_to_dataframe(self.residues)


@dataclass
class OrthologCombination:
    """Ortholog alignments of several receptors merged into one frame.

    Attributes
    ----------
    genes : List[str]
        Requested receptors.
    sequences : List[Sequence]
        Combined aligned records.
    contributed : List[str]
        Receptors whose orthologs were merged.
    skipped : List[str]
        Receptors left out (missing data).
    filename : str
        Suggested output file name.
    explanation : str
    """
    genes: List[str]
    sequences: List[Sequence]
    contributed: List[str]
    skipped: List[str]
    filename: str
    explanation: str

    def to_fasta(self) -> str:
        return format_fasta(self.sequences)


@dataclass
class LogoAnalysis:
    """Sequence-logo data of one or more alignments on a shared axis.

    Attributes
    ----------
    mode : str
        ``entropy``, ``entropy_gaps`` or ``match``.
    blur_threshold : float
        Match-mode cross-alignment threshold.
    profiles : Dict[str, List[LogoPosition]]
        Logo positions per alignment.
    reference_labels : Dict[str, List[str]]
        GPCRdb label per alignment column for each reference gene.
    n_positions : int
        Displayed positions.
    n_blurred : int
        Positions under the blur threshold.
    explanation : str
    """
    mode: str
    blur_threshold: float
    profiles: Dict[str, List[LogoPosition]]
    reference_labels: Dict[str, List[str]]
    n_positions: int
    n_blurred: int
    explanation: str


@dataclass
class OverlapAnalysis:
    """Pairwise overlap of conserved positions between alignments."""
    names: List[str]
    profiles: List[List[ColumnConservation]]
    matrix: NDArray
    threshold: float
    explanation: str

    @property
    def dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.matrix, index=self.names, columns=self.names)


@dataclass
class ConsensusResult:
    """Top-N consensus sequences per alignment."""
    records: List[Sequence]
    display_columns: List[int]
    explanation: str
    skipped: List[str] = field(default_factory=list)

    def to_fasta(self) -> str:
        return format_fasta(self.records)


# ═══════════════════════════════════════════════════════════════════════
# Data loading helpers
# ═══════════════════════════════════════════════════════════════════════


@functools.lru_cache(maxsize=32)
def load_newick(text: str) -> NewickNode:
    """Memoised ``parse_newick`` (parsed trees are immutable)."""
    return parse_newick(text)


def _load_conservation(source: LocalDataSource, site_path: str, gene: str) -> ConservationTable:
    try:
        return parse_conservation_table(source.read_text(site_path))
    except (DataFileNotFoundError, ConservationTableError) as exc:
        logger.warning("No conservation data for %s: %s", gene, exc)
        return {}


def _class_sequences(source: LocalDataSource, receptor_class: str) -> List[Sequence]:
    return parse_fasta(source.read_text(class_alignment_path(receptor_class)), clean=True)


def _find_reference_record(sequences: SequenceType[Sequence], gene: str) -> Optional[Sequence]:
    for s in sequences:
        if f"{gene}_HUMAN" in s.header:
            return s
    for s in sequences:
        if gene.upper() in s.header.upper():
            return s
    return None


# ═══════════════════════════════════════════════════════════════════════
# Trees
# ═══════════════════════════════════════════════════════════════════════


def analyze_tree(
    newick_text: str,
    leaf_row_spacing: float = DEFAULT_LEAF_ROW_SPACING,
    collapsed: AbstractSet[str] = frozenset(),
    tree_width_px: float = DEFAULT_TREE_WIDTH_PX,
) -> TreeAnalysis:
    """Parse and lay out a Newick tree.

    Parameters
    ----------
    newick_text : str
        Newick string.
    leaf_row_spacing : float
        Pixels between rows.
    collapsed : set of str
        Node identities to collapse.
    tree_width_px : float
        Pixel width of the deepest node.

    Returns
    -------
    TreeAnalysis
    """
    tree = load_newick(newick_text.strip())
    unknown = set(collapsed) - {id_str for id_str, _ in iter_nodes(tree)}
    if unknown:
        logger.warning("Ignoring unknown collapsed nodes: %s", ", ".join(sorted(unknown)))

    layout = layout_tree(tree, leaf_row_spacing, collapsed, tree_width_px)
    nodes = [node for _, node in iter_nodes(tree)]
    n_leaves = sum(1 for n in nodes if n.is_leaf)
    n_internal = len(nodes) - n_leaves
    n_supported = sum(1 for n in nodes if n.support is not None)

    explanation = textwrap.dedent(f"""\
        Tree with {n_leaves} leaves and {n_internal} internal nodes:
        • Maximum root-to-node distance: {layout.max_distance:.4g}
        • Internal nodes with support values: {n_supported}
        • Visible rows: {len(layout.row_nodes)} ({len(layout.visible_leaves)} leaves, {len(layout.row_nodes) - len(layout.visible_leaves)} collapsed)
        • Layout height: {layout.total_height:.1f} px, x scale: {layout.scale_x:.2f} px/unit
    """)

    return TreeAnalysis(
        layout=layout,
        n_leaves=n_leaves,
        n_internal=n_internal,
        n_supported=n_supported,
        explanation=explanation,
    )


# ═══════════════════════════════════════════════════════════════════════
# Multi-receptor residue table
# ═══════════════════════════════════════════════════════════════════════


def _validate_selection(reference: str, targets: SequenceType[str]) -> None:
    if not reference or not reference.strip():
        raise ReceptorSelectionError("Please select a reference receptor")
    if not targets:
        raise ReceptorSelectionError("Please select at least one target receptor")
    if reference.lower() in {t.lower() for t in targets}:
        raise ReceptorSelectionError(
            "Target receptors must be different from the reference receptor"
        )


def build_receptor_table(
    catalog: ReceptorCatalog,
    source: LocalDataSource,
    reference: str,
    targets: SequenceType[str],
    residue_numbers: SequenceType[int] = (),
) -> ReceptorTable:
    """Map a reference receptor's residues onto target receptors.

    Parameters
    ----------
    catalog : ReceptorCatalog
        Receptor metadata.
    source : LocalDataSource
        Where alignments and conservation tables are read from.
    reference : str
        Reference gene; its residues define the rows.
    targets : Sequence of str
        Target genes (same class as the reference).
    residue_numbers : Sequence of int
        Reference residues to keep (empty keeps all).

    Returns
    -------
    ReceptorTable

    Raises
    ------
    ReceptorSelectionError
        Incomplete or contradictory selection, or mixed classes.
    ReceptorNotFoundError
        Unknown gene.
    SequenceNotFoundError
        A receptor is absent from its class alignment.
    """
    _validate_selection(reference, targets)
    receptors = catalog.require_same_class([reference.strip()] + list(targets))
    ref = receptors[0]
    names = [r.gene_name for r in receptors]

    by_gene = sequences_by_gene(_class_sequences(source, ref.receptor_class))
    receptor_sequences = []
    for r in receptors:
        record = by_gene.get(r.gene_name)
        if record is None:
            raise SequenceNotFoundError(f"Sequence not found in FASTA file for {r.gene_name}.")
        receptor_sequences.append(ReceptorSequence(r.gene_name, record.sequence))
    validate_alignment([Sequence(rs.name, rs.sequence) for rs in receptor_sequences])

    conservation: Dict[str, ConservationTable] = {}
    for r in receptors:
        if r.gpcrdb_id:
            conservation[r.gene_name] = _load_conservation(
                source, conservation_path(r.gene_name), r.gene_name
            )
    missing = [n for n in names if not conservation.get(n)]

    rows = map_residues(receptor_sequences, conservation, reference=ref.gene_name)
    n_mapped = len(rows)
    rows = filter_by_residue_numbers(rows, ref.gene_name, residue_numbers)

    explanation = textwrap.dedent(f"""\
        Residue mapping for reference {ref.gene_name} (class {ref.receptor_class}):
        • Targets: {', '.join(names[1:])}
        • Reference residues mapped: {n_mapped}
        • Rows after residue filter: {len(rows)}
        • Receptors without conservation data: {', '.join(missing) or 'none'}
    """)

    return ReceptorTable(
        reference=ref.gene_name,
        receptors=names,
        columns=mapping_columns(names, ref.gene_name),
        rows=rows,
        missing_conservation=missing,
        explanation=explanation,
    )


def receptor_table_summary(table: ReceptorTable, max_rows: int = 10) -> str:
    """Multi-line summary of a residue-mapping table.

    Parameters
    ----------
    table : ReceptorTable
        The mapping result.
    max_rows : int
        Rows shown in the preview.

    Returns
    -------
    str
    """
    lines = [
        f"═══ Residue Mapping: {table.reference} ═══",
        "",
        f"  Receptors:         {', '.join(table.receptors)}",
        f"  Rows:              {len(table.rows)}",
        f"  Columns:           {len(table.columns)}",
        "",
        "  Preview (resNum / AA per receptor):",
    ]
    for row in table.rows[:max_rows]:
        cells = [
            f"{name}:{row[f'{name}_resNum']}{row[f'{name}_AA']}"
            for name in table.receptors
        ]
        gpcrdb = row[f"{table.reference}_gpcrdb"]
        lines.append(f"    {gpcrdb:>8s}  " + "  ".join(cells))
    if len(table.rows) > max_rows:
        lines.append(f"    ... {len(table.rows) - max_rows} more rows")
    return "\n".join(lines)


# ═══════════════════════════════════════════════════════════════════════
# Pairwise comparison
# ═══════════════════════════════════════════════════════════════════════


def compare_receptors(
    catalog: ReceptorCatalog,
    source: LocalDataSource,
    gene1: str,
    gene2: str,
    threshold: float = DEFAULT_CONSERVATION_THRESHOLD,
) -> ReceptorComparison:
    """Categorise the conserved residues of two receptors.

    Both receptors must be in the same class; their conservation tables
    are required.
    """
    if not gene1 or not gene2:
        raise ReceptorSelectionError("Both receptors are required")
    r1, r2 = catalog.require_same_class([gene1, gene2])

    by_gene = sequences_by_gene(_class_sequences(source, r1.receptor_class))
    for r in (r1, r2):
        if r.gene_name not in by_gene:
            raise SequenceNotFoundError(f"Sequence not found in FASTA file for {r.gene_name}.")
    validate_alignment([by_gene[r1.gene_name], by_gene[r2.gene_name]])
    seq1 = by_gene[r1.gene_name].sequence
    seq2 = by_gene[r2.gene_name].sequence

    table1 = parse_conservation_table(
        source.read_text(r1.conservation_file or conservation_path(r1.gene_name))
    )
    table2 = parse_conservation_table(
        source.read_text(r2.conservation_file or conservation_path(r2.gene_name))
    )

    pairs = pair_residues(seq1, seq2)
    residues = categorize_residues(pairs, table1, table2, threshold)
    counts = {c: 0 for c in CATEGORIES}
    for r in residues:
        counts[r.category] += 1

    explanation = textwrap.dedent(f"""\
        Conserved residues of {r1.gene_name} vs {r2.gene_name} (≥ {threshold:g}%):
        • Aligned residue pairs: {len(pairs)}
        • Common (similar in both): {counts['common']}
        • Conserved in both but different: {counts['specific_both']}
        • Specific to {r1.gene_name}: {counts['specific1']}
        • Specific to {r2.gene_name}: {counts['specific2']}
    """)

    return ReceptorComparison(
        gene1=r1.gene_name,
        gene2=r2.gene_name,
        threshold=threshold,
        pairs=pairs,
        residues=residues,
        category_counts=counts,
        explanation=explanation,
    )


# ═══════════════════════════════════════════════════════════════════════
# Ortholog combination
# ═══════════════════════════════════════════════════════════════════════


def _receptor_orthologs(
    source: LocalDataSource,
    receptor: Receptor,
    human: Sequence,
) -> Optional[List[Sequence]]:
    """Orthologs of one receptor projected onto its trimmed class row."""
    if not receptor.alignment:
        logger.warning("No alignment path found for %s", receptor.gene_name)
        return None
    try:
        orthologs = parse_fasta(source.read_text(receptor.alignment), clean=True)
    except DataFileNotFoundError as exc:
        logger.warning("Failed to load orthologs for %s: %s", receptor.gene_name, exc)
        return None

    human_ortholog = find_by_header(orthologs, human.header)
    if human_ortholog is None:
        logger.warning(
            "Human sequence %s not found in ortholog alignment of %s",
            human.header, receptor.gene_name,
        )
        return None

    trimmed = trim_to_reference_columns(human_ortholog.sequence, orthologs)
    try:
        return project_onto_reference(human.sequence, trimmed)
    except AlignmentLengthError as exc:
        logger.warning("Cannot place orthologs of %s: %s", receptor.gene_name, exc)
        return None


def combine_orthologs(
    catalog: ReceptorCatalog,
    source: LocalDataSource,
    genes: SequenceType[str],
) -> OrthologCombination:
    """Merge per-receptor ortholog alignments into the class frame.

    Each receptor's orthologs are trimmed to the columns of its human
    sequence, then re-gapped to match that sequence's row in the class
    alignment (restricted to the selected receptors), so all orthologs
    share one column frame.
    """
    if not genes:
        raise ReceptorSelectionError("Please select at least one receptor")
    receptors = catalog.require_same_class(genes)
    names = [r.gene_name for r in receptors]

    class_rows = remove_all_gap_columns(
        filter_by_genes(_class_sequences(source, receptors[0].receptor_class), names)
    )
    found = {row.gene_name for row in class_rows}
    skipped = [n for n in names if n not in found]
    for n in skipped:
        logger.warning("%s is not in the class %s alignment", n, receptors[0].receptor_class)

    combined: List[Sequence] = []
    contributed: List[str] = []
    for row in class_rows:
        projected = _receptor_orthologs(source, catalog.get(row.gene_name), row)
        if projected is None:
            skipped.append(row.gene_name)
            continue
        combined.extend(projected)
        contributed.append(row.gene_name)

    filename = f"{'-'.join(genes)}_orthologs_combined.fasta"
    explanation = textwrap.dedent(f"""\
        Combined orthologs for {', '.join(names)}:
        • Receptors merged: {', '.join(contributed) or 'none'}
        • Receptors skipped: {', '.join(skipped) or 'none'}
        • Sequences: {len(combined)}, columns: {len(combined[0].sequence) if combined else 0}
    """)

    return OrthologCombination(
        genes=list(genes),
        sequences=combined,
        contributed=contributed,
        skipped=skipped,
        filename=filename,
        explanation=explanation,
    )


# ═══════════════════════════════════════════════════════════════════════
# Sequence logos
# ═══════════════════════════════════════════════════════════════════════


def class_reference_labels(
    catalog: ReceptorCatalog,
    source: LocalDataSource,
    reference_sequences: SequenceType[Sequence],
    classes: SequenceType[str],
) -> Dict[str, List[str]]:
    """GPCRdb label per column for the representative gene of each class.

    ``reference_sequences`` are the human reference rows aligned to the
    logo's column frame. Genes without a row are skipped; genes without
    conservation data get empty labels.
    """
    by_gene = sequences_by_gene(reference_sequences)
    labels: Dict[str, List[str]] = {}
    for cls in classes:
        gene = CLASS_REFERENCE_GENES.get(cls)
        if gene is None:
            logger.warning("No reference gene for class %s", cls)
            continue
        record = by_gene.get(gene)
        if record is None:
            logger.warning("Reference %s missing from reference sequences", gene)
            continue
        if gene in catalog and catalog.get(gene).conservation_file:
            table = _load_conservation(source, catalog.get(gene).conservation_file, gene)
        else:
            table = {}
        if table:
            labels[gene] = gpcrdb_column_map(record.sequence, table)
        else:
            labels[gene] = [""] * len(record.sequence)
    return labels


def analyze_logos(
    alignments: Mapping[str, SequenceType[Sequence]],
    mode: str = "entropy",
    blur_threshold: float = DEFAULT_BLUR_THRESHOLD,
    reference_labels: Optional[Mapping[str, List[str]]] = None,
) -> LogoAnalysis:
    """Sequence-logo data for alignments sharing one column frame.

    Parameters
    ----------
    alignments : Mapping[str, Sequence of Sequence]
        Alignment name → records.
    mode : str
        ``entropy`` (residues only, log2(20)), ``entropy_gaps`` (gaps as
        21st symbol, log2(21)) or ``match`` (similarity-group match
        percentage).
    blur_threshold : float
        Match mode: cross-alignment percentage under which positions are
        flagged as blurred.
    reference_labels : Mapping[str, List[str]], optional
        GPCRdb labels per column to carry along.

    Returns
    -------
    LogoAnalysis
    """
    seqs = {name: [r.sequence for r in records] for name, records in alignments.items()}
    profiles = alignment_logo_profiles(seqs, mode=mode, blur_threshold=blur_threshold)
    first = next(iter(profiles.values()), [])
    n_blurred = sum(1 for p in first if p.blurred)

    info = [
        p.data.information_content
        for positions in profiles.values()
        for p in positions
        if p.data is not None
    ]
    mean_info = float(np.mean(info)) if info else 0.0

    explanation = textwrap.dedent(f"""\
        Sequence logo ({mode} mode) for {len(seqs)} alignment(s):
        • Alignments: {', '.join(f'{n} ({len(s)} seqs)' for n, s in seqs.items())}
        • Displayed positions: {len(first)}
        • Mean stack height: {mean_info:.3f} bits
        • Positions below {blur_threshold:g}% cross-alignment match: {n_blurred}
    """)

    return LogoAnalysis(
        mode=mode,
        blur_threshold=blur_threshold,
        profiles=profiles,
        reference_labels=dict(reference_labels or {}),
        n_positions=len(first),
        n_blurred=n_blurred,
        explanation=explanation,
    )


# ═══════════════════════════════════════════════════════════════════════
# Pairwise overlap
# ═══════════════════════════════════════════════════════════════════════


def analyze_overlap(
    alignments: Mapping[str, SequenceType[Sequence]],
    threshold: float = DEFAULT_OVERLAP_THRESHOLD,
) -> OverlapAnalysis:
    """Count conserved positions shared between every pair of alignments."""
    names = list(alignments)
    profiles = [
        column_conservation_profile([r.sequence for r in alignments[n]])
        for n in names
    ]
    matrix = overlap_matrix(profiles, threshold)

    lines = [f"Overlap of conserved positions (≥ {threshold:g}%):"]
    for i, name in enumerate(names):
        lines.append(f"• {name}: {matrix[i, i]} conserved positions")
    explanation = "\n".join(lines) + "\n"

    return OverlapAnalysis(
        names=names,
        profiles=profiles,
        matrix=matrix,
        threshold=threshold,
        explanation=explanation,
    )


# ═══════════════════════════════════════════════════════════════════════
# Consensus emission
# ═══════════════════════════════════════════════════════════════════════


def emit_consensus(
    custom_alignments: Mapping[str, SequenceType[Sequence]],
    counts: Optional[Mapping[str, int]] = None,
    class_alignments: Optional[Mapping[str, SequenceType[Sequence]]] = None,
    human_references: SequenceType[Sequence] = (),
) -> ConsensusResult:
    """Top-N consensus sequences of custom and class alignments.

    Display columns span from the first to the last occupied column of
    the custom alignments. Class alignments (keyed by class code) are
    sampled through their representative human receptor: each display
    column is converted to that receptor's residue number via
    ``human_references`` and looked up in the class alignment.

    Parameters
    ----------
    custom_alignments : Mapping[str, Sequence of Sequence]
        Custom MSAs sharing one column frame.
    counts : Mapping[str, int], optional
        Consensus sequences per alignment name (default 1).
    class_alignments : Mapping[str, Sequence of Sequence], optional
        Class code → class MSA.
    human_references : Sequence of Sequence
        Human reference rows in the custom column frame.

    Returns
    -------
    ConsensusResult
    """
    counts = counts or {}
    class_alignments = class_alignments or {}
    display = occupied_column_span(
        [[r.sequence for r in records] for records in custom_alignments.values()]
    )

    records: List[Sequence] = []
    skipped: List[str] = []

    for name, alignment in custom_alignments.items():
        n = counts.get(name, 1)
        seqs = consensus_sequences([r.sequence for r in alignment], n, display)
        for rank, seq in enumerate(seqs, start=1):
            records.append(Sequence(consensus_header(name, rank, n, "custom_msa"), seq))

    for cls, alignment in class_alignments.items():
        name = f"class{cls}_humans_MSA"
        n = counts.get(name, counts.get(cls, 1))
        rep = CLASS_REFERENCE_GENES.get(cls)
        human_rep = _find_reference_record(human_references, rep) if rep else None
        family_rep = _find_reference_record(alignment, rep) if rep else None
        if human_rep is None or family_rep is None:
            logger.warning("No representative receptor for class %s; emitting gaps", cls)
            skipped.append(name)

        mapped: List[Optional[int]] = []
        for col in display:
            res_num = residue_number_at_column(human_rep.sequence, col) if human_rep else None
            if res_num is None or family_rep is None:
                mapped.append(None)
            else:
                mapped.append(column_of_residue(family_rep.sequence, res_num))

        seqs = consensus_sequences([r.sequence for r in alignment], n, mapped)
        for rank, seq in enumerate(seqs, start=1):
            records.append(Sequence(consensus_header(name, rank, n, "alignments"), seq))

    explanation = textwrap.dedent(f"""\
        Consensus sequences:
        • Display columns: {len(display)}{f' ({display[0]}–{display[-1]})' if display else ''}
        • Alignments: {len(custom_alignments)} custom, {len(class_alignments)} class
        • Records emitted: {len(records)}
    """)

    return ConsensusResult(
        records=records,
        display_columns=display,
        explanation=explanation,
        skipped=skipped,
    )
