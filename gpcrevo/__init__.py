"""
GPCR Evo — Alignment, Conservation and Tree-Layout Core.

Pure data transformations behind a GPCR evolution browser: Newick trees
are parsed and laid out, FASTA alignments trimmed and renumbered across
receptors, and per-column conservation turned into sequence-logo
statistics.

Modules
-------
newick
    Newick parser (Bio.Phylo) and tree helpers.
tree_layout
    Pixel layout of parsed trees with functional collapse state.
fasta
    FASTA parsing, serialisation, validation and gene lookup.
trimming
    Gap trimming and projection of orthologs onto a reference frame.
conservation
    Per-receptor conservation tables and GPCRdb column labels.
residue_mapping
    Residue renumbering, multi-receptor mapping tables, pairwise
    comparison.
logo_stats
    Entropy and match-percentage logo statistics, overlap matrix,
    consensus sequences.
catalog
    Receptor metadata catalog and local data source.
analysis
    High-level pipelines and result dataclasses for the CLI.
errors
    Exception hierarchy.
"""

# ── Errors ──
from gpcrevo.errors import (
    GpcrEvoError,
    NewickParseError,
    FastaParseError,
    AlignmentLengthError,
    ConservationTableError,
    ReceptorNotFoundError,
    SequenceNotFoundError,
    DataFileNotFoundError,
    ReceptorSelectionError,
    ClassMismatchError,
)

# ── Trees ──
from gpcrevo.newick import (
    NewickNode,
    parse_newick,
    iter_nodes,
    leaf_names,
    find_node,
)
from gpcrevo.tree_layout import (
    DEFAULT_LEAF_ROW_SPACING,
    DEFAULT_TREE_WIDTH_PX,
    NodePosition,
    TreeLayout,
    layout_tree,
    toggle_collapsed,
)

# ── Sequences ──
from gpcrevo.fasta import (
    GAP,
    Sequence,
    parse_fasta,
    read_fasta_file,
    format_fasta,
    validate_alignment,
    gene_name_from_header,
    sequences_by_gene,
    filter_by_genes,
)
from gpcrevo.trimming import (
    non_gap_columns,
    trim_to_reference_columns,
    trim_to_first_sequence,
    remove_all_gap_columns,
    project_onto_reference,
)

# ── Conservation and mapping ──
from gpcrevo.conservation import (
    ConservationRecord,
    parse_conservation_table,
    gpcrdb_column_map,
)
from gpcrevo.residue_mapping import (
    DEFAULT_CONSERVATION_THRESHOLD,
    ReceptorSequence,
    ResiduePair,
    CategorizedResidue,
    number_columns,
    map_residues,
    mapping_columns,
    parse_residue_allowlist,
    filter_by_residue_numbers,
    mapping_to_dataframe,
    mapping_to_tsv,
    pair_residues,
    blosum80_score,
    categorize_residues,
)

# ── Logo statistics ──
from gpcrevo.logo_stats import (
    AMINO_ACIDS,
    SIMILARITY_GROUPS,
    MAX_BITS,
    MAX_BITS_WITH_GAPS,
    PositionLogoData,
    MatchConservation,
    CrossAlignmentConservation,
    LogoPosition,
    ColumnConservation,
    position_logo_data,
    simple_conservation,
    position_match_logo_data,
    cross_alignment_conservation,
    alignment_logo_profiles,
    are_similar,
    column_conservation_profile,
    overlap_matrix,
    consensus_sequences,
    occupied_column_span,
)

# ── Catalog ──
from gpcrevo.catalog import (
    CLASS_REFERENCE_GENES,
    Receptor,
    ReceptorCatalog,
    LocalDataSource,
    class_alignment_path,
    conservation_path,
)

# ── Analysis ──
from gpcrevo.analysis import (
    TreeAnalysis,
    ReceptorTable,
    ReceptorComparison,
    OrthologCombination,
    LogoAnalysis,
    OverlapAnalysis,
    ConsensusResult,
    analyze_tree,
    build_receptor_table,
    receptor_table_summary,
    compare_receptors,
    combine_orthologs,
    class_reference_labels,
    analyze_logos,
    analyze_overlap,
    emit_consensus,
)
