#!/usr/bin/env python3
"""
GPCR Evo — CLI Entry Point.

Seven modes:
    --tree           Parse and lay out a Newick tree
    --table          Multi-receptor residue mapping table (default)
    --compare        Pairwise comparison of conserved residues
    --combine        Combine ortholog alignments into the class frame
    --logo           Sequence-logo statistics of FASTA alignments
    --overlap        Pairwise overlap matrix of conserved positions
    --consensus      Top-N consensus sequences of FASTA alignments

Usage:
    python main.py --tree --newick trees/HRH2.nwk --collapse 1.0
    python main.py --table --reference HRH2 --targets HRH1 HRH3 --residues 98,190
    python main.py --compare --reference HRH2 --targets HRH1 --threshold 90
    python main.py --combine --genes HRH1 HRH2 --output combined.fasta
    python main.py --logo --fasta a.fasta b.fasta --mode match --threshold 60
    python main.py --overlap --fasta a.fasta b.fasta c.fasta
    python main.py --consensus --fasta a.fasta --top 3 --verbose
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time

# Ensure project root is on sys.path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from gpcrevo.analysis import (
    analyze_logos,
    analyze_overlap,
    analyze_tree,
    build_receptor_table,
    combine_orthologs,
    compare_receptors,
    emit_consensus,
    receptor_table_summary,
)
from gpcrevo.catalog import CATALOG_PATH, DATA_DIR_ENV, LocalDataSource, default_data_dir
from gpcrevo.errors import DataFileNotFoundError, GpcrEvoError
from gpcrevo.fasta import read_fasta_file
from gpcrevo.logo_stats import DEFAULT_BLUR_THRESHOLD, DEFAULT_OVERLAP_THRESHOLD, LOGO_MODES
from gpcrevo.residue_mapping import DEFAULT_CONSERVATION_THRESHOLD, parse_residue_allowlist
from gpcrevo.tree_layout import DEFAULT_LEAF_ROW_SPACING, DEFAULT_TREE_WIDTH_PX

logger = logging.getLogger("gpcrevo")

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="gpcrevo",
        description="GPCR Evo — Alignment, Conservation and Tree-Layout Toolkit",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--tree", action="store_true",
                      help="Parse and lay out a Newick tree")
    mode.add_argument("--table", action="store_true", default=True,
                      help="Multi-receptor residue mapping table (default)")
    mode.add_argument("--compare", action="store_true",
                      help="Pairwise comparison of conserved residues")
    mode.add_argument("--combine", action="store_true",
                      help="Combine ortholog alignments")
    mode.add_argument("--logo", action="store_true",
                      help="Sequence-logo statistics")
    mode.add_argument("--overlap", action="store_true",
                      help="Overlap matrix of conserved positions")
    mode.add_argument("--consensus", action="store_true",
                      help="Top-N consensus sequences")

    # Inputs
    parser.add_argument("--data-dir", type=str, default=None,
                        help=f"Data directory (default: ${DATA_DIR_ENV} or 'public')")
    parser.add_argument("--catalog", type=str, default=CATALOG_PATH,
                        help=f"Catalog path inside the data directory (default: {CATALOG_PATH})")
    parser.add_argument("--newick", type=str,
                        help="Newick file (--tree)")
    parser.add_argument("--fasta", type=str, nargs="+", default=[],
                        help="FASTA alignment files (--logo, --overlap, --consensus)")

    # Selections
    parser.add_argument("--reference", type=str,
                        help="Reference receptor gene (--table, --compare)")
    parser.add_argument("--targets", type=str, nargs="+", default=[],
                        help="Target receptor genes (--table, --compare)")
    parser.add_argument("--genes", type=str, nargs="+", default=[],
                        help="Receptor genes (--combine)")
    parser.add_argument("--residues", type=str, default="",
                        help="Comma-separated reference residue numbers (--table)")

    # Parameters
    parser.add_argument("--threshold", type=float, default=None,
                        help="Conservation threshold in percent "
                             f"(--compare: {DEFAULT_CONSERVATION_THRESHOLD:g}, "
                             f"--overlap: {DEFAULT_OVERLAP_THRESHOLD:g}, --logo: blur level)")
    parser.add_argument("--mode", type=str, default="entropy", choices=list(LOGO_MODES),
                        help="Logo statistics mode (default: entropy)")
    parser.add_argument("--top", type=int, default=1,
                        help="Consensus sequences per alignment (default: 1)")
    parser.add_argument("--collapse", type=str, nargs="*", default=[],
                        help="Node ids to collapse, e.g. 0 1.0 (--tree)")
    parser.add_argument("--row-spacing", type=float, default=DEFAULT_LEAF_ROW_SPACING,
                        help=f"Pixels between tree rows (default: {DEFAULT_LEAF_ROW_SPACING:g})")
    parser.add_argument("--width", type=float, default=DEFAULT_TREE_WIDTH_PX,
                        help=f"Tree width in pixels (default: {DEFAULT_TREE_WIDTH_PX:g})")

    # Output
    parser.add_argument("-o", "--output", type=str, default=None,
                        help="Write the table / FASTA result to this file")
    parser.add_argument("--verbose", action="store_true",
                        help="Verbose output")

    return parser


def _data_source(args) -> LocalDataSource:
    return LocalDataSource(args.data_dir or default_data_dir())


def _load_alignments(paths):
    alignments = {}
    for path in paths:
        if not os.path.isfile(path):
            raise DataFileNotFoundError(f"Alignment file not found: {path}")
        name = os.path.splitext(os.path.basename(path))[0]
        alignments[name] = read_fasta_file(path, clean=True)
    return alignments


def _write_output(path: str, text: str):
    with open(path, "w") as f:
        f.write(text)
    print(f"  Saved: {path}")


def _banner(title: str):
    print(f"\n{'═' * 60}")
    print(f"  {title}")
    print(f"{'═' * 60}\n")


# ── Commands ──


def cmd_tree(args):
    """Parse and lay out a Newick tree."""
    t0 = time.time()
    if not args.newick:
        raise GpcrEvoError("--tree needs --newick FILE")
    if not os.path.isfile(args.newick):
        raise DataFileNotFoundError(f"Newick file not found: {args.newick}")
    with open(args.newick, "r") as f:
        text = f.read()

    _banner(f"Tree Layout: {os.path.basename(args.newick)}")
    analysis = analyze_tree(
        text,
        leaf_row_spacing=args.row_spacing,
        collapsed=set(args.collapse),
        tree_width_px=args.width,
    )
    print(analysis.explanation)

    header = f"{'Node':12s} {'Name':20s} {'x':>8s} {'y':>8s}"
    print(header)
    print("─" * len(header))
    for pos in analysis.layout.row_nodes:
        name = pos.node.name or ("[collapsed]" if pos.collapsed else "")
        print(f"{pos.id_str:12s} {name[:20]:20s} {pos.x:>8.1f} {pos.y:>8.1f}")

    elapsed = time.time() - t0
    print(f"\n  Done in {elapsed:.2f}s")


def cmd_table(args):
    """Multi-receptor residue mapping table."""
    t0 = time.time()
    source = _data_source(args)
    catalog = source.load_catalog(args.catalog)
    residues = parse_residue_allowlist(args.residues) if args.residues else []

    _banner(f"Residue Mapping: {args.reference} → {', '.join(args.targets)}")
    table = build_receptor_table(catalog, source, args.reference or "", args.targets, residues)
    print(receptor_table_summary(table))

    if args.verbose:
        print(f"\n{table.explanation}")

    if args.output:
        _write_output(args.output, table.to_tsv())

    elapsed = time.time() - t0
    print(f"\n  Done in {elapsed:.2f}s")


def cmd_compare(args):
    """Pairwise comparison of conserved residues."""
    t0 = time.time()
    if not args.reference or len(args.targets) != 1:
        raise GpcrEvoError("--compare needs --reference GENE and exactly one --targets GENE")
    source = _data_source(args)
    catalog = source.load_catalog(args.catalog)
    threshold = args.threshold if args.threshold is not None else DEFAULT_CONSERVATION_THRESHOLD

    _banner(f"Comparison: {args.reference} vs {args.targets[0]} (≥ {threshold:g}%)")
    comparison = compare_receptors(catalog, source, args.reference, args.targets[0], threshold)
    print(comparison.explanation)

    header = f"{'Category':15s} {'Res1':>6s} {'AA1':>4s} {'%1':>7s} {'Res2':>6s} {'AA2':>4s} {'%2':>7s} {'GPCRdb':>8s}"
    print(header)
    print("─" * len(header))
    for r in comparison.residues:
        res1 = str(r.res_num1) if r.res_num1 is not None else "gap"
        res2 = str(r.res_num2) if r.res_num2 is not None else "gap"
        print(f"{r.category:15s} {res1:>6s} {r.conserved_aa1:>4s} {r.perc1:>7.1f} "
              f"{res2:>6s} {r.conserved_aa2:>4s} {r.perc2:>7.1f} {r.gpcrdb1:>8s}")

    if args.output:
        _write_output(args.output, comparison.dataframe.to_csv(sep="\t", index=False,
                                                               lineterminator="\n"))

    elapsed = time.time() - t0
    print(f"\n  Done in {elapsed:.2f}s")


def cmd_combine(args):
    """Combine ortholog alignments."""
    t0 = time.time()
    source = _data_source(args)
    catalog = source.load_catalog(args.catalog)

    _banner(f"Combine Orthologs: {', '.join(args.genes)}")
    result = combine_orthologs(catalog, source, args.genes)
    print(result.explanation)

    _write_output(args.output or result.filename, result.to_fasta())

    elapsed = time.time() - t0
    print(f"\n  Done in {elapsed:.2f}s")


def cmd_logo(args):
    """Sequence-logo statistics."""
    t0 = time.time()
    if not args.fasta:
        raise GpcrEvoError("--logo needs --fasta FILE [FILE ...]")
    alignments = _load_alignments(args.fasta)
    blur = args.threshold if args.threshold is not None else DEFAULT_BLUR_THRESHOLD

    _banner(f"Sequence Logo ({args.mode}): {', '.join(alignments)}")
    analysis = analyze_logos(alignments, mode=args.mode, blur_threshold=blur)
    print(analysis.explanation)

    if args.verbose:
        for name, positions in analysis.profiles.items():
            print(f"  {name}")
            for p in positions:
                if p.data is None:
                    continue
                top = max(p.data.letter_heights.items(), key=lambda kv: kv[1])
                mark = " (blurred)" if p.blurred else ""
                print(f"    {p.position:>5d} col {p.column:>5d}  "
                      f"{p.data.information_content:5.2f} bits  top {top[0]}{mark}")

    elapsed = time.time() - t0
    print(f"\n  Done in {elapsed:.2f}s")


def cmd_overlap(args):
    """Overlap matrix of conserved positions."""
    t0 = time.time()
    if len(args.fasta) < 2:
        raise GpcrEvoError("--overlap needs at least two --fasta files")
    alignments = _load_alignments(args.fasta)
    threshold = args.threshold if args.threshold is not None else DEFAULT_OVERLAP_THRESHOLD

    _banner(f"Overlap Matrix (≥ {threshold:g}%)")
    analysis = analyze_overlap(alignments, threshold=threshold)
    print(analysis.dataframe.to_string())

    if args.verbose:
        print(f"\n{analysis.explanation}")

    if args.output:
        _write_output(args.output, analysis.dataframe.to_csv(sep="\t", lineterminator="\n"))

    elapsed = time.time() - t0
    print(f"\n  Done in {elapsed:.2f}s")


def cmd_consensus(args):
    """Top-N consensus sequences."""
    t0 = time.time()
    if not args.fasta:
        raise GpcrEvoError("--consensus needs --fasta FILE [FILE ...]")
    alignments = _load_alignments(args.fasta)
    counts = {name: args.top for name in alignments}

    _banner(f"Consensus (top {args.top}): {', '.join(alignments)}")
    result = emit_consensus(alignments, counts)
    print(result.explanation)

    if args.verbose:
        for record in result.records:
            print(f"  >{record.header}\n  {record.sequence}")

    if args.output:
        _write_output(args.output, result.to_fasta())

    elapsed = time.time() - t0
    print(f"\n  Done in {elapsed:.2f}s")


def main():
    """Main dispatch."""
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format=LOG_FORMAT,
    )

    try:
        if args.tree:
            cmd_tree(args)
        elif args.compare:
            cmd_compare(args)
        elif args.combine:
            cmd_combine(args)
        elif args.logo:
            cmd_logo(args)
        elif args.overlap:
            cmd_overlap(args)
        elif args.consensus:
            cmd_consensus(args)
        else:
            cmd_table(args)
    except GpcrEvoError as exc:
        logger.error("%s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
