"""
GPCR Evo — Newick Parser.

Reads Newick text with Biopython's ``Bio.Phylo`` and freezes the parsed
clades into an immutable tree of ``NewickNode`` objects.

Supported grammar:
    tree     := node ';'
    node     := group? label? (':' length)?
    group    := '(' node (',' node)* ')'
    label    := quoted | bare

Bare labels run up to the next structural character and may contain
spaces. A label written directly after ``)`` is read as a support value
when it is numeric, and as the internal node's name otherwise.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from io import StringIO
from typing import Dict, Iterator, List, Optional, Tuple

from Bio import Phylo
from Bio.Phylo.NewickIO import NewickError

from gpcrevo.errors import NewickParseError


# ═══════════════════════════════════════════════════════════════════════
# Constants
# ═══════════════════════════════════════════════════════════════════════

NUMBER_PATTERN = re.compile(r"[+-]?(?:\d+\.?\d*|\d*\.\d+)(?:[eE][+-]?\d+)?")
"""Signed decimal with optional exponent (branch lengths, supports)."""

ROOT_ID = "root"
"""Identity string of the root node."""

_LABEL_TOKEN = re.compile(
    r"(?P<quoted>'[^']*')"
    r"|(?P<open_quote>')"
    r"|:(?P<length>[^,():;']*)"
    r"|(?P<bare>[^,():;']+)"
)


# ═══════════════════════════════════════════════════════════════════════
# Data classes
# ═══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class NewickNode:
    """A node of a parsed Newick tree.

    Attributes
    ----------
    name : str, optional
        Leaf or internal label (None when unlabelled).
    length : float
        Branch length from the parent (0 when not given).
    support : float, optional
        Bootstrap / confidence value of an internal node.
    children : Tuple[NewickNode, ...]
        Child subtrees, left to right. Empty for leaves.
    """
    name: Optional[str] = None
    length: float = 0.0
    support: Optional[float] = None
    children: Tuple["NewickNode", ...] = ()

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def n_leaves(self) -> int:
        count = 0
        stack: List[NewickNode] = [self]
        while stack:
            node = stack.pop()
            if node.is_leaf:
                count += 1
            else:
                stack.extend(node.children)
        return count


# ═══════════════════════════════════════════════════════════════════════
# Parser
# ═══════════════════════════════════════════════════════════════════════


def _normalise_token(match: re.Match) -> str:
    """Rewrite one label or branch length into the form Bio.Phylo reads."""
    if match.group("quoted") is not None:
        return match.group("quoted")
    if match.group("open_quote") is not None:
        raise NewickParseError(
            f"Invalid Newick: unterminated quoted name at position {match.start()}"
        )
    if match.group("length") is not None:
        value = match.group("length").strip()
        if not NUMBER_PATTERN.fullmatch(value):
            raise NewickParseError(
                f"Invalid Newick: expected branch length at position {match.start('length')}"
            )
        return f":{float(value)!r}"

    label = " ".join(match.group("bare").split())
    if any(ch.isspace() for ch in label):
        return f"'{label}'"
    return label


def _freeze(root_clade) -> NewickNode:
    """Convert Bio.Phylo clades into NewickNode objects, bottom-up."""
    built: Dict[int, NewickNode] = {}
    # (clade, children_done)
    stack = [(root_clade, False)]
    while stack:
        clade, children_done = stack.pop()
        if clade.clades and not children_done:
            stack.append((clade, True))
            stack.extend((child, False) for child in clade.clades)
            continue

        support: Optional[float] = None
        if clade.clades and clade.confidence is not None:
            support = float(clade.confidence)
        built[id(clade)] = NewickNode(
            name=clade.name or None,
            length=float(clade.branch_length or 0.0),
            support=support,
            children=tuple(built.pop(id(child)) for child in clade.clades),
        )
    return built[id(root_clade)]


def parse_newick(text: str) -> NewickNode:
    """Parse Newick text into a tree.

    Parameters
    ----------
    text : str
        Newick string terminated by ``;``.

    Returns
    -------
    NewickNode
        Root of the parsed tree.

    Raises
    ------
    NewickParseError
        If the terminating ``;`` is missing, a branch length cannot be
        parsed, a quote is left open or the parentheses do not balance.
    """
    normalised = _LABEL_TOKEN.sub(_normalise_token, text).strip()
    if not normalised.endswith(";"):
        raise NewickParseError("Invalid Newick: missing ;")

    try:
        tree = Phylo.read(StringIO(normalised), "newick")
    except NewickError as exc:
        if "parenthes" in str(exc).lower():
            raise NewickParseError("Invalid Newick: unbalanced parentheses") from exc
        raise NewickParseError(f"Invalid Newick: {exc}") from exc
    except ValueError as exc:
        raise NewickParseError(f"Invalid Newick: {exc}") from exc
    return _freeze(tree.root)


# ═══════════════════════════════════════════════════════════════════════
# Tree helpers
# ═══════════════════════════════════════════════════════════════════════


def path_to_id(path: Tuple[int, ...]) -> str:
    """Identity string for a child-index path (``()`` → ``"root"``)."""
    return ".".join(str(i) for i in path) or ROOT_ID


def iter_nodes(root: NewickNode) -> Iterator[Tuple[str, NewickNode]]:
    """Yield ``(id_str, node)`` pairs in depth-first pre-order."""
    stack: List[Tuple[Tuple[int, ...], NewickNode]] = [((), root)]
    while stack:
        path, node = stack.pop()
        yield path_to_id(path), node
        for i in range(len(node.children) - 1, -1, -1):
            stack.append((path + (i,), node.children[i]))


def leaf_names(root: NewickNode) -> List[Optional[str]]:
    """Leaf names in left-to-right order."""
    return [node.name for _, node in iter_nodes(root) if node.is_leaf]


def find_node(root: NewickNode, id_str: str) -> NewickNode:
    """Return the node addressed by ``id_str``.

    Raises
    ------
    KeyError
        If the path does not exist in the tree.
    """
    if id_str == ROOT_ID:
        return root
    node = root
    for part in id_str.split("."):
        if not part.isdigit() or int(part) >= len(node.children):
            raise KeyError(f"No node {id_str!r} in tree")
        node = node.children[int(part)]
    return node
