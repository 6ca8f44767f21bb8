"""
GPCR Evo — Tree Layout Engine.

Computes pixel coordinates for a parsed Newick tree without touching
the tree itself. Layout results live in a map keyed by each node's
identity string, so one parsed tree can back several views with
different spacing, widths or collapse states.

Pipeline:
    NewickNode
        → cumulative branch distance + identity per node (pre-order)
        → row assignment for leaves / collapsed nodes (post-order)
        → x = distance × scale
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import AbstractSet, Dict, FrozenSet, List, Optional, Tuple

from gpcrevo.newick import NewickNode, path_to_id


# ═══════════════════════════════════════════════════════════════════════
# Constants
# ═══════════════════════════════════════════════════════════════════════

DEFAULT_LEAF_ROW_SPACING: float = 28.0
"""Vertical distance in pixels between consecutive rows."""

DEFAULT_TREE_WIDTH_PX: float = 175.0
"""Horizontal extent in pixels of the deepest node."""

MIN_DISTANCE: float = 1e-6
"""Floor for the maximum distance when computing the x scale."""


# ═══════════════════════════════════════════════════════════════════════
# Data classes
# ═══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class NodePosition:
    """Layout of one tree node.

    Attributes
    ----------
    id_str : str
        Dot-joined child-index path from the root (``"root"`` for the root).
    node : NewickNode
        The laid-out node.
    parent_id : str, optional
        Identity of the parent (None for the root).
    dist : float
        Cumulative branch length from the root.
    x : float
        Horizontal pixel coordinate.
    y : float, optional
        Vertical pixel coordinate; None when hidden under a collapsed
        ancestor.
    visible : bool
        False for descendants of a collapsed node.
    is_row : bool
        True for visible leaves and collapsed nodes (one row each).
    collapsed : bool
        True if this node's subtree is collapsed.
    """
    id_str: str
    node: NewickNode
    parent_id: Optional[str]
    dist: float
    x: float
    y: Optional[float]
    visible: bool
    is_row: bool
    collapsed: bool = False


@dataclass
class TreeLayout:
    """Complete layout of a tree for one view.

    Attributes
    ----------
    tree : NewickNode
        The (unchanged) parsed tree.
    positions : Dict[str, NodePosition]
        Layout per node identity, in pre-order.
    row_nodes : List[NodePosition]
        Visible leaves and collapsed nodes, top to bottom.
    visible_leaves : List[NodePosition]
        True leaves among ``row_nodes``.
    total_height : float
        Height in pixels occupied by the rows.
    max_distance : float
        Maximum cumulative branch length over all nodes.
    scale_x : float
        Pixels per unit of branch length.
    collapsed : FrozenSet[str]
        Collapsed node identities the layout was computed with.
    """
    tree: NewickNode
    positions: Dict[str, NodePosition]
    row_nodes: List[NodePosition]
    visible_leaves: List[NodePosition]
    total_height: float
    max_distance: float
    scale_x: float
    collapsed: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def row_ids(self) -> List[str]:
        return [p.id_str for p in self.row_nodes]

    def visible_edges(self) -> List[Tuple[NodePosition, NodePosition]]:
        """(parent, child) pairs where both ends are drawn."""
        edges = []
        for pos in self.positions.values():
            if pos.parent_id is None or not pos.visible:
                continue
            edges.append((self.positions[pos.parent_id], pos))
        return edges


# ═══════════════════════════════════════════════════════════════════════
# Layout
# ═══════════════════════════════════════════════════════════════════════


def _distances(root: NewickNode) -> Tuple[Dict[str, Tuple[float, Optional[str]]], float]:
    """Cumulative distance and parent id of every node, plus the maximum."""
    info: Dict[str, Tuple[float, Optional[str]]] = {}
    max_dist = 0.0
    stack: List[Tuple[Tuple[int, ...], NewickNode, float, Optional[str]]] = [
        ((), root, 0.0, None)
    ]
    while stack:
        path, node, parent_dist, parent_id = stack.pop()
        id_str = path_to_id(path)
        dist = parent_dist + node.length
        info[id_str] = (dist, parent_id)
        max_dist = max(max_dist, dist)
        for i in range(len(node.children) - 1, -1, -1):
            stack.append((path + (i,), node.children[i], dist, id_str))
    return info, max_dist


def _row_positions(
    root: NewickNode,
    leaf_row_spacing: float,
    collapsed: AbstractSet[str],
) -> Tuple[Dict[str, float], List[str]]:
    """Assign y to every visible node; return (y by id, row ids in order)."""
    ys: Dict[str, float] = {}
    rows: List[str] = []
    cursor = 0.0

    # (path, node, children_done)
    stack: List[Tuple[Tuple[int, ...], NewickNode, bool]] = [((), root, False)]
    while stack:
        path, node, children_done = stack.pop()
        id_str = path_to_id(path)

        if node.is_leaf or id_str in collapsed:
            ys[id_str] = cursor
            rows.append(id_str)
            cursor += leaf_row_spacing
            continue

        if children_done:
            child_ys = [ys[path_to_id(path + (i,))] for i in range(len(node.children))]
            ys[id_str] = sum(child_ys) / len(child_ys)
            continue

        stack.append((path, node, True))
        for i in range(len(node.children) - 1, -1, -1):
            stack.append((path + (i,), node.children[i], False))

    return ys, rows


def layout_tree(
    root: NewickNode,
    leaf_row_spacing: float = DEFAULT_LEAF_ROW_SPACING,
    collapsed: AbstractSet[str] = frozenset(),
    tree_width_px: float = DEFAULT_TREE_WIDTH_PX,
) -> TreeLayout:
    """Lay out a tree for display.

    Parameters
    ----------
    root : NewickNode
        Parsed tree (not modified).
    leaf_row_spacing : float
        Pixels between consecutive rows.
    collapsed : set of str
        Identities of nodes whose subtrees are folded into one row.
    tree_width_px : float
        Pixel width given to the deepest node.

    Returns
    -------
    TreeLayout
    """
    collapsed = frozenset(collapsed)
    dist_info, max_dist = _distances(root)
    ys, rows = _row_positions(root, leaf_row_spacing, collapsed)
    scale_x = tree_width_px / max(max_dist, MIN_DISTANCE)

    positions: Dict[str, NodePosition] = {}
    stack: List[Tuple[Tuple[int, ...], NewickNode]] = [((), root)]
    while stack:
        path, node = stack.pop()
        id_str = path_to_id(path)
        dist, parent_id = dist_info[id_str]
        y = ys.get(id_str)
        positions[id_str] = NodePosition(
            id_str=id_str,
            node=node,
            parent_id=parent_id,
            dist=dist,
            x=dist * scale_x,
            y=y,
            visible=y is not None,
            is_row=y is not None and (node.is_leaf or id_str in collapsed),
            collapsed=id_str in collapsed and not node.is_leaf,
        )
        for i in range(len(node.children) - 1, -1, -1):
            stack.append((path + (i,), node.children[i]))

    row_nodes = [positions[i] for i in rows]
    visible_leaves = [p for p in row_nodes if p.node.is_leaf]
    if row_nodes:
        total_height = row_nodes[-1].y + leaf_row_spacing / 2
    else:
        total_height = 0.0

    return TreeLayout(
        tree=root,
        positions=positions,
        row_nodes=row_nodes,
        visible_leaves=visible_leaves,
        total_height=total_height,
        max_distance=max_dist,
        scale_x=scale_x,
        collapsed=collapsed,
    )


def toggle_collapsed(collapsed: AbstractSet[str], id_str: str) -> FrozenSet[str]:
    """Return a new collapsed set with ``id_str`` flipped."""
    current = frozenset(collapsed)
    if id_str in current:
        return current - {id_str}
    return current | {id_str}
