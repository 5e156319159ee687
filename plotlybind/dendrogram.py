"""Interactive dendrograms from hierarchical clustering trees.

Purpose
-------
``create_tree_figure`` lays out a clustering tree horizontally (merge height
along x, leaves along y) and tags every internal node with the set of leaf
labels it subtends, so selecting a node in the host selects all of its
leaves in linked views.

Concepts and structure
----------------------
- ``tree_coordinates`` gives one row per node, root first (preorder): leaves
  at ``y = 0`` and positions ``1..n``; internal nodes at the mean position of
  their children and ``y`` equal to their merge height.
- ``cut_tree`` returns the maximal subtrees strictly below a height.
- ``candidate_nodes`` cuts at every positive merge height and keeps each
  internal subtree once, followed by the root.
- ``label_tree_coordinates`` attaches label sets to the coordinate rows by
  merge height.

Important gotchas
-----------------
- Labels are attached by height. When two internal nodes share a merge
  height, candidates are applied in ascending-height, left-to-right order and
  the last one wins for every row at that height; no error is raised.
- Every leaf row is given the full list of leaf labels (not its own label).
  The text trace still shows each leaf's own name.

Examples
--------
>>> import numpy as np
>>> from scipy.cluster.hierarchy import linkage
>>> from plotlybind.dendrogram import create_tree_figure
>>> Z = linkage(np.array([[0.0], [1.0], [5.0], [11.0]]), "single")
>>> w = create_tree_figure(Z, labels=["a", "b", "c", "d"])
>>> [t["name"] for t in w.render()["data"][1:]]
['nodes', 'labels']
"""

from __future__ import annotations

import logging
from typing import Any, List, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import ClusterNode, is_valid_linkage, to_tree

from .figure_builder import add_markers, add_segments, add_text, create_figure, update_layout
from .figure_defaults import EXTEND_RANGE_FRACTION
from .figure_mappings import I, formula
from .widget import PlotlyWidget

logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())

TreeLike = Union[np.ndarray, ClusterNode]


class CandidateNode(NamedTuple):
    """An internal node found by cutting the tree."""

    height: float
    labels: Tuple[str, ...]


def _as_root(tree: TreeLike) -> ClusterNode:
    if isinstance(tree, ClusterNode):
        return tree
    Z = np.asarray(tree, dtype=float)
    is_valid_linkage(Z, throw=True, name="tree")
    return to_tree(Z)


def _leaf_names(root: ClusterNode, labels: Optional[Sequence[Any]]) -> dict:
    leaves = root.pre_order(lambda node: node)
    if labels is None:
        return {leaf.id: str(leaf.id) for leaf in leaves}
    if len(labels) != len(leaves):
        raise ValueError(f"Expected {len(leaves)} labels, got {len(labels)}")
    return {leaf.id: str(labels[leaf.id]) for leaf in leaves}


def _layout_nodes(root: ClusterNode) -> List[Tuple[ClusterNode, float, float]]:
    """Return ``(node, x, y)`` for every node in preorder."""
    order: List[ClusterNode] = []
    stack = [root]
    while stack:
        node = stack.pop()
        order.append(node)
        if not node.is_leaf():
            stack.append(node.get_right())
            stack.append(node.get_left())

    positions: dict = {}
    next_leaf = 1.0
    for node in order:
        if node.is_leaf():
            positions[node.id] = next_leaf
            next_leaf += 1.0
    # Children follow their parent in preorder, so the reverse visits them first.
    for node in reversed(order):
        if not node.is_leaf():
            positions[node.id] = (positions[node.get_left().id] + positions[node.get_right().id]) / 2.0

    return [(node, positions[node.id], 0.0 if node.is_leaf() else float(node.dist)) for node in order]


def tree_coordinates(tree: TreeLike) -> pd.DataFrame:
    """Return the ``x``/``y`` position of every node, root first."""
    rows = _layout_nodes(_as_root(tree))
    return pd.DataFrame({"x": [r[1] for r in rows], "y": [r[2] for r in rows]})


def cut_tree(node: ClusterNode, h: float) -> List[ClusterNode]:
    """Return the maximal subtrees of *node* whose height is below *h*, left to right."""
    out: List[ClusterNode] = []
    stack = [node]
    while stack:
        current = stack.pop()
        if current.is_leaf() or current.dist < h:
            out.append(current)
        else:
            stack.append(current.get_right())
            stack.append(current.get_left())
    return out


def _subtree_labels(node: ClusterNode, names: dict) -> Tuple[str, ...]:
    return tuple(names[leaf.id] for leaf in node.pre_order(lambda n: n))


def candidate_nodes(tree: TreeLike, labels: Optional[Sequence[Any]] = None) -> List[CandidateNode]:
    """Return every internal node with its merge height and leaf labels.

    Nodes are collected by cutting at each distinct positive merge height in
    ascending order (left to right within a cut), de-duplicated by identity,
    with the root last.
    """
    root = _as_root(tree)
    names = _leaf_names(root, labels)
    heights = sorted({y for _, _, y in _layout_nodes(root) if y > 0})

    nodes: List[ClusterNode] = []
    seen: set = set()
    for h in heights:
        for sub in cut_tree(root, h):
            if sub.is_leaf() or id(sub) in seen:
                continue
            seen.add(id(sub))
            nodes.append(sub)
    if not root.is_leaf() and id(root) not in seen:
        nodes.append(root)
    return [CandidateNode(float(n.dist), _subtree_labels(n, names)) for n in nodes]


def label_tree_coordinates(
    tree: TreeLike, labels: Optional[Sequence[Any]] = None
) -> pd.DataFrame:
    """Return node coordinates with label sets attached.

    Columns: ``x``, ``y``, ``label`` (list of leaf labels), ``members``
    (size of the label set) and ``leaf`` (own name for leaves, ``None``
    otherwise).
    """
    root = _as_root(tree)
    names = _leaf_names(root, labels)
    rows = _layout_nodes(root)
    all_labels = list(_subtree_labels(root, names))

    label_col: List[Any] = [None] * len(rows)
    label_col[0] = list(all_labels)
    y = np.asarray([r[2] for r in rows])
    for i in np.flatnonzero(y == 0):
        label_col[i] = list(all_labels)

    for candidate in candidate_nodes(root, labels):
        for i in np.flatnonzero(y == candidate.height):
            label_col[i] = list(candidate.labels)

    frame = pd.DataFrame(
        {
            "x": [r[1] for r in rows],
            "y": y,
            "label": label_col,
            "leaf": [names[r[0].id] if r[0].is_leaf() else None for r in rows],
        }
    )
    frame["members"] = [len(v) if v is not None else 0 for v in frame["label"]]
    return frame


def tree_segments(tree: TreeLike) -> pd.DataFrame:
    """Return elbow segments ``x, y, xend, yend`` connecting nodes to children."""
    rows = _layout_nodes(_as_root(tree))
    position = {node.id: (x, y) for node, x, y in rows}
    segments = []
    for node, x, y in rows:
        if node.is_leaf():
            continue
        for child in (node.get_left(), node.get_right()):
            cx, cy = position[child.id]
            segments.append((x, y, cx, y))
            segments.append((cx, y, cx, cy))
    return pd.DataFrame(segments, columns=["x", "y", "xend", "yend"])


def extend_range(values: Any, f: float = EXTEND_RANGE_FRACTION) -> Tuple[float, float]:
    """Return the range of *values* padded by ``f`` times its width on each side.

    A zero-width range is padded by ``f`` times its magnitude (or by ``f``
    when the value is zero) instead of being returned unpadded, so an axis
    built from it never collapses to a single point.
    """
    arr = np.asarray(values, dtype=float)
    lo, hi = float(np.nanmin(arr)), float(np.nanmax(arr))
    width = hi - lo
    if width == 0:
        width = abs(lo) if lo != 0 else 1.0
    return lo - f * width, hi + f * width


def create_tree_figure(
    tree: TreeLike,
    selection_group: str = "A",
    x_min: float = -50,
    width: Optional[float] = 500,
    height: Optional[float] = 500,
    *,
    labels: Optional[Sequence[Any]] = None,
    **kwargs: Any,
) -> PlotlyWidget:
    """Plot an interactive dendrogram.

    Selecting an internal node selects all the leaves under it in every
    view sharing ``selection_group``.

    Parameters
    ----------
    tree : numpy.ndarray or scipy.cluster.hierarchy.ClusterNode
        A linkage matrix (as returned by ``scipy.cluster.hierarchy.linkage``)
        or the root of a cluster tree.
    selection_group : str, default="A"
        Selection group shared with linked views.
    x_min : float, default=-50
        Lower bound of the x-axis range, leaving room for leaf labels.
    width, height : float, default=500
        Figure size in pixels.
    labels : sequence, optional
        Leaf labels indexed by observation; defaults to the leaf ids.
    **kwargs
        Passed to :func:`~plotlybind.figure_builder.create_figure`; they
        override the base trace defaults (``x``, ``y``, ``color``,
        ``hoverinfo``).

    Returns
    -------
    PlotlyWidget
    """
    root = _as_root(tree)
    coords = label_tree_coordinates(root, labels)
    coords["hover"] = [f"members: {m}" for m in coords["members"]]
    segments = tree_segments(root)
    nodes = coords[coords["y"] > 0].reset_index(drop=True)
    leaves = coords[coords["y"] == 0].reset_index(drop=True)
    logger.debug("dendrogram with %d nodes (%d leaves)", len(coords), len(leaves))

    blank_axis = {"title": "", "showticklabels": False, "zeroline": False}

    base = {"x": formula("y"), "y": formula("x"), "color": I("black"), "hoverinfo": "none"}
    base.update(kwargs)
    p = create_figure(coords, width=width, height=height, **base)
    p = add_segments(p, segments, xend=formula("yend"), yend=formula("xend"), showlegend=False)
    p = add_markers(
        p,
        nodes,
        key=formula("label"),
        set=selection_group,
        name="nodes",
        text=formula("hover"),
        hoverinfo="text",
    )
    p = add_text(
        p,
        leaves,
        x=0,
        y=formula("x"),
        text=formula("leaf"),
        key=formula("label"),
        set=selection_group,
        textposition="middle left",
        name="labels",
    )
    return update_layout(
        p,
        dragmode="select",
        xaxis={**blank_axis, "range": [x_min, extend_range(coords["y"])[1]]},
        yaxis={**blank_axis, "range": list(extend_range(coords["x"]))},
    )


__all__ = [
    "CandidateNode",
    "candidate_nodes",
    "create_tree_figure",
    "cut_tree",
    "extend_range",
    "label_tree_coordinates",
    "tree_coordinates",
    "tree_segments",
]
