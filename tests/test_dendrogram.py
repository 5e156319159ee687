from __future__ import annotations

import numpy as np
import pytest
from scipy.cluster.hierarchy import linkage, to_tree

from plotlybind import I, create_tree_figure, extend_range
from plotlybind.dendrogram import (
    candidate_nodes,
    cut_tree,
    label_tree_coordinates,
    tree_coordinates,
    tree_segments,
)

LABELS = ["a", "b", "c", "d"]


@pytest.fixture
def four_leaf_tree() -> np.ndarray:
    # Merges a+b at 1, then c at 4, then d at 6.
    return linkage(np.array([[0.0], [1.0], [5.0], [11.0]]), "single")


def test_coordinates_one_row_per_node_root_first(four_leaf_tree) -> None:
    coords = tree_coordinates(four_leaf_tree)
    assert len(coords) == 7
    assert coords["y"].iloc[0] == pytest.approx(6.0)
    assert (coords["y"] == 0).sum() == 4
    leaves = coords[coords["y"] == 0]
    assert sorted(leaves["x"]) == [1.0, 2.0, 3.0, 4.0]


def test_internal_node_sits_between_its_leaves(four_leaf_tree) -> None:
    coords = label_tree_coordinates(four_leaf_tree, LABELS)
    leaf_x = dict(zip(coords["leaf"], coords["x"]))
    (pair_x,) = coords.loc[coords["y"] == 1.0, "x"]
    assert pair_x == pytest.approx((leaf_x["a"] + leaf_x["b"]) / 2)


def test_cut_is_strictly_below(four_leaf_tree) -> None:
    root = to_tree(four_leaf_tree)
    assert sorted(n.dist for n in cut_tree(root, 6.0)) == pytest.approx([0.0, 4.0])
    assert all(n.is_leaf() for n in cut_tree(root, 1.0))


def test_candidates_one_per_internal_node_root_last(four_leaf_tree) -> None:
    candidates = candidate_nodes(four_leaf_tree, LABELS)
    assert len(candidates) == 3
    assert [c.height for c in candidates] == pytest.approx([1.0, 4.0, 6.0])
    assert sorted(candidates[0].labels) == ["a", "b"]
    assert sorted(candidates[-1].labels) == LABELS


def test_labels_attach_by_height(four_leaf_tree) -> None:
    coords = label_tree_coordinates(four_leaf_tree, LABELS)
    by_height = {y: sorted(lbl) for y, lbl in zip(coords["y"], coords["label"]) if y > 0}
    assert by_height == {1.0: ["a", "b"], 4.0: ["a", "b", "c"], 6.0: LABELS}


def test_leaf_rows_carry_the_full_label_list(four_leaf_tree) -> None:
    coords = label_tree_coordinates(four_leaf_tree, LABELS)
    leaves = coords[coords["y"] == 0]
    for labels in leaves["label"]:
        assert sorted(labels) == LABELS
    assert sorted(leaves["leaf"]) == LABELS
    assert leaves["members"].tolist() == [4, 4, 4, 4]


def test_tied_heights_last_candidate_wins() -> None:
    # Two separate pairs merge at the same height.
    Z = linkage(np.array([[0.0], [1.0], [10.0], [11.0]]), "single")
    coords = label_tree_coordinates(Z, LABELS)
    tied = coords[coords["y"] == 1.0]["label"].tolist()
    assert len(tied) == 2
    assert tied[0] == tied[1]
    last_at_height = [c for c in candidate_nodes(Z, LABELS) if c.height == 1.0][-1]
    assert tied[0] == list(last_at_height.labels)


def test_labels_must_match_leaf_count(four_leaf_tree) -> None:
    with pytest.raises(ValueError, match="Expected 4 labels"):
        label_tree_coordinates(four_leaf_tree, ["a"])


def test_invalid_linkage_is_rejected() -> None:
    with pytest.raises(ValueError):
        tree_coordinates(np.zeros((2, 2)))


def test_segments_are_elbows(four_leaf_tree) -> None:
    segments = tree_segments(four_leaf_tree)
    assert len(segments) == 12
    assert list(segments.columns) == ["x", "y", "xend", "yend"]


def test_extend_range() -> None:
    assert extend_range([0, 10]) == pytest.approx((-0.5, 10.5))
    assert extend_range([0, 10], f=0.1) == pytest.approx((-1.0, 11.0))
    assert extend_range([2, 2]) == pytest.approx((1.9, 2.1))
    assert extend_range([0, 0]) == pytest.approx((-0.05, 0.05))


def test_tree_figure_has_segments_nodes_and_labels(four_leaf_tree) -> None:
    widget = create_tree_figure(four_leaf_tree, labels=LABELS, selection_group="grp")
    rendered = widget.render()
    segments, nodes, labels = rendered["data"]

    assert segments["mode"] == "lines"
    assert segments["showlegend"] is False

    assert nodes["name"] == "nodes"
    assert nodes["mode"] == "markers"
    assert nodes["set"] == "grp"
    assert len(nodes["x"]) == 3
    assert sorted(nodes["text"]) == ["members: 2", "members: 3", "members: 4"]

    assert labels["name"] == "labels"
    assert labels["mode"] == "text"
    assert labels["textposition"] == "middle left"
    assert labels["x"].tolist() == [0, 0, 0, 0]
    assert sorted(labels["text"]) == LABELS


def test_tree_figure_layout(four_leaf_tree) -> None:
    widget = create_tree_figure(four_leaf_tree, x_min=-10)
    layout = widget.render()["layout"]
    assert layout["dragmode"] == "select"
    assert layout["xaxis"]["range"] == pytest.approx([-10, 6.3])
    assert layout["yaxis"]["range"] == pytest.approx([0.85, 4.15])
    for axis in ("xaxis", "yaxis"):
        assert layout[axis]["showticklabels"] is False
        assert layout[axis]["zeroline"] is False
        assert layout[axis]["title"] == ""
    assert (layout["width"], layout["height"]) == (500, 500)
    assert (widget.width, widget.height) == (500, 500)


def test_deep_chain_tree_does_not_recurse() -> None:
    Z = linkage(np.cumsum(np.arange(1, 1201.0)).reshape(-1, 1), "single")
    root = to_tree(Z)
    assert len(tree_coordinates(root)) == 2 * 1200 - 1
    assert len(cut_tree(root, root.dist)) == 2
    rendered = create_tree_figure(Z).render()
    segments, nodes, labels = rendered["data"]
    assert len(nodes["x"]) == 1199
    assert len(labels["text"]) == 1200


def test_zero_width_range_is_padded() -> None:
    lo, hi = extend_range([3, 3, 3])
    assert lo < 3 < hi


def test_tree_figure_kwargs_override_base_defaults(four_leaf_tree) -> None:
    widget = create_tree_figure(four_leaf_tree, hoverinfo="skip", color=I("red"))
    segments = widget.render()["data"][0]
    assert segments["hoverinfo"] == "skip"
    assert segments["line"]["color"] == "red"
