from __future__ import annotations

import json
import logging

import numpy as np
import pandas as pd
import plotly.colors as pcolors
import plotly.graph_objects as go
import pytest

from plotlybind import (
    I,
    SharedData,
    add_lines,
    add_markers,
    add_segments,
    as_widget,
    create_figure,
    formula,
)
from plotlybind.figure_build import (
    build_figure,
    continuous_colorscale,
    discrete_palette,
    infer_trace_type,
    rescale,
    to_plotly_figure,
)


def _scatter(data, **kwargs):
    return create_figure(data, x=formula("sepal_width"), y=formula("sepal_length"), **kwargs)


def test_infer_trace_type() -> None:
    assert infer_trace_type({"z": 1, "x": 1}) == "heatmap"
    assert infer_trace_type({"x": 1, "y": 1}) == "scatter"
    assert infer_trace_type({"lon": 1, "lat": 1}) == "scatter"
    assert infer_trace_type({"x": 1}) == "histogram"
    assert infer_trace_type({"y": 1}) == "histogram"
    assert infer_trace_type({"text": 1}) is None


def test_single_scatter_defaults_to_markers(iris_like, caplog) -> None:
    with caplog.at_level(logging.INFO, logger="plotlybind.figure_build"):
        rendered = _scatter(iris_like).render()
    (trace,) = rendered["data"]
    assert trace["type"] == "scatter"
    assert trace["mode"] == "markers"
    assert trace["x"].tolist() == iris_like["sepal_width"].tolist()
    assert "mode='markers'" in caplog.text


def test_expression_attributes_are_evaluated(iris_like) -> None:
    rendered = create_figure(
        iris_like, x=formula("sepal_width"), y=formula("sepal_length / sepal_width")
    ).render()
    expected = (iris_like["sepal_length"] / iris_like["sepal_width"]).to_numpy()
    np.testing.assert_allclose(rendered["data"][0]["y"].astype(float), expected)


def test_missing_column_fails_at_render_not_construction(iris_like) -> None:
    widget = create_figure(iris_like, x=formula("nope"), y=formula("sepal_length"))
    with pytest.raises(KeyError, match="nope"):
        widget.render()


def test_nothing_to_draw_gives_no_traces(iris_like) -> None:
    assert create_figure(iris_like).render()["data"] == []


def test_discrete_color_splits_traces(iris_like) -> None:
    rendered = _scatter(iris_like, color=formula("species")).render()
    names = [t["name"] for t in rendered["data"]]
    assert names == ["setosa", "versicolor", "virginica"]
    colors = [t["marker"]["color"] for t in rendered["data"]]
    assert colors == pcolors.qualitative.Set2[:3]
    assert all(len(t["x"]) == 2 for t in rendered["data"])


def test_explicit_palette_list_is_cycled(iris_like) -> None:
    rendered = _scatter(iris_like, color=formula("species"), colors=["red", "blue"]).render()
    assert [t["marker"]["color"] for t in rendered["data"]] == ["red", "blue", "red"]


def test_numeric_color_uses_a_colorscale(iris_like) -> None:
    rendered = _scatter(iris_like, color=formula("petal_length")).render()
    (trace,) = rendered["data"]
    marker = trace["marker"]
    assert marker["showscale"] is True
    assert marker["colorbar"]["title"]["text"] == "petal_length"
    assert marker["colorscale"][0][0] == 0
    assert marker["color"].tolist() == iris_like["petal_length"].tolist()


def test_constant_color_is_not_scaled(iris_like) -> None:
    rendered = _scatter(iris_like, color=I("black")).render()
    (trace,) = rendered["data"]
    assert trace["marker"]["color"] == "black"
    assert "colorscale" not in trace["marker"]


def test_symbol_and_linetype_vocabularies(iris_like) -> None:
    rendered = _scatter(iris_like, symbol=formula("species")).render()
    assert [t["marker"]["symbol"] for t in rendered["data"]] == ["circle", "triangle-up", "square"]

    base = create_figure(iris_like, x=formula("sepal_width"), y=formula("sepal_length"))
    rendered = add_lines(base, linetype=formula("species"), linetypes=["dot", "dash"]).render()
    assert [t["line"]["dash"] for t in rendered["data"]] == ["dot", "dash", "dot"]


def test_split_names_traces_without_styling(iris_like) -> None:
    rendered = _scatter(iris_like, split=formula("species")).render()
    assert [t["name"] for t in rendered["data"]] == ["setosa", "versicolor", "virginica"]
    assert all("color" not in t.get("marker", {}) for t in rendered["data"])


def test_numeric_size_is_rescaled(iris_like) -> None:
    rendered = _scatter(iris_like, size=formula("petal_length"), sizes=(5, 20)).render()
    sizes = rendered["data"][0]["marker"]["size"]
    assert sizes.min() == pytest.approx(5)
    assert sizes.max() == pytest.approx(20)

    rendered = _scatter(iris_like, size=I(7)).render()
    assert rendered["data"][0]["marker"]["size"] == 7


def test_alpha_sets_opacity(iris_like) -> None:
    assert "opacity" not in _scatter(iris_like).render()["data"][0]
    assert _scatter(iris_like, alpha=0.3).render()["data"][0]["opacity"] == 0.3


def test_frames_and_animation_controls(iris_like) -> None:
    rendered = _scatter(iris_like, frame=formula("species")).render()
    assert [f["name"] for f in rendered["frames"]] == ["setosa", "versicolor", "virginica"]
    assert len(rendered["data"]) == 1
    assert "frame" not in rendered["data"][0]
    steps = rendered["layout"]["sliders"][0]["steps"]
    assert [s["label"] for s in steps] == ["setosa", "versicolor", "virginica"]
    assert rendered["layout"]["updatemenus"][0]["buttons"][0]["label"] == "Play"


def test_no_frames_key_without_frame_mapping(iris_like) -> None:
    assert "frames" not in _scatter(iris_like).render()


def test_segments_become_gapped_lines() -> None:
    seg = pd.DataFrame({"x": [0, 1], "y": [0, 0], "xend": [1, 2], "yend": [1, 1]})
    widget = add_segments(
        create_figure(seg), x=formula("x"), y=formula("y"), xend=formula("xend"), yend=formula("yend")
    )
    (trace,) = widget.render()["data"]
    assert trace["type"] == "scatter"
    assert trace["mode"] == "lines"
    assert trace["x"] == [0, 1, None, 1, 2, None]
    assert trace["y"] == [0, 1, None, 0, 1, None]
    assert "xend" not in trace


def test_base_without_type_is_dropped_when_traces_are_added(iris_like) -> None:
    base = _scatter(iris_like, color=I("red"))
    rendered = add_markers(base).render()
    (trace,) = rendered["data"]
    assert trace["marker"]["color"] == "red"


def test_typed_base_is_kept(iris_like) -> None:
    base = _scatter(iris_like, type="scatter", mode="markers")
    rendered = add_lines(base).render()
    assert [t["mode"] for t in rendered["data"]] == ["markers", "lines"]


def test_inherit_false_skips_base_attributes(iris_like) -> None:
    base = _scatter(iris_like, color=I("red"))
    rendered = add_markers(
        base, inherit=False, x=formula("petal_length"), y=formula("sepal_length")
    ).render()
    (trace,) = rendered["data"]
    assert "color" not in trace.get("marker", {})


def test_base_attributes_evaluate_against_trace_data(iris_like) -> None:
    other = iris_like.iloc[:2].reset_index(drop=True)
    rendered = add_markers(_scatter(iris_like), other).render()
    assert len(rendered["data"][0]["x"]) == 2


def test_shared_data_carries_key_and_set(iris_like) -> None:
    shared = SharedData(iris_like.assign(row=list("abcdef")), key="row", group="grp")
    rendered = _scatter(shared, color=formula("species")).render()
    first = rendered["data"][0]
    assert first["key"].tolist() == ["a", "b"]
    assert first["set"] == "grp"


def test_build_does_not_mutate_and_is_repeatable(iris_like) -> None:
    widget = _scatter(iris_like, color=formula("species"), width=400)
    layout_before = dict(widget.figure.layout)
    first = widget.to_json()
    second = widget.to_json()
    assert first == second
    assert widget.figure.layout == layout_before


def test_to_plotly_figure_moves_selection_fields(iris_like) -> None:
    shared = SharedData(iris_like, key="species", group="grp")
    fig = to_plotly_figure(_scatter(shared).render())
    assert isinstance(fig, go.Figure)
    assert list(fig.data[0].customdata) == iris_like["species"].tolist()
    assert fig.data[0].meta == {"set": "grp"}


def test_prebuilt_mapping_renders_its_traces() -> None:
    widget = as_widget(
        {"data": [{"type": "bar", "x": [1, 2], "y": [3, 4]}], "layout": {"title": "my plot"}}
    )
    rendered = build_figure(widget.figure)
    assert rendered["data"] == [{"type": "bar", "x": [1, 2], "y": [3, 4]}]
    assert rendered["layout"] == {"title": "my plot"}


def test_palette_helpers() -> None:
    assert discrete_palette(None, 2) == pcolors.qualitative.Set2[:2]
    assert discrete_palette("Viridis", 1) == pcolors.sample_colorscale(pcolors.get_colorscale("Viridis"), [0.0])
    assert len(discrete_palette("Viridis", 4)) == 4
    assert discrete_palette(["a"], 0) == []
    with pytest.raises(ValueError):
        discrete_palette([], 2)
    assert continuous_colorscale(["white", "black"]) == [[0.0, "white"], [1.0, "black"]]
    with pytest.raises(ValueError):
        continuous_colorscale(["white"])


def test_rescale() -> None:
    np.testing.assert_allclose(rescale([1, 2, 3], (10, 20)), [10, 15, 20])
    np.testing.assert_allclose(rescale([4, 4], (10, 20)), [15, 15])
    assert rescale([], (10, 20)).size == 0


def test_json_encodes_numpy_arrays(iris_like) -> None:
    payload = json.loads(_scatter(iris_like).to_json())
    assert payload["data"][0]["x"] == iris_like["sepal_width"].tolist()
    assert payload["source"] == "A"


def test_raw_data_arrays_are_split_with_the_rows() -> None:
    frame = pd.DataFrame({"g": ["a", "b", "a"]})
    rendered = create_figure(frame, x=[1, 2, 3], y=[4, 5, 6], color=formula("g")).render()
    first, second = rendered["data"]
    assert first["x"].tolist() == [1, 3]
    assert first["y"].tolist() == [4, 6]
    assert second["x"].tolist() == [2]
    assert second["y"].tolist() == [5]


def test_raw_array_of_other_length_is_left_whole() -> None:
    frame = pd.DataFrame({"g": ["a", "b", "a"]})
    rendered = create_figure(frame, x=[1, 2], y=[4, 5], color=formula("g")).render()
    assert [t["x"] for t in rendered["data"]] == [[1, 2], [1, 2]]
