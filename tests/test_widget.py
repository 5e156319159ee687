from __future__ import annotations

from dataclasses import replace
from unittest.mock import MagicMock

import pytest

from plotlybind import (
    FigureSpec,
    PlotlyWidget,
    SizingPolicy,
    as_widget,
    config,
    create_figure,
    formula,
    remove_typedarray_polyfill,
)
from plotlybind.figure_build import build_figure
from plotlybind.widget import default_dependencies


def _widget(iris_like, **kwargs) -> PlotlyWidget:
    return create_figure(iris_like, x=formula("sepal_width"), y=formula("sepal_length"), **kwargs)


def test_as_widget_is_idempotent(iris_like) -> None:
    widget = _widget(iris_like)
    assert as_widget(widget) is widget


def test_as_widget_packages_a_record() -> None:
    figure = FigureSpec(layout={"width": 300, "height": None})
    widget = as_widget(figure)
    assert widget.figure is figure
    assert (widget.width, widget.height) == (300, None)
    assert widget.sizing_policy == SizingPolicy()
    assert widget.pre_render_hook is build_figure


def test_as_widget_rejects_other_types() -> None:
    with pytest.raises(TypeError, match="FigureSpec or mapping"):
        as_widget([1, 2])


def test_sizing_policy_defaults() -> None:
    policy = SizingPolicy()
    assert policy.browser_fill is True
    assert policy.default_width == "100%"
    assert policy.default_height == 400


def test_dependencies_in_load_order(iris_like) -> None:
    names = [d.name for d in _widget(iris_like).dependencies]
    assert names == ["typedarray", "crosstalk", "plotlyjs"]
    assert [d.name for d in default_dependencies()] == names
    plotlyjs = default_dependencies()[-1]
    assert plotlyjs.script_path.endswith("plotly.min.js")


def test_remove_typedarray_polyfill(iris_like) -> None:
    widget = _widget(iris_like)
    trimmed = remove_typedarray_polyfill(widget)
    assert [d.name for d in trimmed.dependencies] == ["crosstalk", "plotlyjs"]
    assert [d.name for d in widget.dependencies][0] == "typedarray"
    again = remove_typedarray_polyfill(trimmed)
    assert again.dependencies == trimmed.dependencies


def test_pre_render_hook_runs_once_per_render(iris_like) -> None:
    hook = MagicMock(return_value={"data": [], "layout": {}, "config": {}, "source": "A"})
    widget = replace(_widget(iris_like), pre_render_hook=hook)
    hook.assert_not_called()
    widget.render()
    widget.to_json()
    assert hook.call_count == 2
    hook.assert_called_with(widget.figure)


def test_mimebundle_renders_once(iris_like) -> None:
    hook = MagicMock(side_effect=build_figure)
    widget = replace(_widget(iris_like), pre_render_hook=hook)
    bundle = widget._repr_mimebundle_()
    assert hook.call_count == 1
    assert set(bundle) == {"application/vnd.plotly.v1+json", "text/html"}
    payload = bundle["application/vnd.plotly.v1+json"]
    assert payload["data"][0]["type"] == "scatter"
    assert payload["config"]["displaylogo"] is False


def test_config_returns_new_widget(iris_like) -> None:
    widget = _widget(iris_like)
    updated = config(widget, displayModeBar=False)
    assert updated.figure.config["displayModeBar"] is False
    assert "displayModeBar" not in widget.figure.config
    assert updated.figure.config["modeBarButtonsToRemove"] == ["sendDataToCloud"]


def test_to_html_writes_file(iris_like, tmp_path) -> None:
    path = tmp_path / "plot.html"
    html = _widget(iris_like, width=640).to_html(path, include_plotlyjs="cdn")
    assert path.read_text(encoding="utf-8") == html
    assert "<html>" in html
    assert "640px" in html


def test_to_html_fragment(iris_like) -> None:
    html = _widget(iris_like).to_html(include_plotlyjs=False, full_html=False)
    assert "<html>" not in html
    assert "100%" in html


def test_to_plotly_figure(iris_like) -> None:
    fig = _widget(iris_like, color=formula("species")).to_plotly_figure()
    assert [t.name for t in fig.data] == ["setosa", "versicolor", "virginica"]
    assert fig.layout.margin.t == 25
