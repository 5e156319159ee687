"""Packaging of figure records into renderable widgets.

Purpose
-------
``PlotlyWidget`` is what every constructor hands back to callers. It wraps a
:class:`~plotlybind.figure_model.FigureSpec` together with the metadata a
host needs to render it: declared size, a sizing policy, the static assets
(HTML dependencies) and the pre-render hook that performs the final build.

Architecture notes
------------------
Rendering is two-phase. Construction only records the figure; the build
step (:func:`plotlybind.figure_build.build_figure`) runs inside
:meth:`PlotlyWidget.render`, once per render, every time a host displays or
serializes the widget. Widgets are immutable: ``config``,
``remove_typedarray_polyfill`` and the chaining helpers return new widgets.

Examples
--------
>>> from plotlybind.widget import as_widget
>>> w = as_widget({"data": [{"x": [1], "y": [1]}], "layout": {"title": "my plot"}})
>>> as_widget(w) is w
True
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import plotly
import plotly.io as pio
from plotly.offline import get_plotlyjs_version
from plotly.utils import PlotlyJSONEncoder

from .figure_build import build_figure, to_plotly_figure
from .figure_defaults import (
    CROSSTALK_NAME,
    CROSSTALK_VERSION,
    DEFAULT_SIZING_POLICY,
    PLOTLYJS_NAME,
    TYPEDARRAY_NAME,
    TYPEDARRAY_VERSION,
)
from .figure_model import FigureSpec

logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())

# Assets that are not bundled with the plotly package are served by the host
# from this directory.
HTMLWIDGETS_LIB = Path(__file__).resolve().parent / "htmlwidgets" / "lib"

SizeLike = Union[int, float, str, None]


@dataclass(frozen=True)
class HtmlDependency:
    """Static asset descriptor (one script and an optional stylesheet)."""

    name: str
    version: str
    src: str
    script: str
    stylesheet: Optional[str] = None

    @property
    def script_path(self) -> str:
        return os.path.join(self.src, self.script)


@dataclass(frozen=True)
class SizingPolicy:
    """How the host sizes a widget that declares no explicit size."""

    browser_fill: bool = DEFAULT_SIZING_POLICY["browser_fill"]
    default_width: SizeLike = DEFAULT_SIZING_POLICY["default_width"]
    default_height: SizeLike = DEFAULT_SIZING_POLICY["default_height"]


def typedarray_polyfill() -> HtmlDependency:
    return HtmlDependency(
        TYPEDARRAY_NAME,
        TYPEDARRAY_VERSION,
        src=str(HTMLWIDGETS_LIB / "typedarray"),
        script="typedarray.min.js",
    )


def crosstalk_libs() -> HtmlDependency:
    return HtmlDependency(
        CROSSTALK_NAME,
        CROSSTALK_VERSION,
        src=str(HTMLWIDGETS_LIB / "crosstalk"),
        script="js/crosstalk.min.js",
        stylesheet="css/crosstalk.css",
    )


def plotly_main_bundle() -> HtmlDependency:
    """Return the plotly.js bundle shipped with the ``plotly`` package."""
    return HtmlDependency(
        PLOTLYJS_NAME,
        get_plotlyjs_version(),
        src=os.path.join(os.path.dirname(plotly.__file__), "package_data"),
        script="plotly.min.js",
    )


def default_dependencies() -> Tuple[HtmlDependency, ...]:
    """Dependencies in load order: polyfill, selection library, plotly.js."""
    return (typedarray_polyfill(), crosstalk_libs(), plotly_main_bundle())


@dataclass(frozen=True)
class PlotlyWidget:
    """A figure plus the metadata a host needs to render it.

    Parameters
    ----------
    figure : FigureSpec
        The figure record.
    width, height : int, float, str or None
        Declared size, mirroring the layout; ``None`` means auto-size.
    sizing_policy : SizingPolicy
        Fallback sizing used when no size is declared.
    dependencies : tuple[HtmlDependency, ...]
        Static assets in load order.
    pre_render_hook : callable
        ``FigureSpec -> dict`` build step, run once per render.
    json_encoder : type
        JSON encoder used by :meth:`to_json` (compacts numpy arrays).
    """

    figure: FigureSpec
    width: SizeLike = None
    height: SizeLike = None
    sizing_policy: SizingPolicy = field(default_factory=SizingPolicy)
    dependencies: Tuple[HtmlDependency, ...] = field(default_factory=default_dependencies)
    pre_render_hook: Callable[[FigureSpec], Dict[str, Any]] = build_figure
    json_encoder: type = PlotlyJSONEncoder

    def render(self) -> Dict[str, Any]:
        """Run the pre-render hook and return the plotly.js figure dict."""
        rendered = self.pre_render_hook(self.figure)
        logger.debug("rendered widget with %d trace(s)", len(rendered.get("data", ())))
        return rendered

    def to_json(self, **kwargs: Any) -> str:
        """Serialize one render with the widget's JSON encoder."""
        return json.dumps(self.render(), cls=self.json_encoder, **kwargs)

    def to_plotly_figure(self):
        """Render and convert to a ``plotly.graph_objects.Figure``."""
        return to_plotly_figure(self.render())

    def _html_size(self) -> tuple[str, str]:
        width = self.width if self.width is not None else self.sizing_policy.default_width
        height = self.height if self.height is not None else self.sizing_policy.default_height
        return _css_size(width), _css_size(height)

    def to_html(
        self,
        path: Optional[Union[str, Path]] = None,
        *,
        include_plotlyjs: Union[bool, str] = True,
        full_html: bool = True,
    ) -> str:
        """Render to an HTML document (or fragment) and optionally write it."""
        rendered = self.render()
        width, height = self._html_size()
        html = pio.to_html(
            to_plotly_figure(rendered),
            config=rendered.get("config") or None,
            include_plotlyjs=include_plotlyjs,
            full_html=full_html,
            default_width=width,
            default_height=height,
        )
        if path is not None:
            Path(path).write_text(html, encoding="utf-8")
        return html

    def _repr_mimebundle_(self, include: Any = None, exclude: Any = None) -> Dict[str, Any]:
        """Rich display: one render feeds both the plotly and HTML payloads."""
        rendered = self.render()
        fig = to_plotly_figure(rendered)
        width, height = self._html_size()
        payload = json.loads(pio.to_json(fig, validate=False))
        payload["config"] = rendered.get("config", {})
        return {
            "application/vnd.plotly.v1+json": payload,
            "text/html": pio.to_html(
                fig,
                config=rendered.get("config") or None,
                include_plotlyjs="cdn",
                full_html=False,
                default_width=width,
                default_height=height,
            ),
        }

    def to_widget(self):
        """Return an interactive :class:`~plotlybind.figure_pane.FigurePane`."""
        import plotly.graph_objects as go

        from .figure_pane import FigurePane

        figw = go.FigureWidget(self.to_plotly_figure())
        return FigurePane(figw, self.sizing_policy, width=self.width, height=self.height)

    def show(self) -> None:
        """Display the interactive pane in the current notebook."""
        from IPython.display import display

        display(self.to_widget().widget)


def _css_size(value: SizeLike) -> str:
    if value is None:
        return "100%"
    if isinstance(value, (int, float)):
        return f"{value}px"
    return str(value)


def is_widget(value: Any) -> bool:
    """Return True when *value* is already a packaged widget."""
    return isinstance(value, PlotlyWidget)


def _figure_from_mapping(obj: Mapping[str, Any]) -> FigureSpec:
    layout = dict(obj.get("layout") or {})
    return FigureSpec(
        layout=layout,
        config=dict(obj.get("config") or {}),
        source=obj.get("source", "A"),
        frames=list(obj.get("frames") or []),
        prebuilt_data=list(obj.get("data") or []),
    )


def as_widget(x: Union[PlotlyWidget, FigureSpec, Mapping[str, Any]]) -> PlotlyWidget:
    """Package a figure into a :class:`PlotlyWidget`.

    Parameters
    ----------
    x : PlotlyWidget, FigureSpec or mapping
        A figure record, a plain ``{"data": [...], "layout": {...}}`` mapping,
        or an already packaged widget (returned unchanged).

    Returns
    -------
    PlotlyWidget
    """
    if is_widget(x):
        return x
    if isinstance(x, FigureSpec):
        figure = x
    elif isinstance(x, Mapping):
        figure = _figure_from_mapping(x)
    else:
        raise TypeError(
            f"as_widget() expects a FigureSpec or mapping, got {type(x).__name__}"
        )
    return PlotlyWidget(
        figure=figure,
        width=figure.layout.get("width"),
        height=figure.layout.get("height"),
    )


def remove_typedarray_polyfill(widget: PlotlyWidget) -> PlotlyWidget:
    """Return *widget* without the TypedArray polyfill dependency.

    Most browsers do not need the polyfill; dropping it shrinks saved pages.
    """
    kept = tuple(d for d in widget.dependencies if d.name != TYPEDARRAY_NAME)
    return replace(widget, dependencies=kept)


def config(widget: PlotlyWidget, **options: Any) -> PlotlyWidget:
    """Return *widget* with plotly.js config *options* merged in.

    Examples
    --------
    >>> from plotlybind import create_figure, config
    >>> w = config(create_figure(), displayModeBar=False)  # doctest: +SKIP
    """
    widget = as_widget(widget)
    figure = widget.figure.copy()
    figure.config.update(options)
    return replace(widget, figure=figure)


__all__ = [
    "HtmlDependency",
    "PlotlyWidget",
    "SizingPolicy",
    "as_widget",
    "config",
    "crosstalk_libs",
    "default_dependencies",
    "is_widget",
    "plotly_main_bundle",
    "remove_typedarray_polyfill",
    "typedarray_polyfill",
]
