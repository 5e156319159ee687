"""Figure construction and chaining helpers.

Purpose
-------
``create_figure`` is the entry point of the package: it binds a dataset,
captures attributes and deferred column mappings, applies layout defaults
and returns a packaged :class:`~plotlybind.widget.PlotlyWidget`. The
``add_*`` helpers and ``update_layout`` extend an existing widget with more
traces or layout keys, always returning a new widget.

Architecture notes
------------------
The special mappings (color, symbol, linetype, size, split, frame) default
to the ``MISSING`` sentinel so an unsupplied mapping is *absent* from the
attribute set rather than present with an empty value. Scale controls
(palette, alpha, vocabularies, size range, trace type) are always recorded.

Examples
--------
>>> import pandas as pd
>>> from plotlybind import create_figure, add_markers, formula
>>> df = pd.DataFrame({"x": [1, 2, 3], "y": [3, 1, 2], "g": ["a", "b", "a"]})
>>> w = create_figure(df, x=formula("x"), y=formula("y"))
>>> w = add_markers(w, color=formula("g"))
>>> len(w.render()["data"])
2
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import replace
from typing import Any, Optional, Sequence, Union

import pandas as pd

from .figure_defaults import (
    DEFAULT_ALPHA,
    DEFAULT_CONFIG,
    DEFAULT_MARGIN,
    DEFAULT_SIZES,
    DEFAULT_SOURCE,
    DEPRECATED_UPLOAD_KEYS,
    MAPPING_NAMES,
)
from .figure_errors import FigureArgumentWarning, FigureInputError
from .figure_mappings import bind_attribute, bind_mapping
from .figure_model import AttributeSet, FigureSpec
from .shared_data import is_shared_data
from .widget import PlotlyWidget, as_widget, config

logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


class _MissingSentinel:
    """Sentinel value meaning "argument not supplied"."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _MissingSentinel()


def _is_table(data: Any) -> bool:
    return isinstance(data, pd.DataFrame) or is_shared_data(data)


def _check_data(data: Any, *, role: str = "data") -> Any:
    if data is None:
        return pd.DataFrame()
    if not _is_table(data):
        raise FigureInputError(
            f"`{role}` must be a pandas.DataFrame or SharedData, got {type(data).__name__}"
        )
    return data


def _drop_deprecated(attrs: dict) -> dict:
    """Warn about and remove retired arguments."""
    for key in DEPRECATED_UPLOAD_KEYS:
        if attrs.get(key) is not None:
            warnings.warn(
                f"Ignoring {key}. Figures are not uploaded; save them with "
                "PlotlyWidget.to_html() instead.",
                FigureArgumentWarning,
                stacklevel=3,
            )
        attrs.pop(key, None)
    if attrs.get("group") is not None:
        warnings.warn(
            "The group argument has been deprecated. Use split= instead.",
            FigureArgumentWarning,
            stacklevel=3,
        )
    attrs.pop("group", None)
    if attrs.get("inherit") is not None:
        warnings.warn(
            "The inherit argument has been deprecated.",
            FigureArgumentWarning,
            stacklevel=3,
        )
    attrs.pop("inherit", None)
    return attrs


def _collect_mappings(source_id: str, supplied: dict) -> dict:
    return {
        name: bind_mapping(value, source_id)
        for name, value in supplied.items()
        if name in MAPPING_NAMES and value is not MISSING
    }


def _as_tuple(value: Optional[Sequence[Any]]) -> Optional[tuple]:
    return None if value is None else tuple(value)


def create_figure(
    data: Any = None,
    *,
    type: Optional[str] = None,
    color: Any = MISSING,
    colors: Any = None,
    alpha: float = DEFAULT_ALPHA,
    symbol: Any = MISSING,
    symbols: Optional[Sequence[str]] = None,
    size: Any = MISSING,
    sizes: Sequence[float] = DEFAULT_SIZES,
    linetype: Any = MISSING,
    linetypes: Optional[Sequence[str]] = None,
    split: Any = MISSING,
    frame: Any = MISSING,
    width: Union[int, float, None] = None,
    height: Union[int, float, None] = None,
    source: str = DEFAULT_SOURCE,
    **attrs: Any,
) -> PlotlyWidget:
    """Initiate a figure from tabular data.

    Parameters
    ----------
    data : pandas.DataFrame or SharedData, optional
        The data the figure is bound to. ``None`` binds an empty table.
    type : str, optional
        Trace type. Inferred from the attributes when omitted.
    color, symbol, linetype, size, split, frame : optional
        Mappings. A :func:`~plotlybind.figure_mappings.formula` (or SymPy
        expression) maps a column; :func:`~plotlybind.figure_mappings.I` or
        any plain value is used as a constant. Omitted mappings are absent
        from the attribute set.
    colors : str or sequence, optional
        Palette name or list of colors for the color mapping.
    alpha : float, default=1
        Opacity of the resulting traces.
    symbols, linetypes : sequence of str, optional
        Vocabularies the symbol and linetype levels are mapped onto.
    sizes : (float, float), default=(10, 100)
        Pixel range numeric sizes are scaled into.
    width, height : number, optional
        Size in pixels. ``None`` leaves the figure auto-sized.
    source : str, default="A"
        Event source label correlating interaction events with this figure.
    **attrs
        plotly.js trace attributes (``x``, ``y``, ``text``, ``marker``, ...),
        passed through. Formula values are resolved at render time.

    Returns
    -------
    PlotlyWidget

    Raises
    ------
    FigureInputError
        If *data* is neither a DataFrame nor a SharedData.

    Warns
    -----
    FigureArgumentWarning
        For each retired argument present (``filename``, ``fileopt``,
        ``world_readable``, ``group``, ``inherit``); it is ignored.
    """
    data = _check_data(data)
    attrs = _drop_deprecated(dict(attrs))

    figure = FigureSpec(source=source)
    ident = figure.bind_dataset(data)

    aset = AttributeSet(
        attrs={k: bind_attribute(v, ident) for k, v in attrs.items()},
        mappings=_collect_mappings(
            ident,
            {
                "color": color,
                "symbol": symbol,
                "linetype": linetype,
                "size": size,
                "split": split,
                "frame": frame,
            },
        ),
        colors=colors,
        alpha=alpha,
        symbols=_as_tuple(symbols),
        linetypes=_as_tuple(linetypes),
        sizes=tuple(sizes),
        type=type,
    )
    figure.attribute_sets[ident] = aset
    figure.layout = {
        "width": width,
        "height": height,
        "margin": dict(DEFAULT_MARGIN),
    }
    logger.debug(
        "create_figure id=%s mappings=%s attrs=%s", ident, sorted(aset.mappings), sorted(aset.attrs)
    )
    return config(as_widget(figure), **{k: _copy_option(v) for k, v in DEFAULT_CONFIG.items()})


def _copy_option(value: Any) -> Any:
    return list(value) if isinstance(value, tuple) else value


def add_trace(
    p: PlotlyWidget,
    data: Any = None,
    *,
    inherit: bool = True,
    type: Optional[str] = None,
    color: Any = MISSING,
    colors: Any = None,
    alpha: float = DEFAULT_ALPHA,
    symbol: Any = MISSING,
    symbols: Optional[Sequence[str]] = None,
    size: Any = MISSING,
    sizes: Sequence[float] = DEFAULT_SIZES,
    linetype: Any = MISSING,
    linetypes: Optional[Sequence[str]] = None,
    split: Any = MISSING,
    frame: Any = MISSING,
    **attrs: Any,
) -> PlotlyWidget:
    """Return a copy of *p* with one more attribute set (trace).

    Parameters
    ----------
    p : PlotlyWidget
        The widget to extend. It is not modified.
    data : pandas.DataFrame or SharedData, optional
        New data for this trace. When omitted, the figure's current data is
        used.
    inherit : bool, default=True
        Merge the attributes given to :func:`create_figure` underneath.

    Other parameters match :func:`create_figure`.
    """
    p = as_widget(p)
    attrs = _drop_deprecated(dict(attrs))
    figure = p.figure.copy()
    if data is not None:
        ident = figure.bind_dataset(_check_data(data))
    elif figure.current_dataset_id is not None:
        ident = figure.rebind_current()
    else:
        ident = figure.bind_dataset(pd.DataFrame())

    figure.attribute_sets[ident] = AttributeSet(
        attrs={k: bind_attribute(v, ident) for k, v in attrs.items()},
        mappings=_collect_mappings(
            ident,
            {
                "color": color,
                "symbol": symbol,
                "linetype": linetype,
                "size": size,
                "split": split,
                "frame": frame,
            },
        ),
        colors=colors,
        alpha=alpha,
        symbols=_as_tuple(symbols),
        linetypes=_as_tuple(linetypes),
        sizes=tuple(sizes),
        type=type,
        inherit=inherit,
    )
    logger.debug("add_trace id=%s type=%s", ident, type)
    return replace(p, figure=figure)


def add_markers(p: PlotlyWidget, data: Any = None, **attrs: Any) -> PlotlyWidget:
    """Add a scatter trace drawn with markers."""
    attrs.setdefault("mode", "markers")
    return add_trace(p, data, type="scatter", **attrs)


def add_lines(p: PlotlyWidget, data: Any = None, **attrs: Any) -> PlotlyWidget:
    """Add a scatter trace drawn with lines."""
    attrs.setdefault("mode", "lines")
    return add_trace(p, data, type="scatter", **attrs)


def add_text(p: PlotlyWidget, data: Any = None, **attrs: Any) -> PlotlyWidget:
    """Add a scatter trace drawn with text labels (requires ``text``)."""
    if "text" not in attrs:
        raise ValueError("add_text() requires a text attribute")
    attrs.setdefault("mode", "text")
    return add_trace(p, data, type="scatter", **attrs)


def add_segments(p: PlotlyWidget, data: Any = None, **attrs: Any) -> PlotlyWidget:
    """Add line segments from ``(x, y)`` to ``(xend, yend)``."""
    missing = [k for k in ("xend", "yend") if k not in attrs]
    if missing:
        raise ValueError(f"add_segments() requires {' and '.join(missing)}")
    return add_trace(p, data, type="segments", **attrs)


def update_layout(p: PlotlyWidget, **layout: Any) -> PlotlyWidget:
    """Return a copy of *p* with layout keys merged in.

    Nested dicts (``xaxis``, ``margin``, ...) are merged one level deep.
    ``width``/``height`` also update the widget's declared size.
    """
    p = as_widget(p)
    figure = p.figure.copy()
    for key, value in layout.items():
        current = figure.layout.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged = dict(current)
            merged.update(value)
            figure.layout[key] = merged
        else:
            figure.layout[key] = value
    return replace(
        p,
        figure=figure,
        width=figure.layout.get("width"),
        height=figure.layout.get("height"),
    )


__all__ = [
    "MISSING",
    "add_lines",
    "add_markers",
    "add_segments",
    "add_text",
    "add_trace",
    "create_figure",
    "update_layout",
]
