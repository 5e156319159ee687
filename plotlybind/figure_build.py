"""Render-time build step: turn a ``FigureSpec`` into plotly.js JSON.

Purpose
-------
This is the pre-render hook of every :class:`~plotlybind.widget.PlotlyWidget`.
It runs once per render and is the only place where deferred column mappings
are evaluated.

Concepts and structure
----------------------
For each attribute set, in order:

1. fetch the bound dataset and unwrap :class:`~plotlybind.shared_data.SharedData`,
2. merge the figure's base attributes underneath (``inherit=True``),
3. resolve deferred attributes and special mappings against the data,
4. infer the trace type and default mode,
5. split rows into one trace per level of ``split``, discrete ``color``,
   ``symbol``, ``linetype`` and ``frame``,
6. apply scales: palettes, size range, symbol and linetype vocabularies,
7. convert segments and map-mode traces to their plotly.js form.

Frames are then separated from static traces, and the layout is cleaned of
internal keys (``mapType``) and unset sizes.

Important gotchas
-----------------
- The build step never mutates the figure; calling it twice yields equal
  output.
- Base attributes are evaluated against each trace's own data, not the data
  the base was declared with.
- The rendered dict keeps crosstalk fields (``key``, ``set``);
  :func:`to_plotly_figure` moves them into ``customdata``/``meta`` for
  ``plotly.graph_objects``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import plotly.colors as pcolors
import plotly.graph_objects as go

from .figure_defaults import (
    DEFAULT_CONTINUOUS_COLORS,
    DEFAULT_DISCRETE_COLORS,
    DEFAULT_LINETYPES,
    DEFAULT_SYMBOLS,
)
from .figure_mappings import ColumnExpr, Constant, Formula, is_deferred, resolve
from .figure_model import AttributeSet, FigureSpec
from .shared_data import SharedData

logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())

Path = Tuple[str, ...]

# Trace types that draw markers/lines and so accept marker.* and line.* styling.
_SCATTER_TYPES = frozenset(
    {"scatter", "scattergl", "scattergeo", "scattermapbox", "scatter3d", "scatterpolar", "segments"}
)
_MAP_TRACE_TYPES = {"geo": "scattergeo", "mapbox": "scattermapbox"}
# Data-array attributes: a scalar is recycled to every row and a per-row
# vector is split along with the rows.
_DATA_ARRAY_ATTRS = ("x", "y", "z", "lon", "lat")


# -----------------------------
# Data access
# -----------------------------


def _unwrap(data: Any) -> Tuple[pd.DataFrame, Optional[np.ndarray], Optional[str]]:
    """Return ``(frame, keys, group)`` for a bound dataset."""
    if isinstance(data, SharedData):
        return data.data(), data.key(), data.group
    if data is None:
        return pd.DataFrame(), None, None
    return data, None, None


def _resolve_attrs(
    attrs: Mapping[str, Any], frame: pd.DataFrame, prefix: Path = ()
) -> Tuple[Dict[str, Any], List[Path]]:
    """Resolve deferred values (recursing into nested dicts).

    Returns the resolved attributes and the paths of per-row values.
    """
    out: Dict[str, Any] = {}
    row_paths: List[Path] = []
    for key, value in attrs.items():
        path = prefix + (key,)
        if isinstance(value, Mapping) and not isinstance(value, (Constant, ColumnExpr, Formula)):
            out[key], nested = _resolve_attrs(value, frame, path)
            row_paths.extend(nested)
        elif is_deferred(value):
            out[key] = resolve(value, frame)
            row_paths.append(path)
        else:
            out[key] = resolve(value, frame)
    return out, row_paths


def _get_path(d: Dict[str, Any], path: Path) -> Any:
    for key in path[:-1]:
        d = d[key]
    return d[path[-1]]


def _set_path(d: Dict[str, Any], path: Path, value: Any) -> None:
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def _copy_nested(attrs: Dict[str, Any]) -> Dict[str, Any]:
    return {k: _copy_nested(v) if isinstance(v, dict) else v for k, v in attrs.items()}


# -----------------------------
# Attribute-set merging and type inference
# -----------------------------


def merge_attribute_sets(base: AttributeSet, child: AttributeSet) -> AttributeSet:
    """Return *child* with *base* attributes and mappings merged underneath."""
    attrs = dict(base.attrs)
    attrs.update(child.attrs)
    mappings = dict(base.mappings)
    mappings.update(child.mappings)
    return AttributeSet(
        attrs=attrs,
        mappings=mappings,
        colors=child.colors if child.colors is not None else base.colors,
        alpha=child.alpha,
        symbols=child.symbols if child.symbols is not None else base.symbols,
        linetypes=child.linetypes if child.linetypes is not None else base.linetypes,
        sizes=child.sizes,
        type=child.type if child.type is not None else base.type,
        inherit=child.inherit,
    )


def infer_trace_type(attrs: Mapping[str, Any]) -> Optional[str]:
    """Infer a plotly trace type from the attributes present.

    ``z`` gives a heatmap, ``x`` and ``y`` a scatter, a lone ``x`` or ``y`` a
    histogram. Returns ``None`` when there is nothing to draw.
    """
    if "z" in attrs:
        return "heatmap"
    has_x = "x" in attrs or "lon" in attrs
    has_y = "y" in attrs or "lat" in attrs
    if has_x and has_y:
        return "scatter"
    if has_x or has_y:
        return "histogram"
    return None


# -----------------------------
# Scales
# -----------------------------


def _is_numeric(values: Any) -> bool:
    arr = np.asarray(values)
    return arr.dtype.kind in "iuf"


def _factorize(values: Any) -> Tuple[np.ndarray, List[Any]]:
    """Return integer codes and sorted levels (appearance order if unsortable)."""
    series = pd.Series(values, dtype=object)
    try:
        codes, uniques = pd.factorize(series, sort=True, use_na_sentinel=False)
    except TypeError:
        codes, uniques = pd.factorize(series, sort=False, use_na_sentinel=False)
    return np.asarray(codes), list(uniques)


def discrete_palette(colors: Any, n: int) -> List[str]:
    """Return *n* colors for discrete levels.

    *colors* may be ``None`` (Set2), a plotly qualitative palette name, a
    plotly continuous colorscale name (sampled evenly), or a list of colors
    (cycled).
    """
    if n <= 0:
        return []
    if colors is None:
        colors = DEFAULT_DISCRETE_COLORS
    if isinstance(colors, str):
        qualitative = getattr(pcolors.qualitative, colors, None)
        if isinstance(qualitative, list):
            return [qualitative[i % len(qualitative)] for i in range(n)]
        scale = pcolors.get_colorscale(colors)
        points = [0.0] if n == 1 else [i / (n - 1) for i in range(n)]
        return list(pcolors.sample_colorscale(scale, points))
    palette = list(colors)
    if not palette:
        raise ValueError("colors must not be empty")
    return [palette[i % len(palette)] for i in range(n)]


def continuous_colorscale(colors: Any) -> List[List[Any]]:
    """Return a plotly colorscale for numeric color mappings."""
    if colors is None:
        colors = DEFAULT_CONTINUOUS_COLORS
    if isinstance(colors, str):
        return [list(step) for step in pcolors.get_colorscale(colors)]
    palette = list(colors)
    if len(palette) < 2:
        raise ValueError("A continuous color scale needs at least two colors")
    last = len(palette) - 1
    return [[i / last, c] for i, c in enumerate(palette)]


def rescale(values: Any, to: Sequence[float]) -> np.ndarray:
    """Linearly map *values* into the range *to* (constant data maps to its mean)."""
    arr = np.asarray(values, dtype=float)
    lo, hi = float(to[0]), float(to[1])
    if arr.size == 0:
        return arr
    vmin, vmax = np.nanmin(arr), np.nanmax(arr)
    if vmax == vmin:
        return np.full(arr.shape, (lo + hi) / 2.0)
    return lo + (arr - vmin) / (vmax - vmin) * (hi - lo)


def _apply_style(trace: Dict[str, Any], prop: str, value: Any) -> None:
    """Set a color-like style on the parts of *trace* that draw it."""
    ttype = trace.get("type")
    if ttype in _SCATTER_TYPES:
        mode = str(trace.get("mode", ""))
        if "text" in mode:
            trace.setdefault("textfont", {})[prop] = value
        trace.setdefault("marker", {})[prop] = value
        if prop == "color":
            trace.setdefault("line", {})[prop] = value
    else:
        trace.setdefault("marker", {})[prop] = value


# -----------------------------
# Trace construction
# -----------------------------

_GROUPED = ("split", "color", "symbol", "linetype", "frame")


def _group_rows(
    factors: Dict[str, Tuple[np.ndarray, List[Any]]], n: int
) -> List[Tuple[Dict[str, Any], Dict[str, int], np.ndarray]]:
    """Split row indices into groups ordered by level combination.

    Returns ``(levels, codes, rows)`` per group, where ``levels`` maps each
    grouping mapping to its value and ``codes`` to the level's position.
    """
    if not factors:
        return [({}, {}, np.arange(n))]
    names = list(factors)
    groups: Dict[Tuple[int, ...], List[int]] = {}
    for row in range(n):
        combo = tuple(int(factors[name][0][row]) for name in names)
        groups.setdefault(combo, []).append(row)
    out = []
    for combo in sorted(groups):
        codes = dict(zip(names, combo))
        levels = {name: factors[name][1][code] for name, code in codes.items()}
        out.append((levels, codes, np.asarray(groups[combo], dtype=int)))
    return out


def _segments_to_lines(trace: Dict[str, Any]) -> None:
    """Rewrite a segments trace into a lines trace with ``None`` gaps."""
    x0 = np.asarray(trace.pop("x", []), dtype=object)
    y0 = np.asarray(trace.pop("y", []), dtype=object)
    x1 = np.asarray(trace.pop("xend", []), dtype=object)
    y1 = np.asarray(trace.pop("yend", []), dtype=object)
    xs: List[Any] = []
    ys: List[Any] = []
    for a, b, c, d in zip(x0, x1, y0, y1):
        xs.extend([a, b, None])
        ys.extend([c, d, None])
    trace["x"] = xs
    trace["y"] = ys
    trace["type"] = "scatter"
    trace["mode"] = "lines"
    trace.pop("key", None)


def _to_map_trace(trace: Dict[str, Any], map_type: str) -> None:
    """Turn a cartesian scatter trace into a geo/mapbox trace."""
    trace["type"] = _MAP_TRACE_TYPES[map_type]
    # Explicit lon/lat win over x/y inherited from the base trace.
    x = trace.pop("x", None)
    y = trace.pop("y", None)
    if trace.get("lon") is None and x is not None:
        trace["lon"] = x
    if trace.get("lat") is None and y is not None:
        trace["lat"] = y


def build_traces(
    aset: AttributeSet,
    data: Any,
    *,
    map_type: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Build the plotly.js traces for one attribute set.

    Parameters
    ----------
    aset : AttributeSet
        Attributes (already merged with the base set when inherited).
    data : pandas.DataFrame, SharedData or None
        The dataset bound to this attribute set.
    map_type : {"geo", "mapbox"}, optional
        Map mode of the figure.

    Returns
    -------
    list[dict]
        Zero or more trace dicts. Traces may carry a ``frame`` key.
    """
    frame, keys, group = _unwrap(data)
    n = len(frame)
    attrs, row_paths = _resolve_attrs(aset.attrs, frame)

    if keys is not None and "key" not in attrs:
        attrs["key"] = keys
        row_paths.append(("key",))
    if group is not None and "set" not in attrs:
        attrs["set"] = group

    for name in _DATA_ARRAY_ATTRS:
        value = attrs.get(name)
        if not n or value is None or (name,) in row_paths:
            continue
        if np.ndim(value) == 0:
            attrs[name] = np.full(n, value, dtype=object)
            row_paths.append((name,))
        elif np.ndim(value) == 1 and len(value) == n:
            row_paths.append((name,))

    ttype = aset.type or attrs.pop("type", None) or infer_trace_type(attrs)
    if ttype is None:
        logger.info("attribute set has nothing to draw; no trace created")
        return []
    attrs.pop("type", None)

    mapped: Dict[str, Any] = {}
    column_mapped: Dict[str, bool] = {}
    for name, mapping in aset.mappings.items():
        mapped[name] = resolve(mapping, frame)
        column_mapped[name] = isinstance(mapping, ColumnExpr)

    factors: Dict[str, Tuple[np.ndarray, List[Any]]] = {}
    for name in _GROUPED:
        if not column_mapped.get(name):
            continue
        if name == "color" and _is_numeric(mapped[name]):
            continue
        factors[name] = _factorize(mapped[name])

    n_colors = len(factors["color"][1]) if "color" in factors else 0
    palette = discrete_palette(aset.colors, n_colors)
    symbols = list(aset.symbols or DEFAULT_SYMBOLS)
    linetypes = list(aset.linetypes or DEFAULT_LINETYPES)

    traces: List[Dict[str, Any]] = []
    for levels, codes, idx in _group_rows(factors, n):
        trace: Dict[str, Any] = {"type": ttype}
        trace.update(_copy_nested(attrs))
        for path in row_paths:
            values = _get_path(attrs, path)
            if not isinstance(values, np.ndarray):
                values = np.asarray(values, dtype=object)
            _set_path(trace, path, values[idx])

        if ttype == "scatter" and "mode" not in trace:
            logger.info("no scatter mode specified; using mode='markers'")
            trace["mode"] = "markers"

        name_parts = [str(levels[k]) for k in ("split", "color", "symbol", "linetype") if k in levels]
        if name_parts and "name" not in trace:
            trace["name"] = " / ".join(name_parts)

        if "color" in mapped:
            if "color" in levels:
                _apply_style(trace, "color", palette[codes["color"]])
            elif column_mapped["color"]:
                values = np.asarray(mapped["color"])[idx]
                marker = trace.setdefault("marker", {})
                marker["color"] = values
                marker["colorscale"] = continuous_colorscale(aset.colors)
                marker["showscale"] = True
                marker.setdefault("colorbar", {"title": {"text": str(aset.mappings["color"].expression)}})
            else:
                _apply_style(trace, "color", mapped["color"])

        if "symbol" in mapped:
            if "symbol" in levels:
                symbol = symbols[codes["symbol"] % len(symbols)]
            else:
                symbol = mapped["symbol"]
            trace.setdefault("marker", {})["symbol"] = symbol

        if "linetype" in mapped:
            if "linetype" in levels:
                dash = linetypes[codes["linetype"] % len(linetypes)]
            else:
                dash = mapped["linetype"]
            trace.setdefault("line", {})["dash"] = dash

        if "size" in mapped:
            if column_mapped["size"]:
                size = rescale(np.asarray(mapped["size"])[idx], aset.sizes)
            else:
                size = mapped["size"]
            trace.setdefault("marker", {})["size"] = size

        if "frame" in levels:
            trace["frame"] = str(levels["frame"])

        if aset.alpha is not None and aset.alpha != 1:
            trace["opacity"] = aset.alpha

        if ttype == "segments":
            _segments_to_lines(trace)
        if map_type in _MAP_TRACE_TYPES and trace["type"] == "scatter":
            _to_map_trace(trace, map_type)
        traces.append(trace)

    logger.debug("built %d trace(s) of type %s from %d rows", len(traces), ttype, n)
    return traces


# -----------------------------
# Layout and frames
# -----------------------------


def _clean_layout(layout: Mapping[str, Any]) -> Tuple[Dict[str, Any], Optional[str]]:
    out = _copy_nested(dict(layout))
    map_type = out.pop("mapType", None)
    for key in ("width", "height"):
        if out.get(key) is None:
            out.pop(key, None)
    if map_type == "mapbox":
        out.setdefault("mapbox", {}).setdefault("style", "basic")
    elif map_type == "geo":
        out.setdefault("geo", {})
    return out, map_type


def _animation_controls(names: Sequence[str]) -> Dict[str, Any]:
    step_args = {"mode": "immediate", "frame": {"duration": 0, "redraw": True}, "transition": {"duration": 0}}
    return {
        "sliders": [
            {
                "currentvalue": {"prefix": "frame: "},
                "steps": [
                    {"method": "animate", "label": name, "args": [[name], step_args]}
                    for name in names
                ],
            }
        ],
        "updatemenus": [
            {
                "type": "buttons",
                "showactive": False,
                "buttons": [
                    {"label": "Play", "method": "animate", "args": [None, {"fromcurrent": True}]}
                ],
            }
        ],
    }


def _split_frames(traces: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    names: List[str] = []
    by_frame: Dict[str, List[Dict[str, Any]]] = {}
    static: List[Dict[str, Any]] = []
    for trace in traces:
        name = trace.pop("frame", None)
        if name is None:
            static.append(trace)
            continue
        if name not in by_frame:
            names.append(name)
            by_frame[name] = []
        by_frame[name].append(trace)
    if not names:
        return static, []
    data = static + by_frame[names[0]]
    frames = [{"name": name, "data": static + by_frame[name]} for name in names]
    return data, frames


def build_figure(figure: FigureSpec) -> Dict[str, Any]:
    """Build the plotly.js figure dict for *figure*.

    Parameters
    ----------
    figure : FigureSpec
        The figure record. It is not modified.

    Returns
    -------
    dict
        ``{"data": [...], "layout": {...}, "config": {...}, "source": str}``
        plus ``"frames"`` when any trace is animated.
    """
    layout, map_type = _clean_layout(figure.layout)

    if figure.prebuilt_data is not None:
        traces = [_copy_nested(dict(t)) for t in figure.prebuilt_data]
        frames = [dict(f) for f in figure.frames]
    else:
        items = list(figure.attribute_sets.items())
        base = items[0][1] if items else None
        if len(items) > 1 and base is not None and base.type is None:
            selected = items[1:]
        else:
            selected = items

        traces = []
        for set_id, aset in selected:
            if base is not None and aset is not base and aset.inherit:
                aset = merge_attribute_sets(base, aset)
            data = figure.datasets[set_id]()
            traces.extend(build_traces(aset, data, map_type=map_type))

        traces, frames = _split_frames(traces)
        if frames:
            for key, value in _animation_controls([f["name"] for f in frames]).items():
                layout.setdefault(key, value)

    rendered: Dict[str, Any] = {
        "data": traces,
        "layout": layout,
        "config": dict(figure.config),
        "source": figure.source,
    }
    if frames:
        rendered["frames"] = frames
    return rendered


def _trace_for_graph_objects(trace: Mapping[str, Any]) -> Dict[str, Any]:
    out = dict(trace)
    key = out.pop("key", None)
    group = out.pop("set", None)
    if key is not None and "customdata" not in out:
        out["customdata"] = key.tolist() if isinstance(key, np.ndarray) else list(key)
    if group is not None and "meta" not in out:
        out["meta"] = {"set": group}
    return out


def to_plotly_figure(rendered: Mapping[str, Any], *, skip_invalid: bool = False) -> go.Figure:
    """Convert a rendered figure dict to ``plotly.graph_objects.Figure``.

    Crosstalk fields are moved: ``key`` into ``customdata`` and ``set`` into
    ``meta``.
    """
    data = [_trace_for_graph_objects(t) for t in rendered.get("data", [])]
    frames = [
        {"name": f.get("name"), "data": [_trace_for_graph_objects(t) for t in f.get("data", [])]}
        for f in rendered.get("frames", [])
    ]
    fig_dict: Dict[str, Any] = {"data": data, "layout": dict(rendered.get("layout", {}))}
    if frames:
        fig_dict["frames"] = frames
    return go.Figure(fig_dict, skip_invalid=skip_invalid)


__all__ = [
    "build_figure",
    "build_traces",
    "continuous_colorscale",
    "discrete_palette",
    "infer_trace_type",
    "merge_attribute_sets",
    "rescale",
    "to_plotly_figure",
]
