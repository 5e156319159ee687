"""Top-level public API for the ``plotlybind`` package.

Build plotly figures from tables with formula mappings:

>>> import pandas as pd  # doctest: +SKIP
>>> from plotlybind import create_figure, formula  # doctest: +SKIP
>>> create_figure(df, x=formula("date"), y=formula("unemploy / pop"))  # doctest: +SKIP

Constructors return a :class:`PlotlyWidget`; chaining helpers (``add_*``,
``update_layout``, ``config``) return new widgets.
"""

from .dendrogram import create_tree_figure, extend_range
from .figure_build import build_figure, to_plotly_figure
from .figure_builder import (
    MISSING,
    add_lines,
    add_markers,
    add_segments,
    add_text,
    add_trace,
    create_figure,
    update_layout,
)
from .figure_errors import FigureArgumentWarning, FigureConfigError, FigureInputError
from .figure_ids import new_id, reset_ids
from .figure_mappings import ColumnExpr, Constant, Formula, I, formula
from .figure_model import AttributeSet, FigureSpec
from .figure_modes import create_geo_figure, create_tile_map_figure, geo_to_cartesian
from .shared_data import SharedData
from .widget import (
    HtmlDependency,
    PlotlyWidget,
    SizingPolicy,
    as_widget,
    config,
    remove_typedarray_polyfill,
)

__version__ = "0.1.0"

__all__ = [
    "AttributeSet",
    "ColumnExpr",
    "Constant",
    "FigureArgumentWarning",
    "FigureConfigError",
    "FigureInputError",
    "FigureSpec",
    "Formula",
    "HtmlDependency",
    "I",
    "MISSING",
    "PlotlyWidget",
    "SharedData",
    "SizingPolicy",
    "add_lines",
    "add_markers",
    "add_segments",
    "add_text",
    "add_trace",
    "as_widget",
    "build_figure",
    "config",
    "create_figure",
    "create_geo_figure",
    "create_tile_map_figure",
    "create_tree_figure",
    "extend_range",
    "formula",
    "geo_to_cartesian",
    "new_id",
    "remove_typedarray_polyfill",
    "reset_ids",
    "to_plotly_figure",
    "update_layout",
]
