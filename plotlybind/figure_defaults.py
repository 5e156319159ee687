"""Default values shared by the figure builder, build step and widget.

Keeping these constants in one place gives tests a single source of truth for
documented defaults (margins, scale ranges, vocabularies) and lets callers
inspect them without reading builder internals.
"""

from __future__ import annotations

from types import MappingProxyType

DEFAULT_SOURCE = "A"
DEFAULT_ALPHA = 1
DEFAULT_SIZES: tuple[float, float] = (10, 100)

# Margins suited to notebook and IDE viewer panes.
DEFAULT_MARGIN = MappingProxyType({"b": 40, "l": 60, "t": 25, "r": 10})

DEFAULT_SIZING_POLICY = MappingProxyType(
    {"browser_fill": True, "default_width": "100%", "default_height": 400}
)

# Widget-level plotly.js config applied to every new figure.
DEFAULT_CONFIG = MappingProxyType(
    {"displaylogo": False, "modeBarButtonsToRemove": ("sendDataToCloud",)}
)

DEPRECATED_UPLOAD_KEYS: tuple[str, ...] = ("filename", "fileopt", "world_readable")

DEFAULT_CONTINUOUS_COLORS = "Viridis"
DEFAULT_DISCRETE_COLORS = "Set2"

DEFAULT_SYMBOLS: tuple[str, ...] = (
    "circle",
    "triangle-up",
    "square",
    "cross",
    "diamond",
    "x",
    "star",
    "hexagon",
    "pentagon",
    "triangle-down",
)

DEFAULT_LINETYPES: tuple[str, ...] = (
    "solid",
    "dot",
    "dash",
    "longdash",
    "dashdot",
    "longdashdot",
)

# Special deferred mappings, in the order they are attached.
MAPPING_NAMES: tuple[str, ...] = ("color", "symbol", "linetype", "size", "split", "frame")

MAPBOX_TOKEN_ENV = "MAPBOX_TOKEN"

TYPEDARRAY_NAME = "typedarray"
TYPEDARRAY_VERSION = "0.1"
CROSSTALK_NAME = "crosstalk"
CROSSTALK_VERSION = "1.2.1"
PLOTLYJS_NAME = "plotlyjs"

# Fractional padding used by extend_range.
EXTEND_RANGE_FRACTION = 0.05
