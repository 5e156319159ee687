"""Map-mode constructors: geographic and tile-map figures.

Both constructors are thin wrappers around
:func:`~plotlybind.figure_builder.create_figure`: they tag the layout with a
map type and rewrite longitude/latitude attributes into the builder's x/y
convention. The build step turns tagged figures into ``scattergeo`` or
``scattermapbox`` traces.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from typing import Any, Optional

from .figure_builder import create_figure
from .figure_defaults import MAPBOX_TOKEN_ENV
from .figure_errors import FigureConfigError
from .widget import PlotlyWidget, as_widget, config

logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


def mapbox_token() -> str:
    """Return the Mapbox access token from the ``MAPBOX_TOKEN`` environment variable.

    Raises
    ------
    FigureConfigError
        If the variable is unset or empty.
    """
    token = os.environ.get(MAPBOX_TOKEN_ENV, "")
    if not token:
        raise FigureConfigError(
            "No mapbox access token found. Obtain a token from "
            "https://www.mapbox.com/help/create-api-access-token/ and set the "
            f"environment variable {MAPBOX_TOKEN_ENV!r} (or pass access_token=)."
        )
    return token


def geo_to_cartesian(p: PlotlyWidget) -> PlotlyWidget:
    """Return *p* with ``lon``/``lat`` attributes moved to ``x``/``y``.

    Existing ``x``/``y`` attributes take precedence; ``lon``/``lat`` are
    removed either way.
    """
    p = as_widget(p)
    figure = p.figure.copy()
    for ident, aset in figure.attribute_sets.items():
        if "lon" not in aset.attrs and "lat" not in aset.attrs:
            continue
        attrs = dict(aset.attrs)
        lon = attrs.pop("lon", None)
        lat = attrs.pop("lat", None)
        if "x" not in attrs and lon is not None:
            attrs["x"] = lon
        if "y" not in attrs and lat is not None:
            attrs["y"] = lat
        figure.attribute_sets[ident] = replace(aset, attrs=attrs)
    return replace(p, figure=figure)


def _set_map_type(p: PlotlyWidget, map_type: str) -> PlotlyWidget:
    figure = p.figure.copy()
    figure.layout["mapType"] = map_type
    return replace(p, figure=figure)


def create_geo_figure(data: Any = None, **kwargs: Any) -> PlotlyWidget:
    """Initiate a geographic (``scattergeo``) figure.

    Accepts the same arguments as
    :func:`~plotlybind.figure_builder.create_figure`; ``x``/``y`` may be given
    as ``lon``/``lat``.
    """
    p = create_figure(data, **kwargs)
    return geo_to_cartesian(_set_map_type(p, "geo"))


def create_tile_map_figure(
    data: Any = None,
    *,
    access_token: Optional[str] = None,
    **kwargs: Any,
) -> PlotlyWidget:
    """Initiate a tile-map (``scattermapbox``) figure.

    Parameters
    ----------
    data : pandas.DataFrame or SharedData, optional
        Data bound to the figure.
    access_token : str, optional
        Mapbox access token. Defaults to the ``MAPBOX_TOKEN`` environment
        variable.
    **kwargs
        Passed to :func:`~plotlybind.figure_builder.create_figure`.

    Raises
    ------
    FigureConfigError
        If no access token is given and none is set in the environment.
    """
    token = access_token or mapbox_token()
    p = create_figure(data, **kwargs)
    p = config(p, mapboxAccessToken=token)
    logger.debug("tile-map figure configured with access token")
    return geo_to_cartesian(_set_map_type(p, "mapbox"))


__all__ = [
    "create_geo_figure",
    "create_tile_map_figure",
    "geo_to_cartesian",
    "mapbox_token",
]
