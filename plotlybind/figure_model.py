"""Intermediate figure record shared by the builder, build step and widget.

Purpose
-------
A ``FigureSpec`` is the declarative, not-yet-rendered description of a chart.
It stores data *producers* rather than data, and attribute sets whose column
mappings are still unevaluated. The build step (:mod:`plotlybind.figure_build`)
turns it into plotly.js traces and layout at render time.

Important gotchas
-----------------
- Every attribute-set id is also a dataset id. Adding a trace without new
  data re-registers the current producer under a fresh id, so the pairing
  survives any number of chained operations.
- Chaining helpers work on copies (:meth:`FigureSpec.copy`); a packaged
  widget never sees its figure change after construction.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

from .figure_defaults import DEFAULT_ALPHA, DEFAULT_SIZES, DEFAULT_SOURCE
from .figure_ids import new_id

logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())

DataProducer = Callable[[], Any]


@dataclass(frozen=True)
class AttributeSet:
    """Attributes of one future trace (or group of traces after splitting).

    Parameters
    ----------
    attrs : dict
        Pass-through plotly attributes. Values may be deferred column
        expressions; unknown keys are forwarded opaquely.
    mappings : dict
        Only the special mappings the caller supplied (subset of color,
        symbol, linetype, size, split, frame).
    colors, symbols, linetypes : optional
        Palette name or colors, symbol vocabulary and linetype vocabulary.
    alpha : float
        Opacity applied to the resulting traces.
    sizes : tuple[float, float]
        Pixel range that numeric size mappings are scaled into.
    type : str, optional
        Trace type hint; inferred at build time when ``None``.
    inherit : bool
        Whether the figure's base attribute set is merged under this one.
    """

    attrs: Dict[str, Any] = field(default_factory=dict)
    mappings: Dict[str, Any] = field(default_factory=dict)
    colors: Any = None
    alpha: float = DEFAULT_ALPHA
    symbols: Optional[Tuple[str, ...]] = None
    linetypes: Optional[Tuple[str, ...]] = None
    sizes: Tuple[float, float] = DEFAULT_SIZES
    type: Optional[str] = None
    inherit: bool = True

    def with_attrs(self, **attrs: Any) -> "AttributeSet":
        """Return a copy with *attrs* merged into the pass-through attributes."""
        merged = dict(self.attrs)
        merged.update(attrs)
        return replace(self, attrs=merged)


@dataclass
class FigureSpec:
    """Root figure record.

    Parameters
    ----------
    datasets : dict[str, callable]
        Dataset id -> zero-argument producer returning the bound data.
    current_dataset_id : str
        Id of the most recently bound dataset.
    attribute_sets : dict[str, AttributeSet]
        Attribute-set id (always a dataset id) -> attributes, in trace order.
    layout : dict
        Layout keys (width, height, margin, axes, ``mapType``, dragmode, ...).
    source : str
        Label used to correlate interaction events back to this figure.
    config : dict
        Widget-level plotly.js config options.
    frames : list
        Prebuilt frames, only used for figures packaged from a plain mapping.
    prebuilt_data : list, optional
        Prebuilt traces, only used for figures packaged from a plain mapping.
    """

    datasets: Dict[str, DataProducer] = field(default_factory=dict)
    current_dataset_id: Optional[str] = None
    attribute_sets: Dict[str, AttributeSet] = field(default_factory=dict)
    layout: Dict[str, Any] = field(default_factory=dict)
    source: str = DEFAULT_SOURCE
    config: Dict[str, Any] = field(default_factory=dict)
    frames: list = field(default_factory=list)
    prebuilt_data: Optional[list] = None

    def bind_dataset(self, data: Any) -> str:
        """Register a producer for *data* under a fresh id and make it current."""
        ident = new_id()

        def _producer() -> Any:
            return data

        self.datasets[ident] = _producer
        self.current_dataset_id = ident
        logger.debug("bound dataset %s (%s)", ident, type(data).__name__)
        return ident

    def rebind_current(self) -> str:
        """Register the current producer again under a fresh id."""
        if self.current_dataset_id is None:
            raise RuntimeError("Figure has no bound dataset to re-register.")
        producer = self.datasets[self.current_dataset_id]
        ident = new_id()
        self.datasets[ident] = producer
        self.current_dataset_id = ident
        return ident

    def current_data(self) -> Any:
        """Return the data of the current dataset."""
        if self.current_dataset_id is None:
            return None
        return self.datasets[self.current_dataset_id]()

    def base_attribute_set(self) -> Optional[AttributeSet]:
        """Return the first attribute set (the one created with the figure)."""
        for attrs in self.attribute_sets.values():
            return attrs
        return None

    def copy(self) -> "FigureSpec":
        """Return a copy whose containers can be changed independently."""
        return FigureSpec(
            datasets=dict(self.datasets),
            current_dataset_id=self.current_dataset_id,
            attribute_sets=dict(self.attribute_sets),
            layout=_copy_layout(self.layout),
            source=self.source,
            config=dict(self.config),
            frames=list(self.frames),
            prebuilt_data=None if self.prebuilt_data is None else list(self.prebuilt_data),
        )

    def check_invariants(self) -> None:
        """Raise ``ValueError`` if ids are not paired with datasets."""
        missing = [k for k in self.attribute_sets if k not in self.datasets]
        if missing:
            raise ValueError(f"Attribute sets without a dataset: {missing}")
        if self.current_dataset_id is not None and self.current_dataset_id not in self.datasets:
            raise ValueError(
                f"Current dataset {self.current_dataset_id!r} is not registered"
            )


def _copy_layout(layout: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in layout.items():
        out[key] = dict(value) if isinstance(value, dict) else value
    return out


__all__ = ["AttributeSet", "DataProducer", "FigureSpec"]
