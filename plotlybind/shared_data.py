"""Shareable data wrapper for linked selection across figures."""

from __future__ import annotations

from typing import Any, Optional

import numpy as np
import pandas as pd

from .figure_ids import new_id


class SharedData:
    """A DataFrame tagged with a row key and a selection group.

    Figures built from the same group can highlight each other's rows: every
    trace derived from a ``SharedData`` carries the row keys (``key``) and the
    group name (``set``) so the host can link selections.

    Parameters
    ----------
    frame : pandas.DataFrame
        The wrapped table.
    key : str, optional
        Column holding the row keys. Defaults to the frame index.
    group : str, optional
        Selection-group name. Defaults to a fresh identifier.
    """

    def __init__(
        self,
        frame: pd.DataFrame,
        key: Optional[str] = None,
        group: Optional[str] = None,
    ) -> None:
        if not isinstance(frame, pd.DataFrame):
            raise TypeError(
                f"SharedData expects a pandas.DataFrame, got {type(frame).__name__}"
            )
        if key is not None and key not in frame.columns:
            raise KeyError(f"Key column {key!r} not found in data")
        self._frame = frame
        self._key = key
        self.group = group if group is not None else new_id()

    def data(self) -> pd.DataFrame:
        """Return the wrapped DataFrame."""
        return self._frame

    def key(self) -> np.ndarray:
        """Return one key string per row."""
        values: Any = self._frame[self._key] if self._key is not None else self._frame.index
        return np.asarray([str(v) for v in values], dtype=object)

    def __len__(self) -> int:
        return len(self._frame)

    def __repr__(self) -> str:
        return f"SharedData(rows={len(self._frame)}, group={self.group!r})"


def is_shared_data(value: Any) -> bool:
    """Return True when *value* is a :class:`SharedData`."""
    return isinstance(value, SharedData)


__all__ = ["SharedData", "is_shared_data"]
