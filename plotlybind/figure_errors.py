"""Exception and warning types raised by figure construction."""

from __future__ import annotations


class FigureInputError(TypeError):
    """Raised when the data argument is not a table or a shared table."""


class FigureConfigError(RuntimeError):
    """Raised when a figure mode needs configuration that cannot be resolved."""


class FigureArgumentWarning(UserWarning):
    """Emitted when a retired argument is ignored."""


__all__ = ["FigureArgumentWarning", "FigureConfigError", "FigureInputError"]
