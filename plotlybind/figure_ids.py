"""Process-wide identifier generator.

Identifiers key the dataset producers and attribute sets of a figure, so
they must never collide within a process. A counter guarded by a lock is
enough; no cross-process uniqueness is needed.
"""

from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())

_ID_LOCK = threading.Lock()
_ID_COUNTER = 0


def reset_ids() -> None:
    """Reset the identifier counter to zero."""
    global _ID_COUNTER
    with _ID_LOCK:
        _ID_COUNTER = 0


def new_id() -> str:
    """Return a fresh identifier such as ``"id1a"``.

    Returns
    -------
    str
        ``"id"`` followed by the hexadecimal value of the incremented counter.
    """
    global _ID_COUNTER
    with _ID_LOCK:
        _ID_COUNTER += 1
        value = _ID_COUNTER
    ident = f"id{value:x}"
    logger.debug("allocated figure id %s", ident)
    return ident


__all__ = ["new_id", "reset_ids"]
