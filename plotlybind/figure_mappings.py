"""Deferred column mappings for figure attributes.

Purpose
-------
Visual properties (color, size, symbol, ...) and ordinary trace attributes
(``x``, ``y``, ``text``, ...) may refer to columns of the bound dataset.
Those references are captured at construction time and only evaluated by an
explicit resolution pass when the figure is built for rendering.

Concepts and structure
----------------------
A mapping value is one of:

- ``Constant(value)``: a literal, used as-is and never scaled.
- ``Formula(expression)``: what users write; not yet tied to a dataset.
- ``ColumnExpr(expression, source_id)``: a formula bound to the dataset id it
  was declared against.

Expressions are either a column name, a SymPy-parsable expression over
column names (``"unemploy / pop"``, ``"log(gdp)"``), or a SymPy expression
whose free symbols name columns. Column names that are not Python
identifiers can be quoted with backticks (```Sepal Length` * 2``).

Examples
--------
>>> import pandas as pd
>>> from plotlybind.figure_mappings import bind_mapping, formula, resolve
>>> frame = pd.DataFrame({"a": [1.0, 2.0], "b": [3.0, 4.0]})
>>> bound = bind_mapping(formula("a + b"), "id1")
>>> resolve(bound, frame).tolist()
[4.0, 6.0]
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Union

import numpy as np
import sympy as sp
from sympy.core.expr import Expr
from sympy.parsing.sympy_parser import parse_expr

logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())

_BACKTICK_RE = re.compile(r"`([^`]+)`")


@dataclass(frozen=True)
class Constant:
    """A literal mapping value that is passed through without scaling."""

    value: Any


@dataclass(frozen=True)
class Formula:
    """An unbound column expression."""

    expression: Union[str, Expr]

    def __repr__(self) -> str:
        return f"~{self.expression}"


@dataclass(frozen=True)
class ColumnExpr:
    """A column expression bound to the dataset it was declared against.

    Parameters
    ----------
    expression : str or sympy.Expr
        Column name or expression over column names.
    source_id : str
        Identifier of the dataset producer that was current when the
        expression was captured.
    """

    expression: Union[str, Expr]
    source_id: str

    def __repr__(self) -> str:
        return f"~{self.expression} @ {self.source_id}"


Mapping = Union[Constant, ColumnExpr]


def formula(expression: Union[str, Expr]) -> Formula:
    """Return an unbound column expression (``~expr`` in formula notation)."""
    if not isinstance(expression, (str, Expr)):
        raise TypeError(
            f"formula() expects a string or SymPy expression, got {type(expression).__name__}"
        )
    return Formula(expression)


def I(value: Any) -> Constant:  # noqa: E743
    """Wrap *value* so it is used as-is instead of being scaled."""
    return Constant(value)


def bind_mapping(value: Any, source_id: str) -> Mapping:
    """Bind a special mapping (color, size, ...) to ``source_id``.

    Formulas and SymPy expressions become :class:`ColumnExpr`; everything
    else is treated as a constant.
    """
    if isinstance(value, (Constant, ColumnExpr)):
        return value
    if isinstance(value, Formula):
        return ColumnExpr(value.expression, source_id)
    if isinstance(value, Expr):
        return ColumnExpr(value, source_id)
    return Constant(value)


def bind_attribute(value: Any, source_id: str) -> Any:
    """Bind a pass-through attribute; non-formula values are left untouched."""
    if isinstance(value, Formula):
        return ColumnExpr(value.expression, source_id)
    if isinstance(value, Expr) and not isinstance(value, sp.Number):
        return ColumnExpr(value, source_id)
    return value


def is_deferred(value: Any) -> bool:
    """Return True when *value* still needs the resolution pass."""
    return isinstance(value, (ColumnExpr, Formula)) or (
        isinstance(value, Expr) and not isinstance(value, sp.Number)
    )


def _quoted_names(text: str) -> tuple[str, dict[str, str]]:
    """Replace backtick-quoted column names with placeholder identifiers."""
    placeholders: dict[str, str] = {}

    def _sub(match: re.Match[str]) -> str:
        name = match.group(1)
        ident = f"__col{len(placeholders)}__"
        placeholders[ident] = name
        return ident

    return _BACKTICK_RE.sub(_sub, text), placeholders


def _parse(text: str, columns: tuple[str, ...]) -> tuple[sp.Basic, dict[sp.Symbol, str]]:
    """Parse *text* with column names bound to symbols."""
    rewritten, placeholders = _quoted_names(text)
    local_dict: dict[str, Any] = {}
    symbol_columns: dict[sp.Symbol, str] = {}
    for column in columns:
        if column.isidentifier():
            sym = sp.Symbol(column)
            local_dict[column] = sym
            symbol_columns[sym] = column
    for ident, column in placeholders.items():
        sym = sp.Symbol(ident)
        local_dict[ident] = sym
        symbol_columns[sym] = column
    try:
        parsed = parse_expr(rewritten, local_dict=local_dict, evaluate=True)
    except Exception as exc:
        raise ValueError(f"Could not parse column expression {text!r}: {exc}") from exc
    return parsed, symbol_columns


@lru_cache(maxsize=256)
def _compile(expr: sp.Basic, symbols: tuple[sp.Symbol, ...]):
    return sp.lambdify(symbols, expr, modules="numpy")


def _column(frame: Any, name: str) -> np.ndarray:
    if name not in frame.columns:
        available = ", ".join(map(str, frame.columns))
        raise KeyError(f"Column {name!r} not found in data (available: {available})")
    return frame[name].to_numpy()


def evaluate_expression(expression: Union[str, Expr], frame: Any) -> np.ndarray:
    """Evaluate a column expression against a pandas DataFrame.

    Parameters
    ----------
    expression : str or sympy.Expr
        Column name or expression over column names.
    frame : pandas.DataFrame
        Data the expression is evaluated against.

    Returns
    -------
    numpy.ndarray
        One value per row of *frame*.

    Raises
    ------
    KeyError
        If the expression references a column that *frame* lacks.
    ValueError
        If a string expression cannot be parsed.
    """
    columns = tuple(str(c) for c in frame.columns)
    if isinstance(expression, str):
        if expression in columns:
            return _column(frame, expression)
        expr, symbol_columns = _parse(expression, columns)
    else:
        expr = expression
        symbol_columns = {s: s.name for s in expression.free_symbols}

    free = tuple(sorted(expr.free_symbols, key=lambda s: s.name))
    missing = [s.name for s in free if s not in symbol_columns]
    if missing:
        available = ", ".join(columns)
        raise KeyError(
            f"Column(s) {', '.join(missing)} not found in data (available: {available})"
        )

    args = [_column(frame, symbol_columns[s]) for s in free]
    values = np.asarray(_compile(expr, free)(*args))
    if values.ndim == 0:
        values = np.full(len(frame), values.item())
    logger.debug("resolved %r over %d rows", expression, len(frame))
    return values


def resolve(value: Any, frame: Any) -> Any:
    """Resolve a mapping or attribute value against *frame*.

    ``ColumnExpr`` (and unbound formulas) are evaluated, ``Constant`` yields
    its value and any other value is returned unchanged.
    """
    if isinstance(value, Constant):
        return value.value
    if isinstance(value, (ColumnExpr, Formula)):
        return evaluate_expression(value.expression, frame)
    if is_deferred(value):
        return evaluate_expression(value, frame)
    return value


__all__ = [
    "ColumnExpr",
    "Constant",
    "Formula",
    "I",
    "Mapping",
    "bind_attribute",
    "bind_mapping",
    "evaluate_expression",
    "formula",
    "is_deferred",
    "resolve",
]
