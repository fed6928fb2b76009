"""
Structured filter predicates for contact queries, compiled to asyncpg SQL.

Planner code builds filters from these nodes only; the storage layer turns
them into parameterized SQL with ``$n`` placeholders. ``RawPredicate`` is the
escape hatch for expressions the structured nodes cannot express. It is
meant for a single, documented use (digit-normalized phone matching) and
must never be built from caller input other than as bound parameters.
"""

import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union

# Columns predicates may reference
FILTERABLE_COLUMNS = frozenset({"id", "name", "email", "phone", "created_at", "updated_at"})

COMPARISON_OPERATORS = frozenset({"=", "<", ">", "<=", ">="})


@dataclass(frozen=True)
class Contains:
    """Substring match on a text column."""
    column: str
    value: str
    case_insensitive: bool = True


@dataclass(frozen=True)
class Compare:
    """Binary comparison of a column against a value."""
    column: str
    operator: str
    value: Any


@dataclass(frozen=True)
class AllOf:
    """Conjunction of predicates."""
    parts: Tuple["Predicate", ...]


@dataclass(frozen=True)
class AnyOf:
    """Disjunction of predicates."""
    parts: Tuple["Predicate", ...]


@dataclass(frozen=True)
class RawPredicate:
    """Literal SQL fragment; each ``{}`` in ``sql`` binds the next entry of ``params``."""
    sql: str
    params: Tuple[Any, ...] = ()


Predicate = Union[Contains, Compare, AllOf, AnyOf, RawPredicate]


def all_of(*parts: Optional[Predicate]) -> Optional[Predicate]:
    """AND together the non-empty predicates."""
    present = tuple(p for p in parts if p is not None)
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return AllOf(present)


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so ``text`` matches literally."""
    return re.sub(r"([\\%_])", r"\\\1", text)


def _check_column(column: str) -> str:
    if column not in FILTERABLE_COLUMNS:
        raise ValueError(f"Unsupported column: {column}")
    return column


class SQLBuilder:
    """Accumulates bind parameters while rendering predicates."""

    def __init__(self, params: Optional[List[Any]] = None):
        self.params: List[Any] = params if params is not None else []

    def bind(self, value: Any) -> str:
        self.params.append(value)
        return f"${len(self.params)}"

    def render(self, predicate: Predicate) -> str:
        if isinstance(predicate, Contains):
            column = _check_column(predicate.column)
            operator = "ILIKE" if predicate.case_insensitive else "LIKE"
            placeholder = self.bind(f"%{escape_like(predicate.value)}%")
            return f"{column} {operator} {placeholder}"

        if isinstance(predicate, Compare):
            column = _check_column(predicate.column)
            if predicate.operator not in COMPARISON_OPERATORS:
                raise ValueError(f"Unsupported operator: {predicate.operator}")
            return f"{column} {predicate.operator} {self.bind(predicate.value)}"

        if isinstance(predicate, (AllOf, AnyOf)):
            joiner = " AND " if isinstance(predicate, AllOf) else " OR "
            return "(" + joiner.join(self.render(part) for part in predicate.parts) + ")"

        if isinstance(predicate, RawPredicate):
            placeholders = [self.bind(value) for value in predicate.params]
            return "(" + predicate.sql.format(*placeholders) + ")"

        raise TypeError(f"Unknown predicate: {predicate!r}")


def compile_where(predicate: Optional[Predicate], params: Optional[List[Any]] = None) -> Tuple[str, List[Any]]:
    """Render ``predicate`` as a WHERE clause (empty string when absent)."""
    builder = SQLBuilder(params)
    if predicate is None:
        return "", builder.params
    return f"WHERE {builder.render(predicate)}", builder.params
