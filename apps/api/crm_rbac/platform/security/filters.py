"""Storage-agnostic access predicates.

A compiled access filter is a conjunction of attribute equality and
set-membership clauses. Backends render it into their own query language;
:func:`evaluate` is the in-memory reference semantics every rendering has to
agree with.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Union

NO_ACCESS = "__NO_ACCESS__"

TENANT_FIELD = "tenantId"
DELETED_FIELD = "isDeleted"

# Attributes that are optional on stored documents and read with a default.
_FIELD_DEFAULTS: dict[str, Any] = {DELETED_FIELD: False}


@dataclass(frozen=True, slots=True)
class Eq:
    field: str
    value: Any


@dataclass(frozen=True, slots=True)
class In:
    field: str
    values: frozenset[Any]


@dataclass(frozen=True, slots=True)
class And:
    clauses: tuple["Filter", ...]


Filter = Union[Eq, In, And]


def and_(*clauses: Filter) -> And:
    flattened: list[Filter] = []
    for clause in clauses:
        if isinstance(clause, And):
            flattened.extend(clause.clauses)
        else:
            flattened.append(clause)
    return And(tuple(flattened))


def in_(field: str, values: Iterable[Any]) -> In:
    return In(field, frozenset(values))


def read_field(record: Mapping[str, Any], field: str) -> Any:
    value = record.get(field)
    if value is None:
        return _FIELD_DEFAULTS.get(field)
    return value


def evaluate(predicate: Filter, record: Mapping[str, Any]) -> bool:
    if isinstance(predicate, Eq):
        return read_field(record, predicate.field) == predicate.value
    if isinstance(predicate, In):
        return read_field(record, predicate.field) in predicate.values
    if isinstance(predicate, And):
        return all(evaluate(clause, record) for clause in predicate.clauses)
    raise TypeError(f"Unsupported filter node: {type(predicate).__name__}")


def iter_leaves(predicate: Filter) -> Iterator[Eq | In]:
    if isinstance(predicate, And):
        for clause in predicate.clauses:
            yield from iter_leaves(clause)
        return
    yield predicate


def find_equality(predicate: Filter, field: str) -> Any:
    """Return the value of the first top-level ``Eq`` on ``field``, or ``None``."""

    for leaf in iter_leaves(predicate):
        if isinstance(leaf, Eq) and leaf.field == field:
            return leaf.value
    return None
