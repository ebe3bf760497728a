"""
Consent Ledger - In-Memory Adapter

Reference ``StorageAdapter`` backed by plain lists. Used by the test suite
and local tooling; it enforces the unique columns and constraints it
receives from ``initialize`` and supports snapshot/rollback transactions.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

import structlog

from consent_ledger.core.errors import DuplicateEntryError
from consent_ledger.schema.tables import TableDefinition
from consent_ledger.storage.adapter import (
    Connector,
    Operator,
    Row,
    SortBy,
    StorageAdapter,
    Where,
    WhereCondition,
)

logger = structlog.get_logger(__name__)


def _compare(row_value: Any, condition: WhereCondition) -> bool:
    op = Operator(condition.operator)
    value = condition.value

    if op == Operator.EQ:
        return row_value == value
    if op == Operator.NE:
        return row_value != value
    if op == Operator.IN:
        return isinstance(value, (list, tuple, set)) and row_value in value
    if op == Operator.NOT_IN:
        return isinstance(value, (list, tuple, set)) and row_value not in value
    if op == Operator.CONTAINS:
        if isinstance(row_value, (list, tuple)):
            return value in row_value
        return isinstance(row_value, str) and str(value) in row_value
    if op == Operator.STARTS_WITH:
        return isinstance(row_value, str) and row_value.startswith(str(value))
    if op == Operator.ENDS_WITH:
        return isinstance(row_value, str) and row_value.endswith(str(value))

    if row_value is None or value is None:
        return False
    try:
        if op == Operator.LT:
            return row_value < value
        if op == Operator.LTE:
            return row_value <= value
        if op == Operator.GT:
            return row_value > value
        if op == Operator.GTE:
            return row_value >= value
    except TypeError:
        return False
    raise ValueError(f"Unsupported operator: {condition.operator}")


def matches(row: Mapping[str, Any], where: Where) -> bool:
    """
    Evaluate ``where`` against a row, left to right.

    Each condition's connector joins it to the result so far; an empty
    ``where`` matches everything.
    """
    result = True
    for index, condition in enumerate(where):
        hit = _compare(row.get(condition.field), condition)
        if index == 0:
            result = hit
        elif Connector(condition.connector) == Connector.OR:
            result = result or hit
        else:
            result = result and hit
    return result


class MemoryAdapter(StorageAdapter):
    """
    Dict-of-lists storage adapter.

    Not a production storage engine: everything lives in process memory
    and is lost on exit.
    """

    id = "memory"

    def __init__(self) -> None:
        self.tables: dict[str, list[Row]] = {}
        self._unique_columns: dict[str, list[str]] = {}
        self._unique_constraints: dict[str, list[tuple[str, ...]]] = {}
        self._tx_lock = asyncio.Lock()

    async def initialize(self, tables: Mapping[str, TableDefinition]) -> None:
        for name, table in tables.items():
            self.tables.setdefault(name, [])
            self._unique_columns[name] = [
                column.name for column in table.columns.values() if column.unique
            ]
            self._unique_constraints[name] = list(table.unique_constraints)
        logger.debug("memory_adapter_initialized", tables=list(tables))

    def _rows(self, model: str) -> list[Row]:
        return self.tables.setdefault(model, [])

    def _check_unique(self, model: str, candidate: Row, exclude: Row | None = None) -> None:
        groups = [(column,) for column in self._unique_columns.get(model, [])]
        groups.extend(self._unique_constraints.get(model, []))
        for group in groups:
            values = tuple(candidate.get(column) for column in group)
            if any(v is None for v in values):
                continue
            for row in self._rows(model):
                if row is exclude:
                    continue
                if tuple(row.get(column) for column in group) == values:
                    raise DuplicateEntryError(model, group)

    async def create(self, model: str, data: Row) -> Row:
        row = copy.deepcopy(dict(data))
        self._check_unique(model, row)
        self._rows(model).append(row)
        return copy.deepcopy(row)

    async def find_one(self, model: str, where: Where) -> Row | None:
        for row in self._rows(model):
            if matches(row, where):
                return copy.deepcopy(row)
        return None

    async def find_many(
        self,
        model: str,
        where: Where = (),
        limit: int | None = None,
        offset: int = 0,
        sort_by: SortBy | None = None,
    ) -> list[Row]:
        rows = [row for row in self._rows(model) if matches(row, where)]
        if sort_by is not None:
            present = [r for r in rows if r.get(sort_by.field) is not None]
            missing = [r for r in rows if r.get(sort_by.field) is None]
            present.sort(key=lambda r: r[sort_by.field], reverse=sort_by.descending)
            rows = present + missing
        rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def update(self, model: str, where: Where, update: Row) -> Row | None:
        for row in self._rows(model):
            if matches(row, where):
                candidate = {**row, **copy.deepcopy(update)}
                self._check_unique(model, candidate, exclude=row)
                row.update(copy.deepcopy(update))
                return copy.deepcopy(row)
        return None

    async def update_many(self, model: str, where: Where, update: Row) -> list[Row]:
        targets = [row for row in self._rows(model) if matches(row, where)]
        for row in targets:
            self._check_unique(model, {**row, **update}, exclude=row)
        for row in targets:
            row.update(copy.deepcopy(update))
        return copy.deepcopy(targets)

    async def delete(self, model: str, where: Where) -> int:
        rows = self._rows(model)
        keep = [row for row in rows if not matches(row, where)]
        removed = len(rows) - len(keep)
        self.tables[model] = keep
        return removed

    async def count(self, model: str, where: Where = ()) -> int:
        return sum(1 for row in self._rows(model) if matches(row, where))

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["MemoryAdapter"]:
        """
        Snapshot every table and restore it if the block raises.

        Transactions are serialised; do not nest them.
        """
        async with self._tx_lock:
            snapshot = copy.deepcopy(self.tables)
            try:
                yield self
            except BaseException:
                self.tables = snapshot
                logger.debug("memory_transaction_rolled_back")
                raise

    def clear(self) -> None:
        """Drop every row, keeping table registrations."""
        for name in self.tables:
            self.tables[name] = []


__all__ = ["MemoryAdapter", "matches"]
