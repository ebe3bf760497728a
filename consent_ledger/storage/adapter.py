"""
Consent Ledger - Storage Adapter Contract

The abstract storage interface the registry is written against. Concrete
engines (SQL, document stores, ...) live outside the ledger; they receive
the persisted table shape once through ``initialize`` and then operate on
rows keyed by physical column name.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any

from consent_ledger.schema.tables import TableDefinition

Row = dict[str, Any]


class Operator(str, Enum):
    """Comparison operators a ``WhereCondition`` may use."""
    EQ = "eq"
    NE = "ne"
    IN = "in"
    NOT_IN = "not_in"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"


class Connector(str, Enum):
    """How a condition combines with the conditions before it."""
    AND = "AND"
    OR = "OR"


@dataclass(frozen=True)
class WhereCondition:
    """A single ``{field, operator, value}`` filter clause."""
    field: str
    value: Any
    operator: Operator = Operator.EQ
    connector: Connector = Connector.AND


@dataclass(frozen=True)
class SortBy:
    """Sort order for ``find_many``."""
    field: str
    direction: str = "asc"

    @property
    def descending(self) -> bool:
        return self.direction.lower() == "desc"


Where = Sequence[WhereCondition]


class StorageAdapter(ABC):
    """
    Abstract storage adapter.

    All methods are coroutines; ``model`` is always the configured table
    name and row keys are physical column names.
    """

    id: str = "abstract"

    async def initialize(self, tables: Mapping[str, TableDefinition]) -> None:
        """Receive the persisted schema. Adapters without DDL needs may ignore it."""

    @abstractmethod
    async def create(self, model: str, data: Row) -> Row:
        """Insert a row and return it as stored."""

    @abstractmethod
    async def find_one(self, model: str, where: Where) -> Row | None:
        """Get the first row matching ``where``."""

    @abstractmethod
    async def find_many(
        self,
        model: str,
        where: Where = (),
        limit: int | None = None,
        offset: int = 0,
        sort_by: SortBy | None = None,
    ) -> list[Row]:
        """Get every row matching ``where``."""

    @abstractmethod
    async def update(self, model: str, where: Where, update: Row) -> Row | None:
        """Update the first matching row; ``None`` if nothing matched."""

    @abstractmethod
    async def update_many(self, model: str, where: Where, update: Row) -> list[Row]:
        """Update every matching row and return them."""

    @abstractmethod
    async def delete(self, model: str, where: Where) -> int:
        """Delete matching rows and return how many were removed."""

    @abstractmethod
    async def count(self, model: str, where: Where = ()) -> int:
        """Count matching rows."""

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["StorageAdapter"]:
        """
        Group writes into one unit of work.

        The default is a pass-through: writes made before a failure stay
        committed. Adapters with real transactions override this.
        """
        yield self


__all__ = [
    "Connector",
    "Operator",
    "Row",
    "SortBy",
    "StorageAdapter",
    "Where",
    "WhereCondition",
]
