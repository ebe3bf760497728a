"""
Consent Ledger - Base Entity Repository

Generic CRUD over one entity, written against the abstract storage adapter.

Every write runs ``parse_input`` -> before hooks -> adapter -> after hooks
and returns the output-parsed row. Every read runs adapter ->
``parse_output`` -> output transforms. Callers always speak field keys;
translation to physical column names happens here.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Generic, TypeVar, Union

import structlog

from consent_ledger.core.enums import HookOperation, ParseAction
from consent_ledger.core.models import LedgerModel
from consent_ledger.registry.hooks import DatabaseHook, run_after_hooks, run_before_hooks
from consent_ledger.schema.fields import now_utc
from consent_ledger.schema.parser import apply_output_transforms, parse_input, parse_output
from consent_ledger.schema.tables import EntitySchema
from consent_ledger.storage.adapter import Row, SortBy, StorageAdapter, WhereCondition

T = TypeVar("T", bound=LedgerModel)

Criteria = Union[Mapping[str, Any], Sequence[WhereCondition], None]


class EntityRepository(Generic[T]):
    """
    Typed access to one entity.

    Subclasses set ``entity_key`` and ``model_class`` and add finders.
    """

    entity_key: str = ""
    model_class: type[LedgerModel] = LedgerModel

    def __init__(
        self,
        adapter: StorageAdapter,
        schema: EntitySchema,
        hooks: Sequence[DatabaseHook] = (),
    ):
        """
        Initialize repository.

        Args:
            adapter: Storage adapter shared by the registry
            schema: This entity's merged schema
            hooks: Database hooks, configuration first then plugins
        """
        self.adapter = adapter
        self.schema = schema
        self.hooks = list(hooks)
        self.entity_key = schema.key
        self._columns = schema.column_map()
        self._keys = schema.key_map()
        self.logger = structlog.get_logger(self.__class__.__name__)

    @property
    def table(self) -> str:
        """The configured table name."""
        return self.schema.entity_name

    # =========================================================================
    # Key <-> column translation
    # =========================================================================

    def _column(self, key: str) -> str:
        return self._columns.get(key, key)

    def _to_columns(self, data: Mapping[str, Any]) -> Row:
        return {self._column(key): value for key, value in data.items()}

    def _to_keys(self, row: Mapping[str, Any]) -> dict[str, Any]:
        return {self._keys.get(column, column): value for column, value in row.items()}

    def _where(self, criteria: Criteria) -> list[WhereCondition]:
        if not criteria:
            return []
        if isinstance(criteria, Mapping):
            return [WhereCondition(field=self._column(k), value=v) for k, v in criteria.items()]
        return [
            WhereCondition(
                field=self._column(c.field),
                value=c.value,
                operator=c.operator,
                connector=c.connector,
            )
            for c in criteria
        ]

    def _by_id(self, entity_id: str) -> list[WhereCondition]:
        return [WhereCondition(field=self._column("id"), value=entity_id)]

    async def _to_model(self, row: Row | None) -> T | None:
        if not row:
            return None
        visible = parse_output(self._to_keys(row), self.schema)
        visible = await apply_output_transforms(visible, self.schema)
        return self.model_class.model_validate(visible)

    async def _to_models(self, rows: Sequence[Row]) -> list[T]:
        return [m for m in [await self._to_model(r) for r in rows] if m is not None]

    # =========================================================================
    # Writes
    # =========================================================================

    async def create(self, data: Mapping[str, Any], context: dict[str, Any] | None = None) -> T | None:
        """
        Create an entity.

        Args:
            data: Raw input keyed by field key
            context: Extra information handed to hooks

        Returns:
            The created entity, or None if a before hook rejected the write
        """
        parsed = await parse_input(data, self.schema, ParseAction.CREATE)
        payload = await run_before_hooks(self.hooks, self.entity_key, HookOperation.CREATE, parsed, context)
        if payload is None:
            return None

        row = await self.adapter.create(self.table, self._to_columns(payload))
        await run_after_hooks(self.hooks, self.entity_key, HookOperation.CREATE, self._to_keys(row), context)

        self.logger.debug("entity_created", entity=self.entity_key, entity_id=payload.get("id"))
        return await self._to_model(row)

    async def _prepare_update(self, patch: Mapping[str, Any], context: dict[str, Any] | None) -> dict[str, Any] | None:
        parsed = await parse_input(patch, self.schema, ParseAction.UPDATE)
        # Protected fields (id, created_at) are set once, on create
        for key, f in self.schema.fields.items():
            if not f.input:
                parsed.pop(key, None)
        if "updated_at" in self.schema.fields and "updated_at" not in parsed:
            parsed["updated_at"] = now_utc()
        return await run_before_hooks(self.hooks, self.entity_key, HookOperation.UPDATE, parsed, context)

    async def update(
        self,
        entity_id: str,
        patch: Mapping[str, Any],
        context: dict[str, Any] | None = None,
    ) -> T | None:
        """
        Partially update an entity by id.

        Returns:
            The updated entity, or None if it does not exist or a hook
            rejected the write
        """
        payload = await self._prepare_update(patch, context)
        if payload is None:
            return None

        row = await self.adapter.update(self.table, self._by_id(entity_id), self._to_columns(payload))
        if row is None:
            return None
        await run_after_hooks(self.hooks, self.entity_key, HookOperation.UPDATE, self._to_keys(row), context)

        self.logger.debug("entity_updated", entity=self.entity_key, entity_id=entity_id, fields=list(payload))
        return await self._to_model(row)

    async def update_many(
        self,
        criteria: Criteria,
        patch: Mapping[str, Any],
        context: dict[str, Any] | None = None,
    ) -> list[T]:
        """Partially update every matching entity; before hooks run once."""
        payload = await self._prepare_update(patch, context)
        if payload is None:
            return []

        rows = await self.adapter.update_many(self.table, self._where(criteria), self._to_columns(payload))
        for row in rows:
            await run_after_hooks(self.hooks, self.entity_key, HookOperation.UPDATE, self._to_keys(row), context)
        return await self._to_models(rows)

    async def deactivate(self, entity_id: str, context: dict[str, Any] | None = None) -> T | None:
        """Soft-delete by setting ``is_active=False``."""
        if "is_active" not in self.schema.fields:
            raise ValueError(f"{self.entity_key} has no is_active field")
        return await self.update(entity_id, {"is_active": False}, context)

    async def delete(self, entity_id: str) -> bool:
        """
        Hard-delete an entity.

        Prefer ``deactivate``; evidentiary entities are append-only.
        """
        removed = await self.adapter.delete(self.table, self._by_id(entity_id))
        if removed:
            self.logger.info("entity_deleted", entity=self.entity_key, entity_id=entity_id)
        return removed > 0

    # =========================================================================
    # Reads
    # =========================================================================

    async def find_by_id(self, entity_id: str) -> T | None:
        """Get an entity by its id."""
        return await self._to_model(await self.adapter.find_one(self.table, self._by_id(entity_id)))

    async def find_one(self, criteria: Criteria) -> T | None:
        """Get the first entity matching ``criteria``."""
        return await self._to_model(await self.adapter.find_one(self.table, self._where(criteria)))

    async def find_many(
        self,
        criteria: Criteria = None,
        limit: int | None = None,
        offset: int = 0,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[T]:
        """
        Get every entity matching ``criteria``.

        Args:
            criteria: ``{field_key: value}`` equality map or where conditions
            limit: Maximum entities to return
            offset: Entities to skip
            order_by: Field key to sort on
            descending: Sort direction
        """
        sort_by = None
        if order_by:
            sort_by = SortBy(field=self._column(order_by), direction="desc" if descending else "asc")
        rows = await self.adapter.find_many(
            self.table,
            self._where(criteria),
            limit=limit,
            offset=offset,
            sort_by=sort_by,
        )
        return await self._to_models(rows)

    async def count(self, criteria: Criteria = None) -> int:
        """Count entities matching ``criteria``."""
        return await self.adapter.count(self.table, self._where(criteria))

    async def exists(self, entity_id: str) -> bool:
        """Check if an entity exists."""
        return await self.count({"id": entity_id}) > 0


__all__ = ["Criteria", "EntityRepository"]
