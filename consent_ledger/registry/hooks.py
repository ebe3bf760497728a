"""
Consent Ledger - Database Hooks

Lifecycle hooks around registry writes. A hook set maps entity keys to
operations to ``EntityHook(before, after)``::

    {"consent": {"create": EntityHook(before=stamp_region)}}

``before`` hooks run in registration order and may:

- return ``REJECT`` (or ``False``) to abort the write; the caller gets ``None``
- return ``HookTransform(data)`` to merge ``data`` into the payload
- return anything else to continue unchanged

``after`` hooks observe a copy of the committed row and cannot alter it.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Mapping, Union

import structlog

from consent_ledger.core.enums import HookOperation, HookPhase
from consent_ledger.schema.fields import maybe_await

logger = structlog.get_logger(__name__)


class _Reject:
    """Sentinel type for an aborted write."""

    _instance: "_Reject | None" = None

    def __new__(cls) -> "_Reject":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "REJECT"

    def __bool__(self) -> bool:
        return False


REJECT = _Reject()


@dataclass(frozen=True)
class HookTransform:
    """Replacement payload fragment returned by a ``before`` hook."""
    data: Mapping[str, Any]


@dataclass
class HookContext:
    """What a hook is told about the operation it runs in."""
    entity: str
    operation: HookOperation
    phase: HookPhase
    extra: dict[str, Any] = field(default_factory=dict)


HookFn = Callable[[dict[str, Any], HookContext], Union[Any, Awaitable[Any]]]


@dataclass(frozen=True)
class EntityHook:
    """``before`` / ``after`` callbacks for one entity operation."""
    before: HookFn | None = None
    after: HookFn | None = None


DatabaseHook = Mapping[str, Mapping[str, Union[EntityHook, Mapping[str, HookFn]]]]


def _hook_fn(hook_set: DatabaseHook, entity: str, operation: HookOperation, phase: HookPhase) -> HookFn | None:
    entity_hooks = hook_set.get(entity)
    if not entity_hooks:
        return None
    operation_hooks = entity_hooks.get(HookOperation(operation).value)
    if operation_hooks is None:
        return None
    if isinstance(operation_hooks, EntityHook):
        return getattr(operation_hooks, phase.value)
    return operation_hooks.get(phase.value)


async def run_before_hooks(
    hooks: Iterable[DatabaseHook],
    entity: str,
    operation: HookOperation,
    data: Mapping[str, Any],
    extra: dict[str, Any] | None = None,
) -> dict[str, Any] | None:
    """
    Run ``before`` hooks in order.

    Returns:
        The (possibly transformed) payload, or ``None`` if a hook rejected it
    """
    current = dict(data)
    context = HookContext(entity, HookOperation(operation), HookPhase.BEFORE, extra or {})
    for hook_set in hooks:
        fn = _hook_fn(hook_set, entity, operation, HookPhase.BEFORE)
        if fn is None:
            continue
        result = await maybe_await(fn(dict(current), context))
        if result is REJECT or result is False:
            logger.debug("hook_rejected_write", entity=entity, operation=context.operation.value)
            return None
        if isinstance(result, HookTransform):
            current = {**current, **result.data}
    return current


async def run_after_hooks(
    hooks: Iterable[DatabaseHook],
    entity: str,
    operation: HookOperation,
    row: Mapping[str, Any],
    extra: dict[str, Any] | None = None,
) -> None:
    """Run ``after`` hooks in order on a copy of the committed row."""
    context = HookContext(entity, HookOperation(operation), HookPhase.AFTER, extra or {})
    for hook_set in hooks:
        fn = _hook_fn(hook_set, entity, operation, HookPhase.AFTER)
        if fn is None:
            continue
        await maybe_await(fn(copy.deepcopy(dict(row)), context))


def collect_hooks(option_hooks: Iterable[DatabaseHook], plugins: Iterable[Any]) -> list[DatabaseHook]:
    """Configuration hooks first, then each plugin's hooks in plugin order."""
    collected = list(option_hooks)
    for plugin in plugins:
        collected.extend(getattr(plugin, "hooks", None) or [])
    return collected


__all__ = [
    "REJECT",
    "DatabaseHook",
    "EntityHook",
    "HookContext",
    "HookFn",
    "HookTransform",
    "collect_hooks",
    "run_after_hooks",
    "run_before_hooks",
]
