"""
Shared fixtures for consent ledger tests.

Provides a fresh in-memory adapter, an initialized registry, a consent
service with test configuration, and a sample plugin.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import pytest
import pytest_asyncio

from consent_ledger.core.config import ConsentLedgerConfig
from consent_ledger.registry import ConsentRegistry, create_registry
from consent_ledger.schema import (
    EntityFragment,
    LedgerOptions,
    LedgerPlugin,
    boolean_field,
    reference_field,
    string_field,
)
from consent_ledger.services import ConsentService
from consent_ledger.storage import MemoryAdapter


# =============================================================================
# CONFIG FIXTURES
# =============================================================================


@pytest.fixture
def ledger_config() -> ConsentLedgerConfig:
    """Create a ConsentLedgerConfig isolated from the environment's .env file."""
    return ConsentLedgerConfig(
        _env_file=None,
        app_env="test",
        write_audit_log=True,
        link_purpose_junctions=True,
        history_limit=50,
    )


# =============================================================================
# STORAGE AND REGISTRY FIXTURES
# =============================================================================


@pytest.fixture
def memory_adapter() -> MemoryAdapter:
    """Create an empty in-memory adapter."""
    return MemoryAdapter()


async def build_registry(adapter: MemoryAdapter, options: LedgerOptions | None = None) -> ConsentRegistry:
    """Create and initialize a registry over ``adapter``."""
    registry = create_registry(adapter, options)
    await registry.initialize()
    return registry


@pytest.fixture
def make_registry(memory_adapter: MemoryAdapter) -> Callable[..., Awaitable[ConsentRegistry]]:
    """Factory for registries with custom options over the shared adapter."""

    async def _make(options: LedgerOptions | None = None) -> ConsentRegistry:
        return await build_registry(memory_adapter, options)

    return _make


@pytest_asyncio.fixture
async def registry(memory_adapter: MemoryAdapter) -> ConsentRegistry:
    """Create an initialized registry with default options."""
    return await build_registry(memory_adapter)


@pytest_asyncio.fixture
async def consent_service(registry: ConsentRegistry, ledger_config: ConsentLedgerConfig) -> ConsentService:
    """Create a consent service over the default registry."""
    return ConsentService(registry, ledger_config)


# =============================================================================
# PLUGIN FIXTURES
# =============================================================================


@pytest.fixture
def sample_plugin() -> LedgerPlugin:
    """A plugin that extends subject and adds a device table."""
    return LedgerPlugin(
        id="devices",
        schema={
            "subject": EntityFragment(
                fields={
                    "country": string_field(required=False),
                    "is_identified": boolean_field(required=False),
                },
            ),
            "device": EntityFragment(
                fields={
                    "subject_id": reference_field("subject"),
                    "fingerprint": string_field(unique=True),
                },
                entity_prefix="dev",
            ),
        },
    )


@pytest.fixture
def recording_hooks() -> tuple[list[tuple[str, Any]], dict[str, Any]]:
    """A hook set that records every call it receives."""
    calls: list[tuple[str, Any]] = []

    def before(data: dict[str, Any], ctx: Any) -> None:
        calls.append(("before", dict(data)))

    def after(row: dict[str, Any], ctx: Any) -> None:
        calls.append(("after", dict(row)))

    return calls, {"subject": {"create": {"before": before, "after": after}}}
