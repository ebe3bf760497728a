"""
Consent Ledger - Identifier Generation

Prefixed, time-ordered identifiers. Every entity id starts with the
entity's prefix (``sub_``, ``cns_``, ...) followed by a hex timestamp and
random bits, so ids sort roughly by creation time and say what they are.
"""

from __future__ import annotations

import time
from typing import Callable
from uuid import uuid4

# 2023-11-14T22:13:20Z, keeps the timestamp part short
EPOCH_MS = 1_700_000_000_000


def generate_id(prefix: str) -> str:
    """
    Generate a unique identifier with the given prefix.

    Args:
        prefix: Entity prefix, e.g. ``"cns"``

    Returns:
        Identifier such as ``cns_018f3a2b9c4e5d6f...``
    """
    elapsed = max(0, int(time.time() * 1000) - EPOCH_MS)
    return f"{prefix}_{elapsed:011x}{uuid4().hex[:21]}"


def create_id_generator(prefix: str) -> Callable[[], str]:
    """Create a zero-argument id producer for one entity prefix."""
    def _generate() -> str:
        return generate_id(prefix)

    _generate.__name__ = f"generate_{prefix}_id"
    return _generate
