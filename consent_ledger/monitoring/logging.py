"""
Consent Ledger - Structured Logging

structlog setup driven by ``ConsentLedgerConfig``, a processor that keeps
subject evidence out of log output, and the timing wrapper every consent
flow runs inside.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog
from structlog.typing import EventDict, WrappedLogger

if TYPE_CHECKING:
    from consent_ledger.core.config import ConsentLedgerConfig

REDACTED = "[REDACTED]"

# Evidence captured on consents, records, withdrawals and subjects
EVIDENCE_KEYS = frozenset({"ip_address", "last_ip_address", "user_agent"})

# Substrings of keys that may carry adapter or hook credentials
CREDENTIAL_MARKERS = ("password", "secret", "token", "api_key", "authorization")


def _is_sensitive(key: Any) -> bool:
    if not isinstance(key, str):
        return False
    lowered = key.lower()
    return lowered in EVIDENCE_KEYS or any(marker in lowered for marker in CREDENTIAL_MARKERS)


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: REDACTED if _is_sensitive(k) else _redact(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_redact(item) for item in value]
    return value


def redact_evidence(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask IP addresses, user agents and credentials, including inside ``details`` payloads."""
    redacted: EventDict = _redact(event_dict)
    return redacted


def configure_logging(config: ConsentLedgerConfig | None = None, *, redact: bool = True) -> None:
    """
    Configure structlog for the ledger.

    Uses ``config.log_level`` as the threshold and renders JSON when
    ``config.json_logs`` is set or the app runs in production; otherwise a
    console renderer with rich tracebacks.

    Args:
        config: Settings to read; the cached ``get_config()`` when omitted
        redact: Install ``redact_evidence`` before rendering
    """
    if config is None:
        from consent_ledger.core.config import get_config

        config = get_config()

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if redact:
        processors.append(redact_evidence)

    if config.json_logs or config.is_production:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(exception_formatter=structlog.dev.rich_traceback))

    threshold = logging.getLevelNamesMapping().get(config.log_level.upper(), logging.INFO)
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        cache_logger_on_first_use=False,
    )


@contextmanager
def log_duration(logger: Any, operation: str, level: str = "info", **context: Any) -> Iterator[None]:
    """
    Time a block and log ``<operation>_completed`` or ``<operation>_failed``.

    Failures are logged at warning level with the error and re-raised.
    """
    started = time.monotonic()

    def elapsed_ms() -> float:
        return round((time.monotonic() - started) * 1000, 2)

    try:
        yield
    except Exception as exc:
        logger.warning(
            f"{operation}_failed",
            duration_ms=elapsed_ms(),
            error=str(exc),
            error_type=type(exc).__name__,
            **context,
        )
        raise
    getattr(logger, level)(f"{operation}_completed", duration_ms=elapsed_ms(), **context)


__all__ = [
    "EVIDENCE_KEYS",
    "configure_logging",
    "log_duration",
    "redact_evidence",
]
