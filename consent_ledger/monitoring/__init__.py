"""
Consent Ledger - Monitoring Module
"""

from consent_ledger.monitoring.logging import (
    configure_logging,
    log_duration,
    redact_evidence,
)

__all__ = [
    "configure_logging",
    "log_duration",
    "redact_evidence",
]
