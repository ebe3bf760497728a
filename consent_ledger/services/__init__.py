"""
Consent Ledger - Services Module
"""

from consent_ledger.services.consent_service import (
    ConsentResult,
    ConsentService,
    ConsentVerification,
    CreateConsentParams,
    WithdrawalResult,
    create_consent_service,
)

__all__ = [
    "ConsentResult",
    "ConsentService",
    "ConsentVerification",
    "CreateConsentParams",
    "WithdrawalResult",
    "create_consent_service",
]
