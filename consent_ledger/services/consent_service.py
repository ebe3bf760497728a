"""
Consent Ledger - Consent Orchestration Service

Materialises consent events across several entities:

- Giving consent: resolve or create the subject, resolve or create the
  domain and every consented purpose, then write the consent, its record,
  its purpose links and an audit entry
- Withdrawing consent, with withdrawal evidence and history
- Consent history and verification lookups

Steps run in order because each depends on ids from the previous one;
only purpose resolution runs concurrently. The whole flow runs inside the
adapter's ``transaction()``; adapters without real transactions keep
whatever was written before a failure.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Mapping

import structlog
from pydantic import BaseModel, ConfigDict, Field

from consent_ledger.core.config import ConsentLedgerConfig, get_config
from consent_ledger.core.enums import (
    ActionType,
    AuditAction,
    ConsentStatus,
    ErrorKind,
    JunctionStatus,
    WithdrawalMethod,
)
from consent_ledger.core.errors import (
    ConflictError,
    ConsentLedgerError,
    DependencyFailure,
    NotFoundError,
)
from consent_ledger.core.models import (
    AuditLog,
    Consent,
    ConsentRecord,
    Domain,
    PurposeJunction,
    Subject,
    Withdrawal,
)
from consent_ledger.monitoring.logging import log_duration
from consent_ledger.registry.registry import ConsentRegistry

logger = structlog.get_logger(__name__)


# =============================================================================
# Request / result shapes
# =============================================================================


class CreateConsentParams(BaseModel):
    """Input of a consent-giving event."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    subject_id: str | None = None
    external_id: str | None = None
    domain: str = Field(..., min_length=1)
    preferences: dict[str, bool] = Field(default_factory=dict)
    policy_version: str | None = None
    metadata: dict[str, Any] | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    valid_until: datetime | None = None


@dataclass
class ConsentResult:
    """Everything one consent-giving event wrote or resolved."""
    subject: Subject
    domain: Domain
    consent: Consent
    record: ConsentRecord
    purpose_ids: list[str] = field(default_factory=list)
    junctions: list[PurposeJunction] = field(default_factory=list)
    audit_log: AuditLog | None = None


@dataclass
class WithdrawalResult:
    """Everything one withdrawal wrote."""
    consent: Consent
    withdrawal: Withdrawal
    record: ConsentRecord
    junctions: list[PurposeJunction] = field(default_factory=list)
    audit_log: AuditLog | None = None


@dataclass
class ConsentVerification:
    """Whether a subject holds valid consent for a set of purposes on a domain."""
    is_valid: bool
    consent: Consent | None = None
    missing: list[str] = field(default_factory=list)


# =============================================================================
# Service
# =============================================================================


class ConsentService:
    """
    Consent orchestration over a ``ConsentRegistry``.

    The registry (and through it the storage adapter) is injected; the
    service holds no state of its own.
    """

    def __init__(self, registry: ConsentRegistry, config: ConsentLedgerConfig | None = None):
        self.registry = registry
        self.config = config or get_config()

    def _or_unknown(self, value: str | None) -> str:
        return value or self.config.unknown_value

    @asynccontextmanager
    async def _unit_of_work(self, operation: str, **log_context: Any) -> AsyncIterator[None]:
        with log_duration(logger, operation, level="debug", **log_context):
            async with self.registry.adapter.transaction():
                yield

    # ─────────────────────────────────────────────────────────────
    # Resolution steps
    # ─────────────────────────────────────────────────────────────

    async def _find_subject(self, subject_id: str | None, external_id: str | None) -> Subject | None:
        """
        Resolve a subject from explicit identifiers.

        Returns None only when neither identifier is given.
        """
        subjects = self.registry.subjects

        if subject_id and external_id:
            subject = await subjects.find_by_id(subject_id)
            if subject is None:
                raise NotFoundError("Subject not found", details={"subject_id": subject_id})
            if subject.external_id is not None and subject.external_id != external_id:
                raise ConflictError(
                    "Subject id and external id refer to different subjects",
                    details={"subject_id": subject_id, "external_id": external_id},
                )
            by_external = await subjects.find_by_external_id(external_id)
            if by_external is None:
                raise NotFoundError("Subject not found", details={"external_id": external_id})
            if by_external.id != subject.id:
                raise ConflictError(
                    "Subject id and external id refer to different subjects",
                    details={"subject_id": subject_id, "external_id": external_id},
                )
            return subject

        if subject_id:
            subject = await subjects.find_by_id(subject_id)
            if subject is None:
                raise NotFoundError("Subject not found", details={"subject_id": subject_id})
            return subject

        if external_id:
            subject = await subjects.find_by_external_id(external_id)
            if subject is None:
                raise NotFoundError("Subject not found", details={"external_id": external_id})
            return subject

        return None

    async def _resolve_subject(self, params: CreateConsentParams, context: dict[str, Any] | None) -> Subject:
        subject = await self._find_subject(params.subject_id, params.external_id)
        if subject is None:
            subject = await self.registry.subjects.create(
                {
                    "is_identified": False,
                    "identity_provider": self.config.anonymous_identity_provider.value,
                    "last_ip_address": self._or_unknown(params.ip_address),
                },
                context,
            )
            if subject is None:
                raise DependencyFailure("Failed to create subject")
            logger.debug("anonymous_subject_created", subject_id=subject.id)

        if not subject.id:
            raise ConsentLedgerError("A subject id is required", kind=ErrorKind.BAD_REQUEST)
        return subject

    async def _resolve_domain(self, name: str, context: dict[str, Any] | None) -> Domain:
        domain = await self.registry.domains.find_or_create(name, context)
        if domain is None:
            raise DependencyFailure("Failed to create domain", details={"domain": name})
        return domain

    async def _resolve_purposes(self, preferences: Mapping[str, bool], context: dict[str, Any] | None) -> list[str]:
        codes = [code for code, granted in preferences.items() if granted]
        # A failing lookup cancels its siblings before the transaction unwinds
        try:
            async with asyncio.TaskGroup() as group:
                tasks = [
                    group.create_task(
                        self.registry.purposes.find_or_create_by_code(
                            code,
                            data_category=self.config.default_data_category,
                            legal_basis=self.config.default_legal_basis,
                            context=context,
                        )
                    )
                    for code in codes
                ]
        except ExceptionGroup as failure:
            raise failure.exceptions[0]
        purposes = [task.result() for task in tasks]
        purpose_ids: list[str] = []
        for code, purpose in zip(codes, purposes):
            if purpose is None:
                raise DependencyFailure("Failed to create purpose", details={"purpose": code})
            purpose_ids.append(purpose.id)
        return purpose_ids

    async def _resolve_policy_id(self, policy_version: str | None) -> str | None:
        if not policy_version:
            return None
        policy = await self.registry.consent_policies.find_by_version(policy_version)
        return policy.id if policy is not None else None

    async def _audit(
        self,
        action: AuditAction,
        consent: Consent,
        subject_id: str,
        ip_address: str,
        user_agent: str,
        changes: dict[str, Any],
        metadata: dict[str, Any],
        context: dict[str, Any] | None,
    ) -> AuditLog | None:
        if not self.config.write_audit_log:
            return None
        return await self.registry.audit_logs.create(
            {
                "entity_type": "consent",
                "entity_id": consent.id,
                "action_type": action.value,
                "subject_id": subject_id,
                "ip_address": ip_address,
                "user_agent": user_agent,
                "changes": changes,
                "metadata": metadata,
            },
            context,
        )

    # ─────────────────────────────────────────────────────────────
    # Operations
    # ─────────────────────────────────────────────────────────────

    async def create_consent_with_subject(
        self,
        params: CreateConsentParams | Mapping[str, Any],
        context: dict[str, Any] | None = None,
    ) -> ConsentResult:
        """
        Record a consent-giving event.

        Args:
            params: Subject identifiers, domain, preferences and evidence
            context: Extra information handed to registry hooks

        Returns:
            The subject, domain, consent, record and linked purposes

        Raises:
            NotFoundError: An explicit subject identifier does not resolve
            ConflictError: The two identifiers name different subjects
            DependencyFailure: An auto-create step returned no record
        """
        if not isinstance(params, CreateConsentParams):
            params = CreateConsentParams.model_validate(params)

        ip_address = self._or_unknown(params.ip_address)
        user_agent = self._or_unknown(params.user_agent)
        metadata = dict(params.metadata or {})

        async with self._unit_of_work("consent_creation", domain=params.domain):
            subject = await self._resolve_subject(params, context)
            domain = await self._resolve_domain(params.domain, context)
            purpose_ids = await self._resolve_purposes(params.preferences, context)
            policy_id = await self._resolve_policy_id(params.policy_version)

            now = datetime.now(UTC)
            consent_data: dict[str, Any] = {
                "subject_id": subject.id,
                "domain_id": domain.id,
                "purpose_ids": purpose_ids,
                "status": ConsentStatus.ACTIVE.value,
                "given_at": now,
                "is_active": True,
                "ip_address": ip_address,
                "user_agent": user_agent,
                "metadata": metadata,
                "history": [
                    {
                        "action_type": ActionType.GIVEN.value,
                        "timestamp": now,
                        "details": {
                            **metadata,
                            "ip_address": ip_address,
                            "user_agent": user_agent,
                            "policy_version": params.policy_version,
                        },
                    }
                ],
            }
            if policy_id is not None:
                consent_data["policy_id"] = policy_id
            if params.valid_until is not None:
                consent_data["valid_until"] = params.valid_until

            consent = await self.registry.consents.create(consent_data, context)
            if consent is None:
                raise DependencyFailure("Failed to create consent")

            record = await self.registry.records.create(
                {
                    "subject_id": subject.id,
                    "consent_id": consent.id,
                    "action_type": ActionType.GIVEN.value,
                    "details": {
                        **metadata,
                        "domain": domain.name,
                        "preferences": dict(params.preferences),
                        "purpose_ids": purpose_ids,
                        "policy_version": params.policy_version,
                        "ip_address": ip_address,
                        "user_agent": user_agent,
                    },
                },
                context,
            )
            if record is None:
                raise DependencyFailure("Failed to create consent record")

            junctions: list[PurposeJunction] = []
            if self.config.link_purpose_junctions:
                for purpose_id in purpose_ids:
                    junction = await self.registry.purpose_junctions.link(consent.id, purpose_id, context=context)
                    if junction is not None:
                        junctions.append(junction)

            audit_log = await self._audit(
                AuditAction.CREATE,
                consent,
                subject.id,
                ip_address,
                user_agent,
                changes={"status": ConsentStatus.ACTIVE.value, "purpose_ids": purpose_ids},
                metadata={"domain": domain.name, "policy_version": params.policy_version},
                context=context,
            )

        logger.info(
            "consent_recorded",
            subject_id=subject.id,
            domain=domain.name,
            consent_id=consent.id,
            purposes=len(purpose_ids),
        )

        return ConsentResult(
            subject=subject,
            domain=domain,
            consent=consent,
            record=record,
            purpose_ids=purpose_ids,
            junctions=junctions,
            audit_log=audit_log,
        )

    async def withdraw_consent(
        self,
        consent_id: str,
        reason: str | None = None,
        method: WithdrawalMethod | str = WithdrawalMethod.SUBJECT_INITIATED,
        ip_address: str | None = None,
        user_agent: str | None = None,
        metadata: dict[str, Any] | None = None,
        context: dict[str, Any] | None = None,
    ) -> WithdrawalResult:
        """
        Withdraw an active consent.

        Raises:
            NotFoundError: The consent does not exist
            ConflictError: The consent is no longer active (409)
        """
        method = WithdrawalMethod(method)
        ip = self._or_unknown(ip_address)
        ua = self._or_unknown(user_agent)
        metadata = dict(metadata or {})

        async with self._unit_of_work("consent_withdrawal", consent_id=consent_id):
            consent = await self.registry.consents.find_by_id(consent_id)
            if consent is None:
                raise NotFoundError("Consent not found", details={"consent_id": consent_id})
            if not consent.is_active or consent.status != ConsentStatus.ACTIVE.value:
                raise ConflictError(
                    "Consent is already withdrawn or inactive",
                    kind=ErrorKind.CONFLICT,
                    details={"consent_id": consent_id, "status": consent.status},
                )

            now = datetime.now(UTC)
            history = [entry.model_dump() for entry in consent.history or []]
            history.append(
                {
                    "action_type": ActionType.WITHDRAWN.value,
                    "timestamp": now,
                    "details": {
                        **metadata,
                        "reason": reason,
                        "method": method.value,
                        "ip_address": ip,
                        "user_agent": ua,
                    },
                }
            )

            updated = await self.registry.consents.update(
                consent_id,
                {
                    "status": ConsentStatus.WITHDRAWN.value,
                    "is_active": False,
                    "withdrawal_reason": reason,
                    "history": history,
                },
                context,
            )
            if updated is None:
                raise DependencyFailure("Failed to update consent", details={"consent_id": consent_id})

            junctions = await self.registry.purpose_junctions.set_status(
                consent_id, JunctionStatus.WITHDRAWN, context
            )

            withdrawal = await self.registry.withdrawals.create(
                {
                    "consent_id": consent_id,
                    "subject_id": consent.subject_id,
                    "withdrawal_reason": reason,
                    "withdrawal_method": method.value,
                    "ip_address": ip,
                    "user_agent": ua,
                    "metadata": metadata,
                },
                context,
            )
            if withdrawal is None:
                raise DependencyFailure("Failed to create withdrawal")

            record = await self.registry.records.create(
                {
                    "subject_id": consent.subject_id,
                    "consent_id": consent_id,
                    "action_type": ActionType.WITHDRAWN.value,
                    "details": {"reason": reason, "method": method.value, "ip_address": ip, "user_agent": ua},
                },
                context,
            )
            if record is None:
                raise DependencyFailure("Failed to create consent record")

            audit_log = await self._audit(
                AuditAction.WITHDRAW,
                updated,
                consent.subject_id,
                ip,
                ua,
                changes={
                    "status": {"from": ConsentStatus.ACTIVE.value, "to": ConsentStatus.WITHDRAWN.value},
                    "is_active": {"from": True, "to": False},
                },
                metadata={"reason": reason, "method": method.value},
                context=context,
            )

        logger.info(
            "consent_withdrawn",
            consent_id=consent_id,
            subject_id=consent.subject_id,
            method=method.value,
        )

        return WithdrawalResult(
            consent=updated,
            withdrawal=withdrawal,
            record=record,
            junctions=junctions,
            audit_log=audit_log,
        )

    async def get_consent_history(
        self,
        subject_id: str | None = None,
        external_id: str | None = None,
        limit: int | None = None,
    ) -> list[ConsentRecord]:
        """
        Get a subject's consent records, newest first.

        Raises:
            ConsentLedgerError: Neither identifier given (BAD_REQUEST)
            NotFoundError: The subject does not exist
        """
        subject = await self._find_subject(subject_id, external_id)
        if subject is None:
            raise ConsentLedgerError(
                "Either subject_id or external_id is required",
                kind=ErrorKind.BAD_REQUEST,
            )
        return await self.registry.records.find_by_subject(
            subject.id, limit=limit or self.config.history_limit
        )

    async def verify_consent(
        self,
        domain: str,
        purpose_codes: list[str],
        subject_id: str | None = None,
        external_id: str | None = None,
    ) -> ConsentVerification:
        """
        Check that a subject holds active, unexpired consent on ``domain``
        covering every purpose in ``purpose_codes``.

        An unknown domain or purpose is reported as missing consent, not as
        an error.
        """
        subject = await self._find_subject(subject_id, external_id)
        if subject is None:
            raise ConsentLedgerError(
                "Either subject_id or external_id is required",
                kind=ErrorKind.BAD_REQUEST,
            )

        codes = list(dict.fromkeys(purpose_codes))
        found_domain = await self.registry.domains.find_by_name(domain)
        if found_domain is None:
            return ConsentVerification(is_valid=False, missing=codes)

        purposes = await self.registry.purposes.find_by_codes(codes)
        ids_by_code = {p.code: p.id for p in purposes}

        now = datetime.now(UTC)
        candidates = [
            c for c in await self.registry.consents.find_active(subject.id, found_domain.id)
            if not c.is_expired(now)
        ]
        if not candidates:
            return ConsentVerification(is_valid=False, missing=codes)

        def missing_for(consent: Consent) -> list[str]:
            granted = set(consent.purpose_ids or [])
            return [code for code in codes if ids_by_code.get(code) not in granted]

        best = candidates[0]
        best_missing = missing_for(best)
        for candidate in candidates[1:]:
            if not best_missing:
                break
            candidate_missing = missing_for(candidate)
            if len(candidate_missing) < len(best_missing):
                best, best_missing = candidate, candidate_missing

        logger.debug(
            "consent_verified",
            subject_id=subject.id,
            domain=domain,
            is_valid=not best_missing,
        )
        return ConsentVerification(is_valid=not best_missing, consent=best, missing=best_missing)


def create_consent_service(
    registry: ConsentRegistry,
    config: ConsentLedgerConfig | None = None,
) -> ConsentService:
    """Create a consent service over ``registry``."""
    return ConsentService(registry, config)
