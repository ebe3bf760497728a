"""
Consent Ledger - Entity Repositories

One repository per built-in entity, each adding the finders the consent
flows need on top of ``EntityRepository``.
"""

from __future__ import annotations

from typing import Any

from consent_ledger.core.enums import (
    ConsentStatus,
    DataCategory,
    JunctionStatus,
    LegalBasis,
)
from consent_ledger.core.models import (
    AuditLog,
    Consent,
    ConsentGeoLocation,
    ConsentPolicy,
    ConsentRecord,
    Domain,
    GeoLocation,
    Purpose,
    PurposeJunction,
    Subject,
    Withdrawal,
)
from consent_ledger.registry.base import EntityRepository
from consent_ledger.storage.adapter import Operator, WhereCondition


class SubjectRepository(EntityRepository[Subject]):
    """Repository for consenting subjects."""

    entity_key = "subject"
    model_class = Subject

    async def find_by_external_id(self, external_id: str) -> Subject | None:
        return await self.find_one({"external_id": external_id})


class DomainRepository(EntityRepository[Domain]):
    """Repository for domains."""

    entity_key = "domain"
    model_class = Domain

    async def find_by_name(self, name: str) -> Domain | None:
        return await self.find_one({"name": name})

    async def find_or_create(self, name: str, context: dict[str, Any] | None = None) -> Domain | None:
        """
        Get a domain by name, auto-creating an active, verified one if absent.

        Returns:
            The domain, or None if a hook rejected the creation
        """
        existing = await self.find_by_name(name)
        if existing is not None:
            return existing

        created = await self.create(
            {
                "name": name,
                "description": f"Auto-created domain for {name}",
                "is_active": True,
                "is_verified": True,
                "allowed_origins": [],
            },
            context,
        )
        if created is not None:
            self.logger.info("domain_auto_created", domain=name, domain_id=created.id)
        return created


class PurposeRepository(EntityRepository[Purpose]):
    """Repository for consent purposes."""

    entity_key = "purpose"
    model_class = Purpose

    async def find_by_code(self, code: str) -> Purpose | None:
        return await self.find_one({"code": code})

    async def find_by_codes(self, codes: list[str]) -> list[Purpose]:
        if not codes:
            return []
        return await self.find_many([WhereCondition("code", list(codes), Operator.IN)])

    async def find_or_create_by_code(
        self,
        code: str,
        data_category: DataCategory | str = DataCategory.FUNCTIONAL,
        legal_basis: LegalBasis | str = LegalBasis.CONSENT,
        context: dict[str, Any] | None = None,
    ) -> Purpose | None:
        """
        Get a purpose by code, auto-creating a non-essential one if absent.

        Returns:
            The purpose, or None if a hook rejected the creation
        """
        existing = await self.find_by_code(code)
        if existing is not None:
            return existing

        created = await self.create(
            {
                "code": code,
                "name": code,
                "description": f"Auto-created purpose for {code}",
                "is_essential": False,
                "data_category": DataCategory(data_category).value,
                "legal_basis": LegalBasis(legal_basis).value,
                "is_active": True,
            },
            context,
        )
        if created is not None:
            self.logger.info("purpose_auto_created", code=code, purpose_id=created.id)
        return created


class ConsentPolicyRepository(EntityRepository[ConsentPolicy]):
    """Repository for policy versions."""

    entity_key = "consent_policy"
    model_class = ConsentPolicy

    async def find_by_version(self, version: str) -> ConsentPolicy | None:
        return await self.find_one({"version": version})

    async def find_active(self) -> ConsentPolicy | None:
        """Get the active policy with the latest effective date."""
        policies = await self.find_many(
            {"is_active": True}, limit=1, order_by="effective_date", descending=True
        )
        return policies[0] if policies else None


class GeoLocationRepository(EntityRepository[GeoLocation]):
    """Repository for jurisdiction lookups."""

    entity_key = "geo_location"
    model_class = GeoLocation

    async def find_by_country(self, country_code: str) -> list[GeoLocation]:
        return await self.find_many({"country_code": country_code})


class ConsentRepository(EntityRepository[Consent]):
    """Repository for consents."""

    entity_key = "consent"
    model_class = Consent

    async def find_by_subject(self, subject_id: str, domain_id: str | None = None) -> list[Consent]:
        criteria: dict[str, Any] = {"subject_id": subject_id}
        if domain_id is not None:
            criteria["domain_id"] = domain_id
        return await self.find_many(criteria, order_by="given_at", descending=True)

    async def find_active(self, subject_id: str, domain_id: str | None = None) -> list[Consent]:
        """Get active consents for a subject, newest first."""
        criteria: dict[str, Any] = {
            "subject_id": subject_id,
            "status": ConsentStatus.ACTIVE.value,
            "is_active": True,
        }
        if domain_id is not None:
            criteria["domain_id"] = domain_id
        return await self.find_many(criteria, order_by="given_at", descending=True)


class PurposeJunctionRepository(EntityRepository[PurposeJunction]):
    """Repository for consent-purpose links."""

    entity_key = "purpose_junction"
    model_class = PurposeJunction

    async def find_by_consent(self, consent_id: str) -> list[PurposeJunction]:
        return await self.find_many({"consent_id": consent_id})

    async def link(
        self,
        consent_id: str,
        purpose_id: str,
        metadata: dict[str, Any] | None = None,
        context: dict[str, Any] | None = None,
    ) -> PurposeJunction | None:
        """Create an active link between a consent and a purpose."""
        data: dict[str, Any] = {
            "consent_id": consent_id,
            "purpose_id": purpose_id,
            "status": JunctionStatus.ACTIVE.value,
        }
        if metadata is not None:
            data["metadata"] = metadata
        return await self.create(data, context)

    async def set_status(
        self,
        consent_id: str,
        status: JunctionStatus | str,
        context: dict[str, Any] | None = None,
    ) -> list[PurposeJunction]:
        """Set the status of every link of a consent."""
        return await self.update_many(
            {"consent_id": consent_id}, {"status": JunctionStatus(status).value}, context
        )


class ConsentGeoLocationRepository(EntityRepository[ConsentGeoLocation]):
    """Repository for consent geo-location evidence."""

    entity_key = "consent_geo_location"
    model_class = ConsentGeoLocation

    async def find_by_consent(self, consent_id: str) -> list[ConsentGeoLocation]:
        return await self.find_many({"consent_id": consent_id})


class RecordRepository(EntityRepository[ConsentRecord]):
    """Repository for append-only consent records."""

    entity_key = "record"
    model_class = ConsentRecord

    async def find_by_subject(self, subject_id: str, limit: int | None = None) -> list[ConsentRecord]:
        """Get a subject's records, newest first."""
        return await self.find_many(
            {"subject_id": subject_id}, limit=limit, order_by="created_at", descending=True
        )

    async def find_by_consent(self, consent_id: str) -> list[ConsentRecord]:
        return await self.find_many({"consent_id": consent_id}, order_by="created_at")


class WithdrawalRepository(EntityRepository[Withdrawal]):
    """Repository for withdrawal evidence."""

    entity_key = "withdrawal"
    model_class = Withdrawal

    async def find_by_consent(self, consent_id: str) -> list[Withdrawal]:
        return await self.find_many({"consent_id": consent_id})


class AuditLogRepository(EntityRepository[AuditLog]):
    """Repository for the audit trail."""

    entity_key = "audit_log"
    model_class = AuditLog

    async def find_by_entity(self, entity_type: str, entity_id: str) -> list[AuditLog]:
        return await self.find_many(
            {"entity_type": entity_type, "entity_id": entity_id}, order_by="created_at"
        )


REPOSITORY_CLASSES: dict[str, type[EntityRepository[Any]]] = {
    cls.entity_key: cls
    for cls in (
        SubjectRepository,
        DomainRepository,
        PurposeRepository,
        ConsentPolicyRepository,
        GeoLocationRepository,
        ConsentRepository,
        PurposeJunctionRepository,
        ConsentGeoLocationRepository,
        RecordRepository,
        WithdrawalRepository,
        AuditLogRepository,
    )
}
