"""
Tests for consent_ledger.services.consent_service.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pydantic
import pytest

from consent_ledger.core.config import ConsentLedgerConfig
from consent_ledger.core.enums import ErrorKind
from consent_ledger.core.errors import (
    ConflictError,
    ConsentLedgerError,
    DependencyFailure,
    NotFoundError,
)
from consent_ledger.registry import REJECT
from consent_ledger.schema import LedgerOptions
from consent_ledger.services import (
    ConsentService,
    CreateConsentParams,
    create_consent_service,
)


def params(**overrides) -> CreateConsentParams:
    values = {
        "domain": "example.com",
        "preferences": {"analytics": True, "marketing": False},
        "ip_address": "203.0.113.7",
        "user_agent": "Mozilla/5.0",
    }
    values.update(overrides)
    return CreateConsentParams(**values)


async def count_rows(registry) -> dict[str, int]:
    return {
        "subject": await registry.subjects.count(),
        "domain": await registry.domains.count(),
        "purpose": await registry.purposes.count(),
        "consent": await registry.consents.count(),
        "record": await registry.records.count(),
        "purpose_junction": await registry.purpose_junctions.count(),
        "audit_log": await registry.audit_logs.count(),
    }


# =============================================================================
# CONSENT CREATION
# =============================================================================


class TestCreateConsentWithSubject:
    """Tests for the consent-giving flow."""

    @pytest.mark.asyncio
    async def test_first_consent_on_empty_store(self, consent_service, registry):
        result = await consent_service.create_consent_with_subject(params())

        analytics = await registry.purposes.find_by_code("analytics")
        assert analytics is not None
        assert await registry.purposes.find_by_code("marketing") is None

        assert result.domain.name == "example.com"
        assert result.purpose_ids == [analytics.id]
        assert result.consent.purpose_ids == [analytics.id]
        assert result.consent.subject_id == result.subject.id
        assert result.consent.domain_id == result.domain.id
        assert result.consent.status == "active"
        assert result.consent.is_active is True
        assert result.record.action_type == "given"
        assert result.record.consent_id == result.consent.id
        assert await count_rows(registry) == {
            "subject": 1,
            "domain": 1,
            "purpose": 1,
            "consent": 1,
            "record": 1,
            "purpose_junction": 1,
            "audit_log": 1,
        }

    @pytest.mark.asyncio
    async def test_anonymous_subject(self, consent_service):
        result = await consent_service.create_consent_with_subject(params())

        assert result.subject.id.startswith("sub_")
        assert result.subject.is_identified is False
        assert result.subject.identity_provider == "anonymous"
        assert result.subject.last_ip_address == "203.0.113.7"

    @pytest.mark.asyncio
    async def test_embedded_history(self, consent_service):
        result = await consent_service.create_consent_with_subject(
            params(policy_version="2024-01", metadata={"source": "banner"})
        )

        history = result.consent.history
        assert len(history) == 1
        assert history[0].action_type == "given"
        assert history[0].details == {
            "ip_address": "203.0.113.7",
            "user_agent": "Mozilla/5.0",
            "policy_version": "2024-01",
            "source": "banner",
        }
        assert result.consent.metadata == {"source": "banner"}

    @pytest.mark.asyncio
    async def test_record_details(self, consent_service):
        result = await consent_service.create_consent_with_subject(params())

        details = result.record.details
        assert details["domain"] == "example.com"
        assert details["preferences"] == {"analytics": True, "marketing": False}
        assert details["purpose_ids"] == result.purpose_ids

    @pytest.mark.asyncio
    async def test_metadata_cannot_replace_evidence(self, consent_service):
        result = await consent_service.create_consent_with_subject(
            params(
                policy_version="2024-01",
                metadata={"ip_address": "10.0.0.1", "policy_version": "forged", "domain": "evil.com"},
            )
        )

        history = result.consent.history[0].details
        assert history["ip_address"] == "203.0.113.7"
        assert history["policy_version"] == "2024-01"
        assert result.record.details["domain"] == "example.com"
        assert result.record.details["ip_address"] == "203.0.113.7"
        assert result.record.details["policy_version"] == "2024-01"

    @pytest.mark.asyncio
    async def test_missing_evidence_defaults_to_unknown(self, consent_service):
        result = await consent_service.create_consent_with_subject(
            {"domain": "example.com", "preferences": {"analytics": True}}
        )

        assert result.consent.ip_address == "unknown"
        assert result.consent.user_agent == "unknown"
        assert result.subject.last_ip_address == "unknown"

    @pytest.mark.asyncio
    async def test_junctions_and_audit(self, consent_service, registry):
        result = await consent_service.create_consent_with_subject(
            params(preferences={"analytics": True, "ads": True})
        )

        assert {j.purpose_id for j in result.junctions} == set(result.purpose_ids)
        assert {j.status for j in result.junctions} == {"active"}
        assert result.audit_log.action_type == "create"
        assert result.audit_log.entity_id == result.consent.id
        assert result.audit_log.changes["status"] == "active"

        entries = await registry.audit_logs.find_by_entity("consent", result.consent.id)
        assert [e.id for e in entries] == [result.audit_log.id]

    @pytest.mark.asyncio
    async def test_reuses_domain_and_purposes(self, consent_service, registry):
        first = await consent_service.create_consent_with_subject(params())
        second = await consent_service.create_consent_with_subject(params(subject_id=first.subject.id))

        assert second.subject.id == first.subject.id
        assert second.domain.id == first.domain.id
        assert second.purpose_ids == first.purpose_ids
        assert await registry.domains.count() == 1
        assert await registry.purposes.count() == 1
        assert await registry.consents.count() == 2

    @pytest.mark.asyncio
    async def test_no_granted_purposes(self, consent_service, registry):
        result = await consent_service.create_consent_with_subject(
            params(preferences={"analytics": False})
        )

        assert result.purpose_ids == []
        assert result.junctions == []
        assert await registry.purposes.count() == 0

    @pytest.mark.asyncio
    async def test_policy_version_resolves_policy(self, consent_service, registry):
        policy = await registry.consent_policies.create(
            {
                "version": "2024-01",
                "name": "Privacy policy",
                "effective_date": datetime(2024, 1, 1, tzinfo=UTC),
                "content": "...",
                "content_hash": "abc123",
            }
        )

        known = await consent_service.create_consent_with_subject(params(policy_version="2024-01"))
        unknown = await consent_service.create_consent_with_subject(params(policy_version="1999-01"))

        assert known.consent.policy_id == policy.id
        assert unknown.consent.policy_id is None
        assert unknown.record.details["policy_version"] == "1999-01"

    @pytest.mark.asyncio
    async def test_valid_until(self, consent_service):
        until = datetime.now(UTC) + timedelta(days=30)

        result = await consent_service.create_consent_with_subject(params(valid_until=until))

        assert result.consent.valid_until == until
        assert not result.consent.is_expired()

    @pytest.mark.asyncio
    async def test_empty_domain_is_rejected(self, consent_service):
        with pytest.raises(pydantic.ValidationError):
            await consent_service.create_consent_with_subject({"domain": ""})

    @pytest.mark.asyncio
    async def test_context_reaches_hooks(self, make_registry, ledger_config):
        seen = []
        registry = await make_registry(
            LedgerOptions(hooks=[{"consent": {"create": {"before": lambda data, ctx: seen.append(ctx.extra)}}}])
        )
        service = ConsentService(registry, ledger_config)

        await service.create_consent_with_subject(params(), context={"request_id": "req-1"})

        assert seen == [{"request_id": "req-1"}]


class TestSubjectResolution:
    """Tests for resolving the consenting subject."""

    @pytest.mark.asyncio
    async def test_by_subject_id(self, consent_service, registry):
        subject = await registry.subjects.create({"is_identified": True, "external_id": "e1"})

        result = await consent_service.create_consent_with_subject(params(subject_id=subject.id))

        assert result.subject.id == subject.id
        assert await registry.subjects.count() == 1

    @pytest.mark.asyncio
    async def test_by_external_id(self, consent_service, registry):
        subject = await registry.subjects.create({"is_identified": True, "external_id": "e1"})

        result = await consent_service.create_consent_with_subject(params(external_id="e1"))

        assert result.subject.id == subject.id

    @pytest.mark.asyncio
    async def test_both_ids_agree(self, consent_service, registry):
        subject = await registry.subjects.create({"is_identified": True, "external_id": "e1"})

        result = await consent_service.create_consent_with_subject(
            params(subject_id=subject.id, external_id="e1")
        )

        assert result.subject.id == subject.id

    @pytest.mark.asyncio
    async def test_unknown_subject_id(self, consent_service, registry):
        with pytest.raises(NotFoundError) as exc_info:
            await consent_service.create_consent_with_subject(params(subject_id="sub_missing"))

        assert exc_info.value.status == 404
        assert await registry.domains.count() == 0

    @pytest.mark.asyncio
    async def test_unknown_external_id(self, consent_service):
        with pytest.raises(NotFoundError):
            await consent_service.create_consent_with_subject(params(external_id="nobody"))

    @pytest.mark.asyncio
    async def test_subject_has_different_external_id(self, consent_service, registry):
        subject = await registry.subjects.create({"is_identified": True, "external_id": "e2"})
        await registry.subjects.create({"is_identified": True, "external_id": "e1"})

        with pytest.raises(ConflictError) as exc_info:
            await consent_service.create_consent_with_subject(params(subject_id=subject.id, external_id="e1"))

        assert exc_info.value.kind is ErrorKind.BAD_REQUEST
        assert exc_info.value.status == 400
        assert await registry.consents.count() == 0

    @pytest.mark.asyncio
    async def test_ids_name_different_subjects(self, consent_service, registry):
        anonymous = await registry.subjects.create({})
        await registry.subjects.create({"is_identified": True, "external_id": "e1"})

        with pytest.raises(ConflictError):
            await consent_service.create_consent_with_subject(params(subject_id=anonymous.id, external_id="e1"))

    @pytest.mark.asyncio
    async def test_external_id_missing_while_subject_exists(self, consent_service, registry):
        anonymous = await registry.subjects.create({})

        with pytest.raises(NotFoundError):
            await consent_service.create_consent_with_subject(params(subject_id=anonymous.id, external_id="e1"))


class TestCreateConsentFailures:
    """Tests for dependency failures and rollback."""

    @pytest.mark.asyncio
    async def test_rejected_domain_creation(self, make_registry, ledger_config):
        registry = await make_registry(
            LedgerOptions(hooks=[{"domain": {"create": {"before": lambda data, ctx: REJECT}}}])
        )
        service = ConsentService(registry, ledger_config)

        with pytest.raises(DependencyFailure) as exc_info:
            await service.create_consent_with_subject(params())

        assert exc_info.value.status == 503
        assert exc_info.value.details == {"domain": "example.com"}
        assert await registry.subjects.count() == 0

    @pytest.mark.asyncio
    async def test_rejected_purpose_creation(self, make_registry, ledger_config):
        registry = await make_registry(
            LedgerOptions(hooks=[{"purpose": {"create": {"before": lambda data, ctx: REJECT}}}])
        )
        service = ConsentService(registry, ledger_config)

        with pytest.raises(DependencyFailure) as exc_info:
            await service.create_consent_with_subject(params())

        assert exc_info.value.details == {"purpose": "analytics"}

    @pytest.mark.asyncio
    async def test_failing_purpose_cancels_pending_purposes(self, make_registry, ledger_config):
        async def before(data, ctx):
            if data["code"] == "slow":
                await asyncio.sleep(0.05)
            elif data["code"] == "bad":
                raise RuntimeError("purpose store unavailable")
            return None

        registry = await make_registry(LedgerOptions(hooks=[{"purpose": {"create": {"before": before}}}]))
        service = ConsentService(registry, ledger_config)

        with pytest.raises(RuntimeError, match="purpose store unavailable"):
            await service.create_consent_with_subject(params(preferences={"slow": True, "bad": True}))
        await asyncio.sleep(0.2)

        assert set((await count_rows(registry)).values()) == {0}

    @pytest.mark.asyncio
    async def test_late_failure_rolls_back_everything(self, consent_service, registry):
        with patch.object(registry.records, "create", AsyncMock(return_value=None)):
            with pytest.raises(DependencyFailure):
                await consent_service.create_consent_with_subject(params())

        assert set((await count_rows(registry)).values()) == {0}

    @pytest.mark.asyncio
    async def test_rejected_consent_creation(self, make_registry, ledger_config):
        registry = await make_registry(
            LedgerOptions(hooks=[{"consent": {"create": {"before": lambda data, ctx: False}}}])
        )
        service = ConsentService(registry, ledger_config)

        with pytest.raises(DependencyFailure):
            await service.create_consent_with_subject(params())

        assert await registry.domains.count() == 0


class TestConfigurationSwitches:
    """Tests for optional evidence rows."""

    @pytest.mark.asyncio
    async def test_without_audit_and_junctions(self, registry):
        config = ConsentLedgerConfig(_env_file=None, write_audit_log=False, link_purpose_junctions=False)
        service = create_consent_service(registry, config)

        result = await service.create_consent_with_subject(params())

        assert service.config is config
        assert result.audit_log is None
        assert result.junctions == []
        assert await registry.audit_logs.count() == 0
        assert await registry.purpose_junctions.count() == 0

    @pytest.mark.asyncio
    async def test_custom_unknown_value(self, registry):
        config = ConsentLedgerConfig(_env_file=None, unknown_value="n/a")
        service = ConsentService(registry, config)

        result = await service.create_consent_with_subject({"domain": "example.com"})

        assert result.consent.ip_address == "n/a"


# =============================================================================
# WITHDRAWAL
# =============================================================================


class TestWithdrawConsent:
    """Tests for consent withdrawal."""

    @pytest.mark.asyncio
    async def test_withdraw(self, consent_service, registry):
        created = await consent_service.create_consent_with_subject(
            params(preferences={"analytics": True, "ads": True})
        )

        result = await consent_service.withdraw_consent(
            created.consent.id, reason="changed my mind", ip_address="198.51.100.1"
        )

        assert result.consent.status == "withdrawn"
        assert result.consent.is_active is False
        assert result.consent.withdrawal_reason == "changed my mind"
        assert [h.action_type for h in result.consent.history] == ["given", "withdrawn"]
        assert result.consent.history[1].details["method"] == "subject-initiated"
        assert result.withdrawal.withdrawal_method == "subject-initiated"
        assert result.withdrawal.ip_address == "198.51.100.1"
        assert result.withdrawal.user_agent == "unknown"
        assert result.record.action_type == "withdrawn"
        assert {j.status for j in result.junctions} == {"withdrawn"}
        assert len(result.junctions) == 2
        assert result.audit_log.action_type == "withdraw"
        assert await registry.withdrawals.count() == 1

    @pytest.mark.asyncio
    async def test_withdraw_method(self, consent_service):
        created = await consent_service.create_consent_with_subject(params())

        result = await consent_service.withdraw_consent(created.consent.id, method="admin")

        assert result.withdrawal.withdrawal_method == "admin"

    @pytest.mark.asyncio
    async def test_withdraw_metadata_cannot_replace_evidence(self, consent_service):
        created = await consent_service.create_consent_with_subject(params())

        result = await consent_service.withdraw_consent(
            created.consent.id,
            reason="moved",
            ip_address="198.51.100.1",
            metadata={"reason": "forged", "method": "admin", "ip_address": "10.0.0.1", "ticket": "T-9"},
        )

        details = result.consent.history[1].details
        assert details["reason"] == "moved"
        assert details["method"] == "subject-initiated"
        assert details["ip_address"] == "198.51.100.1"
        assert details["ticket"] == "T-9"

    @pytest.mark.asyncio
    async def test_withdraw_twice(self, consent_service, registry):
        created = await consent_service.create_consent_with_subject(params())
        await consent_service.withdraw_consent(created.consent.id)

        with pytest.raises(ConflictError) as exc_info:
            await consent_service.withdraw_consent(created.consent.id)

        assert exc_info.value.status == 409
        assert exc_info.value.kind is ErrorKind.CONFLICT
        assert await registry.withdrawals.count() == 1

    @pytest.mark.asyncio
    async def test_withdraw_unknown_consent(self, consent_service):
        with pytest.raises(NotFoundError):
            await consent_service.withdraw_consent("cns_missing")

    @pytest.mark.asyncio
    async def test_failed_withdrawal_rolls_back(self, consent_service, registry):
        created = await consent_service.create_consent_with_subject(params())

        with patch.object(registry.withdrawals, "create", AsyncMock(return_value=None)):
            with pytest.raises(DependencyFailure):
                await consent_service.withdraw_consent(created.consent.id)

        consent = await registry.consents.find_by_id(created.consent.id)
        assert consent.status == "active"
        assert {j.status for j in await registry.purpose_junctions.find_by_consent(consent.id)} == {"active"}


# =============================================================================
# HISTORY AND VERIFICATION
# =============================================================================


class TestConsentHistory:
    """Tests for history lookups."""

    @pytest.mark.asyncio
    async def test_history_by_either_identifier(self, consent_service, registry):
        subject = await registry.subjects.create({"is_identified": True, "external_id": "e1"})
        created = await consent_service.create_consent_with_subject(params(subject_id=subject.id))
        await consent_service.withdraw_consent(created.consent.id)

        by_id = await consent_service.get_consent_history(subject_id=subject.id)
        by_external = await consent_service.get_consent_history(external_id="e1")

        assert {r.action_type for r in by_id} == {"given", "withdrawn"}
        assert [r.id for r in by_external] == [r.id for r in by_id]
        assert by_id[0].created_at >= by_id[1].created_at

    @pytest.mark.asyncio
    async def test_history_limit(self, consent_service):
        created = await consent_service.create_consent_with_subject(params())
        await consent_service.withdraw_consent(created.consent.id)

        history = await consent_service.get_consent_history(subject_id=created.subject.id, limit=1)

        assert len(history) == 1

    @pytest.mark.asyncio
    async def test_history_requires_identifier(self, consent_service):
        with pytest.raises(ConsentLedgerError) as exc_info:
            await consent_service.get_consent_history()

        assert exc_info.value.kind is ErrorKind.BAD_REQUEST
        assert exc_info.value.status == 400

    @pytest.mark.asyncio
    async def test_history_unknown_subject(self, consent_service):
        with pytest.raises(NotFoundError):
            await consent_service.get_consent_history(subject_id="sub_missing")


class TestVerifyConsent:
    """Tests for consent verification."""

    @pytest.mark.asyncio
    async def test_valid(self, consent_service):
        created = await consent_service.create_consent_with_subject(params())

        verification = await consent_service.verify_consent(
            "example.com", ["analytics"], subject_id=created.subject.id
        )

        assert verification.is_valid is True
        assert verification.consent.id == created.consent.id
        assert verification.missing == []

    @pytest.mark.asyncio
    async def test_missing_purpose(self, consent_service):
        created = await consent_service.create_consent_with_subject(params())

        verification = await consent_service.verify_consent(
            "example.com", ["analytics", "marketing"], subject_id=created.subject.id
        )

        assert verification.is_valid is False
        assert verification.missing == ["marketing"]

    @pytest.mark.asyncio
    async def test_unknown_domain(self, consent_service):
        created = await consent_service.create_consent_with_subject(params())

        verification = await consent_service.verify_consent(
            "other.example", ["analytics"], subject_id=created.subject.id
        )

        assert verification.is_valid is False
        assert verification.consent is None
        assert verification.missing == ["analytics"]

    @pytest.mark.asyncio
    async def test_after_withdrawal(self, consent_service):
        created = await consent_service.create_consent_with_subject(params())
        await consent_service.withdraw_consent(created.consent.id)

        verification = await consent_service.verify_consent(
            "example.com", ["analytics"], subject_id=created.subject.id
        )

        assert verification.is_valid is False

    @pytest.mark.asyncio
    async def test_expired(self, consent_service):
        created = await consent_service.create_consent_with_subject(
            params(valid_until=datetime.now(UTC) - timedelta(seconds=1))
        )

        verification = await consent_service.verify_consent(
            "example.com", ["analytics"], subject_id=created.subject.id
        )

        assert verification.is_valid is False

    @pytest.mark.asyncio
    async def test_purposes_across_consents(self, consent_service):
        first = await consent_service.create_consent_with_subject(params(preferences={"analytics": True}))
        await consent_service.create_consent_with_subject(
            params(subject_id=first.subject.id, preferences={"ads": True})
        )

        verification = await consent_service.verify_consent(
            "example.com", ["analytics"], subject_id=first.subject.id
        )

        assert verification.is_valid is True
        assert verification.consent.id == first.consent.id

    @pytest.mark.asyncio
    async def test_requires_identifier(self, consent_service):
        with pytest.raises(ConsentLedgerError) as exc_info:
            await consent_service.verify_consent("example.com", ["analytics"])

        assert exc_info.value.kind is ErrorKind.BAD_REQUEST
