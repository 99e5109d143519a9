"""Tests for the per-organization audit hash chain."""

import uuid

from ropa_core.audit import GENESIS_HASH, verify_chain
from ropa_core.domain.audit_service import AuditService
from ropa_core.enums import AuditEventType

from conftest import MockAuditRepository


async def _record(audit_service: AuditService, organization_id: uuid.UUID, entity_id: str) -> None:
    await audit_service.record_event(
        organization_id=organization_id,
        event_type=AuditEventType.CATEGORY_CREATED,
        entity_type="data_category",
        entity_id=entity_id,
        actor_id="user-1",
    )


class TestAuditChain:
    async def test_chain_links_events(self, audit_service: AuditService, audit_repo: MockAuditRepository) -> None:
        org = uuid.uuid4()
        for i in range(4):
            await _record(audit_service, org, f"cat-{i}")

        chain = await audit_repo.get_chain(org)
        assert chain[0].previous_hash == GENESIS_HASH
        assert all(chain[i].previous_hash == chain[i - 1].event_hash for i in range(1, len(chain)))
        assert await audit_service.verify_integrity(org) is True

    async def test_chains_are_per_organization(
        self, audit_service: AuditService, audit_repo: MockAuditRepository
    ) -> None:
        org_a, org_b = uuid.uuid4(), uuid.uuid4()
        await _record(audit_service, org_a, "a-1")
        await _record(audit_service, org_b, "b-1")
        await _record(audit_service, org_a, "a-2")

        chain_b = await audit_repo.get_chain(org_b)
        assert len(chain_b) == 1
        assert chain_b[0].previous_hash == GENESIS_HASH
        assert await audit_service.verify_integrity(org_a) is True
        assert await audit_service.verify_integrity(org_b) is True

    async def test_tampering_is_detected(self, audit_service: AuditService, audit_repo: MockAuditRepository) -> None:
        org = uuid.uuid4()
        await _record(audit_service, org, "cat-1")
        await _record(audit_service, org, "cat-2")

        chain = await audit_repo.get_chain(org)
        chain[0].details = {"justification": "rewritten"}
        assert await audit_service.verify_integrity(org) is False

    async def test_events_for_entity(self, audit_service: AuditService) -> None:
        org = uuid.uuid4()
        await _record(audit_service, org, "cat-1")
        await _record(audit_service, org, "cat-2")
        events = await audit_service.get_events_for_entity(org, "cat-1")
        assert [e.entity_id for e in events] == ["cat-1"]

    def test_empty_chain_is_valid(self) -> None:
        assert verify_chain([]) is True
