"""Audit service for managing the per-organization hash-chained audit trail."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ropa_core.audit import GENESIS_HASH, AuditEvent, verify_chain

if TYPE_CHECKING:
    import uuid

    from ropa_core.enums import AuditEventType
    from ropa_core.repository.protocols import AuditRepository


class AuditService:
    """Manages the append-only, hash-chained audit trail of each organization."""

    def __init__(self, repo: AuditRepository) -> None:
        self._repo = repo

    async def record_event(
        self,
        *,
        organization_id: uuid.UUID,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        actor_id: str,
        description: str = "",
        details: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Record a new audit event, extending the organization's hash chain."""
        last_hash = await self._repo.get_last_hash(organization_id)

        event = AuditEvent(
            organization_id=organization_id,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            description=description,
            details=details or {},
            previous_hash=last_hash or GENESIS_HASH,
        )
        event.seal()

        return await self._repo.create(event)

    async def verify_integrity(self, organization_id: uuid.UUID, *, limit: int = 1000) -> bool:
        """Verify the integrity of one organization's audit chain."""
        events = await self._repo.get_chain(organization_id, limit=limit)
        return verify_chain(events)

    async def get_events_for_entity(
        self,
        organization_id: uuid.UUID,
        entity_id: str,
        *,
        limit: int = 50,
    ) -> list[AuditEvent]:
        return await self._repo.list_by_entity(organization_id, entity_id, limit=limit)
