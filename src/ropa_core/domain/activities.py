"""Processing activities and their links to recipients and digital assets."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from ropa_core.enums import AuditEventType, LocationOwnerKind
from ropa_core.exceptions import NotFoundError
from ropa_core.models import ActivityLink, ProcessingActivity
from ropa_core.schemas import ProcessingActivityCreate, parse_input

if TYPE_CHECKING:
    import uuid

    from ropa_core.domain.audit_service import AuditService
    from ropa_core.repository.protocols import (
        DigitalAssetRepository,
        ProcessingActivityRepository,
        RecipientRepository,
    )


class ProcessingActivityService:
    def __init__(
        self,
        repo: ProcessingActivityRepository,
        recipients: RecipientRepository,
        assets: DigitalAssetRepository,
        audit: AuditService,
    ) -> None:
        self._repo = repo
        self._recipients = recipients
        self._assets = assets
        self._audit = audit

    async def create_activity(
        self,
        organization_id: uuid.UUID,
        data: ProcessingActivityCreate | Mapping[str, Any],
        *,
        actor_id: str,
    ) -> ProcessingActivity:
        payload = parse_input(ProcessingActivityCreate, data)
        saved = await self._repo.create(
            ProcessingActivity(organization_id=organization_id, name=payload.name, description=payload.description)
        )
        await self._audit.record_event(
            organization_id=organization_id,
            event_type=AuditEventType.ACTIVITY_CREATED,
            entity_type="processing_activity",
            entity_id=str(saved.id),
            actor_id=actor_id,
            description=f"Processing activity created: {saved.name}",
        )
        return saved

    async def get_activity(self, activity_id: uuid.UUID, organization_id: uuid.UUID) -> ProcessingActivity:
        activity = await self._repo.get(activity_id, organization_id)
        if activity is None:
            raise NotFoundError("ProcessingActivity", activity_id)
        return activity

    async def _require_owner(
        self, owner_kind: LocationOwnerKind, owner_id: uuid.UUID, organization_id: uuid.UUID
    ) -> None:
        if owner_kind == LocationOwnerKind.RECIPIENT:
            if await self._recipients.get(owner_id, organization_id) is None:
                raise NotFoundError("Recipient", owner_id)
        elif await self._assets.get(owner_id, organization_id) is None:
            raise NotFoundError("DigitalAsset", owner_id)

    async def _link(
        self,
        activity_id: uuid.UUID,
        organization_id: uuid.UUID,
        owner_kind: LocationOwnerKind,
        owner_id: uuid.UUID,
        actor_id: str,
    ) -> ActivityLink:
        await self.get_activity(activity_id, organization_id)
        await self._require_owner(owner_kind, owner_id, organization_id)
        link = await self._repo.add_link(
            ActivityLink(activity_id=activity_id, owner_kind=owner_kind, owner_id=owner_id)
        )
        await self._audit.record_event(
            organization_id=organization_id,
            event_type=AuditEventType.ACTIVITY_LINKED,
            entity_type="processing_activity",
            entity_id=str(activity_id),
            actor_id=actor_id,
            description=f"Linked {owner_kind} {owner_id}",
            details={"owner_kind": owner_kind, "owner_id": str(owner_id)},
        )
        return link

    async def _unlink(
        self,
        activity_id: uuid.UUID,
        organization_id: uuid.UUID,
        owner_kind: LocationOwnerKind,
        owner_id: uuid.UUID,
        actor_id: str,
    ) -> bool:
        await self.get_activity(activity_id, organization_id)
        removed = await self._repo.remove_link(activity_id, owner_kind, owner_id)
        if removed:
            await self._audit.record_event(
                organization_id=organization_id,
                event_type=AuditEventType.ACTIVITY_UNLINKED,
                entity_type="processing_activity",
                entity_id=str(activity_id),
                actor_id=actor_id,
                description=f"Unlinked {owner_kind} {owner_id}",
                details={"owner_kind": owner_kind, "owner_id": str(owner_id)},
            )
        return removed

    async def link_recipient(
        self, activity_id: uuid.UUID, organization_id: uuid.UUID, recipient_id: uuid.UUID, *, actor_id: str
    ) -> ActivityLink:
        return await self._link(activity_id, organization_id, LocationOwnerKind.RECIPIENT, recipient_id, actor_id)

    async def unlink_recipient(
        self, activity_id: uuid.UUID, organization_id: uuid.UUID, recipient_id: uuid.UUID, *, actor_id: str
    ) -> bool:
        return await self._unlink(activity_id, organization_id, LocationOwnerKind.RECIPIENT, recipient_id, actor_id)

    async def link_asset(
        self, activity_id: uuid.UUID, organization_id: uuid.UUID, asset_id: uuid.UUID, *, actor_id: str
    ) -> ActivityLink:
        return await self._link(activity_id, organization_id, LocationOwnerKind.ASSET, asset_id, actor_id)

    async def unlink_asset(
        self, activity_id: uuid.UUID, organization_id: uuid.UUID, asset_id: uuid.UUID, *, actor_id: str
    ) -> bool:
        return await self._unlink(activity_id, organization_id, LocationOwnerKind.ASSET, asset_id, actor_id)

    async def list_linked_ids(
        self, activity_id: uuid.UUID, organization_id: uuid.UUID, owner_kind: LocationOwnerKind
    ) -> list[uuid.UUID]:
        await self.get_activity(activity_id, organization_id)
        return [link.owner_id for link in await self._repo.list_links(activity_id, owner_kind)]
