"""Digital assets: systems that host or process personal data."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ropa_core.enums import AuditEventType, LocationOwnerKind
from ropa_core.exceptions import ConflictError, NotFoundError
from ropa_core.models import DigitalAsset
from ropa_core.schemas import DigitalAssetCreate, parse_input

if TYPE_CHECKING:
    import uuid

    from ropa_core.domain.audit_service import AuditService
    from ropa_core.domain.locations import LocationRegistry
    from ropa_core.repository.protocols import DigitalAssetRepository, ProcessingActivityRepository, UnitOfWork

logger = logging.getLogger(__name__)


class DigitalAssetService:
    def __init__(
        self,
        repo: DigitalAssetRepository,
        locations: LocationRegistry,
        activities: ProcessingActivityRepository,
        audit: AuditService,
        unit_of_work: UnitOfWork,
    ) -> None:
        self._repo = repo
        self._locations = locations
        self._activities = activities
        self._audit = audit
        self._uow = unit_of_work

    async def create_asset(
        self,
        organization_id: uuid.UUID,
        data: DigitalAssetCreate | Mapping[str, Any],
        *,
        actor_id: str,
    ) -> DigitalAsset:
        """Create an asset with its initial locations, all or nothing."""
        payload = parse_input(DigitalAssetCreate, data)
        asset = DigitalAsset(
            organization_id=organization_id,
            name=payload.name,
            type=payload.type,
            description=payload.description,
            contains_personal_data=payload.contains_personal_data,
        )

        async with self._uow.transaction():
            saved = await self._repo.create(asset)
            for location in payload.locations:
                await self._locations.create_location(saved.id, organization_id, location, actor_id=actor_id)
            await self._audit.record_event(
                organization_id=organization_id,
                event_type=AuditEventType.ASSET_CREATED,
                entity_type="digital_asset",
                entity_id=str(saved.id),
                actor_id=actor_id,
                description=f"Digital asset created: {saved.name}",
                details={"type": saved.type, "locations": len(payload.locations)},
            )

        logger.info("Created digital asset %s with %d location(s)", saved.id, len(payload.locations))
        return saved

    async def get_asset(self, asset_id: uuid.UUID, organization_id: uuid.UUID) -> DigitalAsset:
        asset = await self._repo.get(asset_id, organization_id)
        if asset is None:
            raise NotFoundError("DigitalAsset", asset_id)
        return asset

    async def list_assets(self, organization_id: uuid.UUID) -> list[DigitalAsset]:
        return await self._repo.list_by_organization(organization_id)

    async def deactivate_asset(self, asset_id: uuid.UUID, organization_id: uuid.UUID, *, actor_id: str) -> DigitalAsset:
        """Take an asset out of transfer analysis. Repeating the call returns it unchanged."""
        asset = await self.get_asset(asset_id, organization_id)
        if not asset.is_active:
            return asset

        saved = await self._repo.update(asset.model_copy(update={"is_active": False, "updated_at": datetime.now(UTC)}))
        await self._audit.record_event(
            organization_id=organization_id,
            event_type=AuditEventType.ASSET_DEACTIVATED,
            entity_type="digital_asset",
            entity_id=str(saved.id),
            actor_id=actor_id,
            description=f"Digital asset deactivated: {saved.name}",
        )
        logger.info("Deactivated digital asset %s", saved.id)
        return saved

    async def delete_asset(self, asset_id: uuid.UUID, organization_id: uuid.UUID, *, actor_id: str) -> None:
        """Delete an asset and its locations. Refused while any activity links it."""
        asset = await self.get_asset(asset_id, organization_id)
        if await self._activities.count_links_for_owner(LocationOwnerKind.ASSET, asset_id):
            raise ConflictError(f"Digital asset {asset_id} is linked to a processing activity; unlink it first")

        async with self._uow.transaction():
            await self._repo.delete(asset_id, organization_id)
            await self._audit.record_event(
                organization_id=organization_id,
                event_type=AuditEventType.ASSET_DELETED,
                entity_type="digital_asset",
                entity_id=str(asset_id),
                actor_id=actor_id,
                description=f"Digital asset deleted: {asset.name}",
            )
