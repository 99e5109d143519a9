"""Processing-location registry for recipients and digital assets.

Locations are never edited across a country or role change: ``move``
deactivates the current record and creates its successor in one
transaction, so the history of where data was processed stays truthful.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ropa_core.domain.jurisdiction import validate_transfer_mechanism_requirement
from ropa_core.enums import AuditEventType, LocationOwnerKind
from ropa_core.exceptions import NotFoundError, ValidationError
from ropa_core.models import LocationWarning, ProcessingLocation
from ropa_core.schemas import ProcessingLocationCreate, ProcessingLocationUpdate, parse_input
from ropa_core.settings import ComplianceSettings

if TYPE_CHECKING:
    import uuid

    from ropa_core.domain.audit_service import AuditService
    from ropa_core.models import Country, DigitalAsset, Recipient, TransferMechanism
    from ropa_core.reference.store import ReferenceDataStore
    from ropa_core.repository.protocols import (
        DigitalAssetRepository,
        LocationRepository,
        OrganizationRepository,
        RecipientRepository,
        UnitOfWork,
    )

logger = logging.getLogger(__name__)

_OWNER_ENTITY = {
    LocationOwnerKind.RECIPIENT: "Recipient",
    LocationOwnerKind.ASSET: "DigitalAsset",
}

# Fields that may only change through a move.
_MOVE_ONLY_FIELDS = ("country_id", "location_role")

_LOCATION_FIELDS = tuple(ProcessingLocationCreate.model_fields)


class LocationRegistry:
    """Create, update, deactivate and move locations of one owner kind."""

    def __init__(
        self,
        owner_kind: LocationOwnerKind,
        repo: LocationRepository,
        owners: RecipientRepository | DigitalAssetRepository,
        organizations: OrganizationRepository,
        reference: ReferenceDataStore,
        audit: AuditService,
        unit_of_work: UnitOfWork,
        settings: ComplianceSettings | None = None,
    ) -> None:
        self.owner_kind = owner_kind
        self._repo = repo
        self._owners = owners
        self._organizations = organizations
        self._reference = reference
        self._audit = audit
        self._uow = unit_of_work
        self._settings = settings or ComplianceSettings()
        self._entity_type = f"{owner_kind}_processing_location"

    # ─── Lookups ──────────────────────────────────────────

    async def _require_owner(self, owner_id: uuid.UUID, organization_id: uuid.UUID) -> Recipient | DigitalAsset:
        owner = await self._owners.get(owner_id, organization_id)
        if owner is None:
            raise NotFoundError(_OWNER_ENTITY[self.owner_kind], owner_id)
        return owner

    async def get_location(self, location_id: uuid.UUID, organization_id: uuid.UUID) -> ProcessingLocation:
        location = await self._repo.get(location_id, organization_id)
        if location is None:
            raise NotFoundError("ProcessingLocation", location_id)
        return location

    async def list_active_for_owner(self, owner_id: uuid.UUID, organization_id: uuid.UUID) -> list[ProcessingLocation]:
        """Active locations in creation order."""
        await self._require_owner(owner_id, organization_id)
        return await self._repo.list_for_owner(owner_id, organization_id, active=True)

    async def list_all_for_owner(
        self,
        owner_id: uuid.UUID,
        organization_id: uuid.UUID,
        *,
        active: bool | None = None,
    ) -> list[ProcessingLocation]:
        """Location history of an owner, newest first."""
        await self._require_owner(owner_id, organization_id)
        locations = await self._repo.list_for_owner(owner_id, organization_id, active=active)
        return list(reversed(locations))

    async def list_by_country(
        self,
        organization_id: uuid.UUID,
        country_id: uuid.UUID,
        *,
        active_only: bool = True,
    ) -> list[ProcessingLocation]:
        await self._reference.get_country(country_id)
        return await self._repo.list_by_country(organization_id, country_id, active_only=active_only)

    async def list_active_for_organization(self, organization_id: uuid.UUID) -> list[ProcessingLocation]:
        return await self._repo.list_by_organization(organization_id, active_only=True)

    async def location_warnings(self, organization_id: uuid.UUID) -> list[LocationWarning]:
        """Soft-validation findings over the organization's active locations."""
        locations = await self._repo.list_by_organization(organization_id, active_only=True)
        warnings = []
        for location in locations:
            message = self._purpose_warning(location)
            if message:
                warnings.append(
                    LocationWarning(
                        location_id=location.id,
                        owner_kind=location.owner_kind,
                        owner_id=location.owner_id,
                        message=message,
                    )
                )
        return warnings

    # ─── Validation ───────────────────────────────────────

    def _purpose_warning(self, location: ProcessingLocation) -> str | None:
        if self.owner_kind != LocationOwnerKind.ASSET:
            return None
        if location.purpose_id is None and not (location.purpose_text or "").strip():
            return "Asset location should state a purpose (purpose_id or purpose_text)"
        return None

    async def _check_references(
        self,
        organization_id: uuid.UUID,
        *,
        country_id: uuid.UUID,
        purpose_id: uuid.UUID | None,
        transfer_mechanism_id: uuid.UUID | None,
    ) -> None:
        country = await self._reference.get_country(country_id)
        mechanism = None
        if transfer_mechanism_id is not None:
            mechanism = await self._reference.get_transfer_mechanism(transfer_mechanism_id)
        if purpose_id is not None:
            purpose = await self._organizations.get_purpose(purpose_id, organization_id)
            if purpose is None:
                raise NotFoundError("Purpose", purpose_id)
        await self._check_transfer_mechanism(organization_id, country, mechanism)

    async def _check_transfer_mechanism(
        self,
        organization_id: uuid.UUID,
        destination: Country,
        mechanism: TransferMechanism | None,
    ) -> None:
        if self.owner_kind != LocationOwnerKind.RECIPIENT:
            return
        organization = await self._organizations.get_by_id(organization_id)
        if organization is None or organization.headquarters_country_id is None:
            logger.debug("Skipping transfer mechanism check: organization %s has no headquarters", organization_id)
            return

        origin = await self._reference.get_country(organization.headquarters_country_id)
        problem = validate_transfer_mechanism_requirement(origin, destination, mechanism)
        if problem is None:
            return
        if self._settings.enforce_transfer_mechanism:
            raise ValidationError(problem, {"transfer_mechanism_id": [problem]})
        logger.warning("Organization %s: %s", organization_id, problem)

    # ─── Mutations ────────────────────────────────────────

    async def create_location(
        self,
        owner_id: uuid.UUID,
        organization_id: uuid.UUID,
        data: ProcessingLocationCreate | Mapping[str, Any],
        *,
        actor_id: str,
    ) -> ProcessingLocation:
        """Attach a new active location to an owner of the caller's organization."""
        payload = parse_input(ProcessingLocationCreate, data)
        owner = await self._require_owner(owner_id, organization_id)
        await self._check_references(
            organization_id,
            country_id=payload.country_id,
            purpose_id=payload.purpose_id,
            transfer_mechanism_id=payload.transfer_mechanism_id,
        )

        location = ProcessingLocation(
            organization_id=owner.organization_id,
            owner_kind=self.owner_kind,
            owner_id=owner.id,
            **payload.model_dump(),
        )
        message = self._purpose_warning(location)
        if message:
            logger.warning("Location for %s %s: %s", self.owner_kind, owner.id, message)

        saved = await self._repo.create(location)
        await self._audit.record_event(
            organization_id=organization_id,
            event_type=AuditEventType.LOCATION_CREATED,
            entity_type=self._entity_type,
            entity_id=str(saved.id),
            actor_id=actor_id,
            description=f"Location created: {saved.service}",
            details={"owner_id": str(saved.owner_id), "country_id": str(saved.country_id)},
        )
        logger.info("Created %s location %s (%s)", self.owner_kind, saved.id, saved.service)
        return saved

    async def update_location(
        self,
        location_id: uuid.UUID,
        organization_id: uuid.UUID,
        data: ProcessingLocationUpdate | Mapping[str, Any],
        *,
        actor_id: str,
    ) -> ProcessingLocation:
        """Apply a partial update to an active location.

        A different country or role is a new fact, not a correction, and
        must go through ``move_location``.
        """
        changes = parse_input(ProcessingLocationUpdate, data).changes()
        location = await self.get_location(location_id, organization_id)
        if not location.is_active:
            raise ValidationError("Inactive locations are historical records and cannot be updated")

        move_only = [f for f in _MOVE_ONLY_FIELDS if f in changes and changes[f] != getattr(location, f)]
        if move_only:
            raise ValidationError(
                "Changing country or role requires moving the location",
                {f: ["use move_location to change this field"] for f in move_only},
            )

        merged = location.model_copy(update={**changes, "updated_at": datetime.now(UTC)})
        await self._check_references(
            organization_id,
            country_id=merged.country_id,
            purpose_id=merged.purpose_id,
            transfer_mechanism_id=merged.transfer_mechanism_id,
        )

        saved = await self._repo.update(merged)
        await self._audit.record_event(
            organization_id=organization_id,
            event_type=AuditEventType.LOCATION_UPDATED,
            entity_type=self._entity_type,
            entity_id=str(saved.id),
            actor_id=actor_id,
            description=f"Location updated: {saved.service}",
            details={"changed_fields": sorted(changes)},
        )
        return saved

    async def deactivate_location(
        self,
        location_id: uuid.UUID,
        organization_id: uuid.UUID,
        *,
        actor_id: str,
    ) -> ProcessingLocation:
        """Mark a location historical. Repeating the call returns the same record unchanged."""
        location = await self.get_location(location_id, organization_id)
        if not location.is_active:
            logger.debug("Location %s already inactive", location_id)
            return location

        saved = await self._repo.update(
            location.model_copy(update={"is_active": False, "updated_at": datetime.now(UTC)})
        )
        await self._audit.record_event(
            organization_id=organization_id,
            event_type=AuditEventType.LOCATION_DEACTIVATED,
            entity_type=self._entity_type,
            entity_id=str(saved.id),
            actor_id=actor_id,
            description=f"Location deactivated: {saved.service}",
        )
        logger.info("Deactivated %s location %s", self.owner_kind, saved.id)
        return saved

    async def move_location(
        self,
        location_id: uuid.UUID,
        organization_id: uuid.UUID,
        data: ProcessingLocationUpdate | Mapping[str, Any],
        *,
        actor_id: str,
    ) -> ProcessingLocation:
        """Replace an active location with a successor carrying the merged fields.

        Returns the new record. Either both the deactivation and the
        creation are stored or neither is.
        """
        changes = parse_input(ProcessingLocationUpdate, data).changes()
        source = await self.get_location(location_id, organization_id)
        if not source.is_active:
            raise ValidationError("Only an active location can be moved")

        merged = {**source.model_dump(include=set(_LOCATION_FIELDS)), **changes}
        payload = parse_input(ProcessingLocationCreate, merged)
        await self._check_references(
            organization_id,
            country_id=payload.country_id,
            purpose_id=payload.purpose_id,
            transfer_mechanism_id=payload.transfer_mechanism_id,
        )

        now = datetime.now(UTC)
        successor = ProcessingLocation(
            organization_id=source.organization_id,
            owner_kind=self.owner_kind,
            owner_id=source.owner_id,
            created_at=now,
            updated_at=now,
            **payload.model_dump(),
        )

        async with self._uow.transaction():
            await self._repo.update(source.model_copy(update={"is_active": False, "updated_at": now}))
            saved = await self._repo.create(successor)
            await self._audit.record_event(
                organization_id=organization_id,
                event_type=AuditEventType.LOCATION_MOVED,
                entity_type=self._entity_type,
                entity_id=str(saved.id),
                actor_id=actor_id,
                description=f"Location moved: {saved.service}",
                details={
                    "previous_location_id": str(source.id),
                    "previous_country_id": str(source.country_id),
                    "country_id": str(saved.country_id),
                    "changed_fields": sorted(changes),
                },
            )

        logger.info("Moved %s location %s -> %s", self.owner_kind, source.id, saved.id)
        return saved
