"""Repository protocols consumed by the domain services.

Every organization-scoped read takes the caller's ``organization_id`` and
returns ``None`` when the record belongs to another tenant.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    import uuid
    from collections.abc import Collection
    from contextlib import AbstractAsyncContextManager

    from ropa_core.audit import AuditEvent
    from ropa_core.enums import LocationOwnerKind, RecipientType, SensitivityLevel
    from ropa_core.models import (
        ActivityLink,
        Country,
        DataCategory,
        DataNature,
        DigitalAsset,
        Organization,
        ProcessingActivity,
        ProcessingLocation,
        Purpose,
        Recipient,
        TransferMechanism,
    )


class UnitOfWork(Protocol):
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """All writes inside the block commit together or not at all."""
        ...


class ReferenceRepository(Protocol):
    async def list_countries(self) -> list[Country]: ...

    async def list_data_natures(self) -> list[DataNature]: ...

    async def list_transfer_mechanisms(self) -> list[TransferMechanism]: ...


class OrganizationRepository(Protocol):
    async def get_by_id(self, organization_id: uuid.UUID) -> Organization | None: ...

    async def get_purpose(self, purpose_id: uuid.UUID, organization_id: uuid.UUID) -> Purpose | None: ...


class DataCategoryRepository(Protocol):
    async def create(self, category: DataCategory) -> DataCategory: ...

    async def get(self, category_id: uuid.UUID, organization_id: uuid.UUID) -> DataCategory | None: ...

    async def update(self, category: DataCategory) -> DataCategory: ...

    async def list_categories(
        self,
        organization_id: uuid.UUID,
        *,
        sensitivities: Collection[SensitivityLevel] | None = None,
        is_special: bool | None = None,
        search: str | None = None,
        active: bool | None = True,
        limit: int = 50,
        after: uuid.UUID | None = None,
    ) -> list[DataCategory]: ...


class RecipientRepository(Protocol):
    async def create(self, recipient: Recipient) -> Recipient: ...

    async def get(self, recipient_id: uuid.UUID, organization_id: uuid.UUID) -> Recipient | None: ...

    async def update(self, recipient: Recipient) -> Recipient: ...

    async def delete(self, recipient_id: uuid.UUID, organization_id: uuid.UUID) -> None: ...

    async def list_by_organization(
        self,
        organization_id: uuid.UUID,
        *,
        recipient_type: RecipientType | None = None,
        active_only: bool = False,
    ) -> list[Recipient]: ...

    async def list_children(self, parent_id: uuid.UUID, organization_id: uuid.UUID) -> list[Recipient]: ...


class DigitalAssetRepository(Protocol):
    async def create(self, asset: DigitalAsset) -> DigitalAsset: ...

    async def get(self, asset_id: uuid.UUID, organization_id: uuid.UUID) -> DigitalAsset | None: ...

    async def update(self, asset: DigitalAsset) -> DigitalAsset: ...

    async def delete(self, asset_id: uuid.UUID, organization_id: uuid.UUID) -> None: ...

    async def list_by_organization(self, organization_id: uuid.UUID) -> list[DigitalAsset]: ...


class LocationRepository(Protocol):
    """Locations of a single owner kind. Lists are in creation order."""

    async def create(self, location: ProcessingLocation) -> ProcessingLocation: ...

    async def get(self, location_id: uuid.UUID, organization_id: uuid.UUID) -> ProcessingLocation | None: ...

    async def update(self, location: ProcessingLocation) -> ProcessingLocation: ...

    async def list_for_owner(
        self,
        owner_id: uuid.UUID,
        organization_id: uuid.UUID,
        *,
        active: bool | None = True,
    ) -> list[ProcessingLocation]: ...

    async def list_for_owners(
        self,
        owner_ids: Collection[uuid.UUID],
        organization_id: uuid.UUID,
    ) -> list[ProcessingLocation]:
        """Active locations of every listed owner."""
        ...

    async def list_by_country(
        self,
        organization_id: uuid.UUID,
        country_id: uuid.UUID,
        *,
        active_only: bool = True,
    ) -> list[ProcessingLocation]: ...

    async def list_by_organization(
        self,
        organization_id: uuid.UUID,
        *,
        active_only: bool = True,
    ) -> list[ProcessingLocation]: ...


class ProcessingActivityRepository(Protocol):
    async def create(self, activity: ProcessingActivity) -> ProcessingActivity: ...

    async def get(self, activity_id: uuid.UUID, organization_id: uuid.UUID) -> ProcessingActivity | None: ...

    async def add_link(self, link: ActivityLink) -> ActivityLink:
        """Raises ConflictError when the pair is already linked."""
        ...

    async def remove_link(
        self,
        activity_id: uuid.UUID,
        owner_kind: LocationOwnerKind,
        owner_id: uuid.UUID,
    ) -> bool: ...

    async def list_links(self, activity_id: uuid.UUID, owner_kind: LocationOwnerKind) -> list[ActivityLink]: ...

    async def count_links_for_owner(self, owner_kind: LocationOwnerKind, owner_id: uuid.UUID) -> int: ...


class AuditRepository(Protocol):
    async def create(self, event: AuditEvent) -> AuditEvent: ...

    async def get_last_hash(self, organization_id: uuid.UUID) -> str | None: ...

    async def get_chain(self, organization_id: uuid.UUID, *, limit: int = 1000) -> list[AuditEvent]: ...

    async def list_by_entity(
        self,
        organization_id: uuid.UUID,
        entity_id: str,
        *,
        limit: int = 50,
    ) -> list[AuditEvent]: ...
