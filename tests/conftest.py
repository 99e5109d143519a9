"""Shared test fixtures with in-memory mock repositories."""

from __future__ import annotations

import asyncio
import copy
import uuid
from collections.abc import AsyncIterator, Collection
from contextlib import asynccontextmanager
from typing import Any

import pytest
from ropa_core.audit import AuditEvent
from ropa_core.domain.activities import ProcessingActivityService
from ropa_core.domain.assets import DigitalAssetService
from ropa_core.domain.audit_service import AuditService
from ropa_core.domain.classification import DataCategoryService
from ropa_core.domain.hierarchy import RecipientService
from ropa_core.domain.locations import LocationRegistry
from ropa_core.domain.transfers import TransferDetectionEngine
from ropa_core.enums import LocationOwnerKind, RecipientType, SensitivityLevel
from ropa_core.exceptions import ConflictError
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
from ropa_core.reference.seed import (
    build_countries,
    build_data_natures,
    build_transfer_mechanisms,
    country_id,
)
from ropa_core.reference.store import ReferenceDataStore
from ropa_core.settings import ComplianceSettings

# ─── In-memory mock repositories ─────────────────────────


class _Snapshotting:
    """State that MockUnitOfWork copies on entry and restores on failure."""

    _state: tuple[str, ...] = ("_store",)

    def snapshot(self) -> dict[str, Any]:
        return {name: copy.deepcopy(getattr(self, name)) for name in self._state}

    def restore(self, state: dict[str, Any]) -> None:
        for name, value in state.items():
            setattr(self, name, value)


class MockReferenceRepository:
    def __init__(self) -> None:
        self.loads = 0
        self.countries = build_countries()
        self.data_natures = build_data_natures()
        self.transfer_mechanisms = build_transfer_mechanisms()

    async def list_countries(self) -> list[Country]:
        await asyncio.sleep(0)
        self.loads += 1
        return list(self.countries)

    async def list_data_natures(self) -> list[DataNature]:
        await asyncio.sleep(0)
        return list(self.data_natures)

    async def list_transfer_mechanisms(self) -> list[TransferMechanism]:
        await asyncio.sleep(0)
        return list(self.transfer_mechanisms)


class MockOrganizationRepository:
    def __init__(self) -> None:
        self._store: dict[uuid.UUID, Organization] = {}
        self._purposes: dict[uuid.UUID, Purpose] = {}

    def add(self, organization: Organization) -> Organization:
        self._store[organization.id] = organization
        return organization

    def add_purpose(self, purpose: Purpose) -> Purpose:
        self._purposes[purpose.id] = purpose
        return purpose

    async def get_by_id(self, organization_id: uuid.UUID) -> Organization | None:
        await asyncio.sleep(0)
        return self._store.get(organization_id)

    async def get_purpose(self, purpose_id: uuid.UUID, organization_id: uuid.UUID) -> Purpose | None:
        await asyncio.sleep(0)
        purpose = self._purposes.get(purpose_id)
        if purpose is None or purpose.organization_id != organization_id:
            return None
        return purpose


class MockDataCategoryRepository(_Snapshotting):
    def __init__(self) -> None:
        self._store: dict[uuid.UUID, DataCategory] = {}

    async def create(self, category: DataCategory) -> DataCategory:
        await asyncio.sleep(0)
        if any(c.organization_id == category.organization_id and c.name == category.name for c in self._store.values()):
            raise ConflictError(f"Data category {category.name!r} already exists")
        self._store[category.id] = category
        return category

    async def get(self, category_id: uuid.UUID, organization_id: uuid.UUID) -> DataCategory | None:
        await asyncio.sleep(0)
        category = self._store.get(category_id)
        if category is None or category.organization_id != organization_id:
            return None
        return category

    async def update(self, category: DataCategory) -> DataCategory:
        await asyncio.sleep(0)
        self._store[category.id] = category
        return category

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
    ) -> list[DataCategory]:
        await asyncio.sleep(0)
        result = [c for c in self._store.values() if c.organization_id == organization_id]
        if after is not None:
            ids = [c.id for c in result]
            result = result[ids.index(after) + 1 :] if after in ids else []
        if sensitivities is not None:
            result = [c for c in result if c.sensitivity in sensitivities]
        if is_special is not None:
            result = [c for c in result if c.is_special_category == is_special]
        if search:
            result = [c for c in result if search.lower() in c.name.lower()]
        if active is not None:
            result = [c for c in result if c.is_active == active]
        return result[:limit]


class MockLocationRepository(_Snapshotting):
    def __init__(self, owner_kind: LocationOwnerKind) -> None:
        self.owner_kind = owner_kind
        self._store: dict[uuid.UUID, ProcessingLocation] = {}

    async def create(self, location: ProcessingLocation) -> ProcessingLocation:
        await asyncio.sleep(0)
        self._store[location.id] = location
        return location

    async def get(self, location_id: uuid.UUID, organization_id: uuid.UUID) -> ProcessingLocation | None:
        await asyncio.sleep(0)
        location = self._store.get(location_id)
        if location is None or location.organization_id != organization_id:
            return None
        return location

    async def update(self, location: ProcessingLocation) -> ProcessingLocation:
        await asyncio.sleep(0)
        self._store[location.id] = location
        return location

    def delete_for_owner(self, owner_id: uuid.UUID) -> None:
        self._store = {k: v for k, v in self._store.items() if v.owner_id != owner_id}

    async def list_for_owner(
        self,
        owner_id: uuid.UUID,
        organization_id: uuid.UUID,
        *,
        active: bool | None = True,
    ) -> list[ProcessingLocation]:
        await asyncio.sleep(0)
        result = [
            loc for loc in self._store.values() if loc.owner_id == owner_id and loc.organization_id == organization_id
        ]
        if active is not None:
            result = [loc for loc in result if loc.is_active == active]
        return result

    async def list_for_owners(
        self,
        owner_ids: Collection[uuid.UUID],
        organization_id: uuid.UUID,
    ) -> list[ProcessingLocation]:
        await asyncio.sleep(0)
        wanted = set(owner_ids)
        return [
            loc
            for loc in self._store.values()
            if loc.owner_id in wanted and loc.organization_id == organization_id and loc.is_active
        ]

    async def list_by_country(
        self,
        organization_id: uuid.UUID,
        country_id: uuid.UUID,
        *,
        active_only: bool = True,
    ) -> list[ProcessingLocation]:
        await asyncio.sleep(0)
        return [
            loc
            for loc in self._store.values()
            if loc.organization_id == organization_id
            and loc.country_id == country_id
            and (loc.is_active or not active_only)
        ]

    async def list_by_organization(
        self,
        organization_id: uuid.UUID,
        *,
        active_only: bool = True,
    ) -> list[ProcessingLocation]:
        await asyncio.sleep(0)
        return [
            loc
            for loc in self._store.values()
            if loc.organization_id == organization_id and (loc.is_active or not active_only)
        ]


class MockRecipientRepository(_Snapshotting):
    def __init__(self, locations: MockLocationRepository) -> None:
        self._store: dict[uuid.UUID, Recipient] = {}
        self._locations = locations

    async def create(self, recipient: Recipient) -> Recipient:
        await asyncio.sleep(0)
        self._store[recipient.id] = recipient
        return recipient

    async def get(self, recipient_id: uuid.UUID, organization_id: uuid.UUID) -> Recipient | None:
        await asyncio.sleep(0)
        recipient = self._store.get(recipient_id)
        if recipient is None or recipient.organization_id != organization_id:
            return None
        return recipient

    async def update(self, recipient: Recipient) -> Recipient:
        return await self.create(recipient)

    async def delete(self, recipient_id: uuid.UUID, organization_id: uuid.UUID) -> None:
        await asyncio.sleep(0)
        recipient = self._store.get(recipient_id)
        if recipient is None or recipient.organization_id != organization_id:
            return
        del self._store[recipient_id]
        self._locations.delete_for_owner(recipient_id)
        for child_id, child in list(self._store.items()):
            if child.parent_recipient_id == recipient_id:
                self._store[child_id] = child.model_copy(update={"parent_recipient_id": None})

    async def list_by_organization(
        self,
        organization_id: uuid.UUID,
        *,
        recipient_type: RecipientType | None = None,
        active_only: bool = False,
    ) -> list[Recipient]:
        await asyncio.sleep(0)
        result = [r for r in self._store.values() if r.organization_id == organization_id]
        if recipient_type is not None:
            result = [r for r in result if r.type == recipient_type]
        if active_only:
            result = [r for r in result if r.is_active]
        return result

    async def list_children(self, parent_id: uuid.UUID, organization_id: uuid.UUID) -> list[Recipient]:
        await asyncio.sleep(0)
        return [
            r
            for r in self._store.values()
            if r.parent_recipient_id == parent_id and r.organization_id == organization_id
        ]

    def force_parent(self, recipient_id: uuid.UUID, parent_id: uuid.UUID | None) -> None:
        """Write a parent link directly, bypassing every service rule."""
        self._store[recipient_id] = self._store[recipient_id].model_copy(update={"parent_recipient_id": parent_id})


class MockDigitalAssetRepository(_Snapshotting):
    def __init__(self, locations: MockLocationRepository) -> None:
        self._store: dict[uuid.UUID, DigitalAsset] = {}
        self._locations = locations

    async def create(self, asset: DigitalAsset) -> DigitalAsset:
        await asyncio.sleep(0)
        self._store[asset.id] = asset
        return asset

    async def get(self, asset_id: uuid.UUID, organization_id: uuid.UUID) -> DigitalAsset | None:
        await asyncio.sleep(0)
        asset = self._store.get(asset_id)
        if asset is None or asset.organization_id != organization_id:
            return None
        return asset

    async def update(self, asset: DigitalAsset) -> DigitalAsset:
        return await self.create(asset)

    async def delete(self, asset_id: uuid.UUID, organization_id: uuid.UUID) -> None:
        await asyncio.sleep(0)
        asset = self._store.get(asset_id)
        if asset is not None and asset.organization_id == organization_id:
            del self._store[asset_id]
            self._locations.delete_for_owner(asset_id)

    async def list_by_organization(self, organization_id: uuid.UUID) -> list[DigitalAsset]:
        await asyncio.sleep(0)
        return [a for a in self._store.values() if a.organization_id == organization_id]


class MockProcessingActivityRepository(_Snapshotting):
    _state = ("_store", "_links")

    def __init__(self) -> None:
        self._store: dict[uuid.UUID, ProcessingActivity] = {}
        self._links: list[ActivityLink] = []

    async def create(self, activity: ProcessingActivity) -> ProcessingActivity:
        await asyncio.sleep(0)
        self._store[activity.id] = activity
        return activity

    async def get(self, activity_id: uuid.UUID, organization_id: uuid.UUID) -> ProcessingActivity | None:
        await asyncio.sleep(0)
        activity = self._store.get(activity_id)
        if activity is None or activity.organization_id != organization_id:
            return None
        return activity

    async def add_link(self, link: ActivityLink) -> ActivityLink:
        await asyncio.sleep(0)
        for existing in self._links:
            if (existing.activity_id, existing.owner_kind, existing.owner_id) == (
                link.activity_id,
                link.owner_kind,
                link.owner_id,
            ):
                raise ConflictError(f"{link.owner_kind} {link.owner_id} already linked to activity {link.activity_id}")
        self._links.append(link)
        return link

    async def remove_link(self, activity_id: uuid.UUID, owner_kind: LocationOwnerKind, owner_id: uuid.UUID) -> bool:
        await asyncio.sleep(0)
        before = len(self._links)
        self._links = [
            link
            for link in self._links
            if (link.activity_id, link.owner_kind, link.owner_id) != (activity_id, owner_kind, owner_id)
        ]
        return len(self._links) < before

    async def list_links(self, activity_id: uuid.UUID, owner_kind: LocationOwnerKind) -> list[ActivityLink]:
        await asyncio.sleep(0)
        return [link for link in self._links if link.activity_id == activity_id and link.owner_kind == owner_kind]

    async def count_links_for_owner(self, owner_kind: LocationOwnerKind, owner_id: uuid.UUID) -> int:
        await asyncio.sleep(0)
        return sum(1 for link in self._links if link.owner_kind == owner_kind and link.owner_id == owner_id)


class MockAuditRepository(_Snapshotting):
    _state = ("_events",)

    def __init__(self) -> None:
        self._events: list[AuditEvent] = []

    async def create(self, event: AuditEvent) -> AuditEvent:
        await asyncio.sleep(0)
        self._events.append(event)
        return event

    async def get_last_hash(self, organization_id: uuid.UUID) -> str | None:
        await asyncio.sleep(0)
        events = [e for e in self._events if e.organization_id == organization_id]
        if not events:
            return None
        return events[-1].event_hash

    async def get_chain(self, organization_id: uuid.UUID, *, limit: int = 1000) -> list[AuditEvent]:
        await asyncio.sleep(0)
        return [e for e in self._events if e.organization_id == organization_id][:limit]

    async def list_by_entity(self, organization_id: uuid.UUID, entity_id: str, *, limit: int = 50) -> list[AuditEvent]:
        await asyncio.sleep(0)
        return [e for e in self._events if e.organization_id == organization_id and e.entity_id == entity_id][:limit]


class MockUnitOfWork:
    """Snapshots every registered repository and restores them if the block raises."""

    def __init__(self, *repos: _Snapshotting) -> None:
        self._repos = repos
        self.commits = 0
        self.rollbacks = 0

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        snapshots = [repo.snapshot() for repo in self._repos]
        try:
            yield
        except Exception:
            for repo, state in zip(self._repos, snapshots, strict=True):
                repo.restore(state)
            self.rollbacks += 1
            raise
        self.commits += 1


# ─── Fixtures ─────────────────────────────────────────────


@pytest.fixture
def settings() -> ComplianceSettings:
    return ComplianceSettings(hierarchy_max_depth=10, enforce_transfer_mechanism=False)


@pytest.fixture
def reference_repo() -> MockReferenceRepository:
    return MockReferenceRepository()


@pytest.fixture
def reference_store(reference_repo: MockReferenceRepository) -> ReferenceDataStore:
    return ReferenceDataStore(reference_repo)


@pytest.fixture
def organization_repo() -> MockOrganizationRepository:
    return MockOrganizationRepository()


@pytest.fixture
def organization(organization_repo: MockOrganizationRepository) -> Organization:
    return organization_repo.add(Organization(name="Acme GmbH", headquarters_country_id=country_id("DE")))


@pytest.fixture
def org_id(organization: Organization) -> uuid.UUID:
    return organization.id


@pytest.fixture
def other_org_id(organization_repo: MockOrganizationRepository) -> uuid.UUID:
    return organization_repo.add(Organization(name="Globex SARL", headquarters_country_id=country_id("FR"))).id


@pytest.fixture
def purpose(organization_repo: MockOrganizationRepository, org_id: uuid.UUID) -> Purpose:
    return organization_repo.add_purpose(Purpose(organization_id=org_id, name="Customer support"))


@pytest.fixture
def category_repo() -> MockDataCategoryRepository:
    return MockDataCategoryRepository()


@pytest.fixture
def recipient_location_repo() -> MockLocationRepository:
    return MockLocationRepository(LocationOwnerKind.RECIPIENT)


@pytest.fixture
def asset_location_repo() -> MockLocationRepository:
    return MockLocationRepository(LocationOwnerKind.ASSET)


@pytest.fixture
def recipient_repo(recipient_location_repo: MockLocationRepository) -> MockRecipientRepository:
    return MockRecipientRepository(recipient_location_repo)


@pytest.fixture
def asset_repo(asset_location_repo: MockLocationRepository) -> MockDigitalAssetRepository:
    return MockDigitalAssetRepository(asset_location_repo)


@pytest.fixture
def activity_repo() -> MockProcessingActivityRepository:
    return MockProcessingActivityRepository()


@pytest.fixture
def audit_repo() -> MockAuditRepository:
    return MockAuditRepository()


@pytest.fixture
def unit_of_work(
    category_repo: MockDataCategoryRepository,
    recipient_repo: MockRecipientRepository,
    asset_repo: MockDigitalAssetRepository,
    recipient_location_repo: MockLocationRepository,
    asset_location_repo: MockLocationRepository,
    activity_repo: MockProcessingActivityRepository,
    audit_repo: MockAuditRepository,
) -> MockUnitOfWork:
    return MockUnitOfWork(
        category_repo,
        recipient_repo,
        asset_repo,
        recipient_location_repo,
        asset_location_repo,
        activity_repo,
        audit_repo,
    )


@pytest.fixture
def audit_service(audit_repo: MockAuditRepository) -> AuditService:
    return AuditService(repo=audit_repo)


@pytest.fixture
def category_service(
    category_repo: MockDataCategoryRepository,
    reference_store: ReferenceDataStore,
    audit_service: AuditService,
) -> DataCategoryService:
    return DataCategoryService(repo=category_repo, reference=reference_store, audit=audit_service)


@pytest.fixture
def recipient_locations(
    recipient_location_repo: MockLocationRepository,
    recipient_repo: MockRecipientRepository,
    organization_repo: MockOrganizationRepository,
    reference_store: ReferenceDataStore,
    audit_service: AuditService,
    unit_of_work: MockUnitOfWork,
    settings: ComplianceSettings,
) -> LocationRegistry:
    return LocationRegistry(
        LocationOwnerKind.RECIPIENT,
        repo=recipient_location_repo,
        owners=recipient_repo,
        organizations=organization_repo,
        reference=reference_store,
        audit=audit_service,
        unit_of_work=unit_of_work,
        settings=settings,
    )


@pytest.fixture
def asset_locations(
    asset_location_repo: MockLocationRepository,
    asset_repo: MockDigitalAssetRepository,
    organization_repo: MockOrganizationRepository,
    reference_store: ReferenceDataStore,
    audit_service: AuditService,
    unit_of_work: MockUnitOfWork,
    settings: ComplianceSettings,
) -> LocationRegistry:
    return LocationRegistry(
        LocationOwnerKind.ASSET,
        repo=asset_location_repo,
        owners=asset_repo,
        organizations=organization_repo,
        reference=reference_store,
        audit=audit_service,
        unit_of_work=unit_of_work,
        settings=settings,
    )


@pytest.fixture
def recipient_service(
    recipient_repo: MockRecipientRepository,
    recipient_locations: LocationRegistry,
    activity_repo: MockProcessingActivityRepository,
    reference_store: ReferenceDataStore,
    audit_service: AuditService,
    unit_of_work: MockUnitOfWork,
    settings: ComplianceSettings,
) -> RecipientService:
    return RecipientService(
        repo=recipient_repo,
        locations=recipient_locations,
        activities=activity_repo,
        reference=reference_store,
        audit=audit_service,
        unit_of_work=unit_of_work,
        settings=settings,
    )


@pytest.fixture
def asset_service(
    asset_repo: MockDigitalAssetRepository,
    asset_locations: LocationRegistry,
    activity_repo: MockProcessingActivityRepository,
    audit_service: AuditService,
    unit_of_work: MockUnitOfWork,
) -> DigitalAssetService:
    return DigitalAssetService(
        repo=asset_repo,
        locations=asset_locations,
        activities=activity_repo,
        audit=audit_service,
        unit_of_work=unit_of_work,
    )


@pytest.fixture
def activity_service(
    activity_repo: MockProcessingActivityRepository,
    recipient_repo: MockRecipientRepository,
    asset_repo: MockDigitalAssetRepository,
    audit_service: AuditService,
) -> ProcessingActivityService:
    return ProcessingActivityService(
        repo=activity_repo,
        recipients=recipient_repo,
        assets=asset_repo,
        audit=audit_service,
    )


@pytest.fixture
def transfer_engine(
    organization_repo: MockOrganizationRepository,
    recipient_repo: MockRecipientRepository,
    asset_repo: MockDigitalAssetRepository,
    activity_repo: MockProcessingActivityRepository,
    recipient_location_repo: MockLocationRepository,
    asset_location_repo: MockLocationRepository,
    reference_store: ReferenceDataStore,
) -> TransferDetectionEngine:
    return TransferDetectionEngine(
        organizations=organization_repo,
        recipients=recipient_repo,
        assets=asset_repo,
        activities=activity_repo,
        recipient_locations=recipient_location_repo,
        asset_locations=asset_location_repo,
        reference=reference_store,
    )
