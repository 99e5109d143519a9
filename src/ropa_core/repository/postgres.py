"""PostgreSQL repository implementations using SQLAlchemy 2.0 async."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, select, tuple_
from sqlalchemy.exc import IntegrityError

from ropa_core.audit import AuditEvent
from ropa_core.db.tables import (
    ActivityAssetRow,
    ActivityRecipientRow,
    AssetLocationRow,
    AuditEventRow,
    CountryRow,
    DataCategoryNatureRow,
    DataCategoryRow,
    DataNatureRow,
    DigitalAssetRow,
    OrganizationRow,
    ProcessingActivityRow,
    PurposeRow,
    RecipientLocationRow,
    RecipientRow,
    TransferMechanismRow,
)
from ropa_core.enums import LocationOwnerKind
from ropa_core.exceptions import ConflictError
from ropa_core.models import (
    ActivityLink,
    Country,
    DataCategory,
    DataNature,
    DigitalAsset,
    Organization,
    OverriddenClassification,
    ProcessingActivity,
    ProcessingLocation,
    Purpose,
    Recipient,
    TransferMechanism,
)

if TYPE_CHECKING:
    import uuid
    from collections.abc import AsyncIterator, Collection

    from sqlalchemy.ext.asyncio import AsyncSession

    from ropa_core.enums import RecipientType, SensitivityLevel


async def _flush(session: AsyncSession, what: str) -> None:
    try:
        await session.flush()
    except IntegrityError as exc:
        raise ConflictError(f"{what} violates a uniqueness or reference constraint") from exc


class PgUnitOfWork:
    """Transaction boundary backed by a SAVEPOINT on the request session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        async with self._session.begin_nested():
            yield


class PgReferenceRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_countries(self) -> list[Country]:
        result = await self._session.execute(select(CountryRow).order_by(CountryRow.name))
        return [Country.model_validate(r) for r in result.scalars()]

    async def list_data_natures(self) -> list[DataNature]:
        result = await self._session.execute(select(DataNatureRow).order_by(DataNatureRow.name))
        return [DataNature.model_validate(r) for r in result.scalars()]

    async def list_transfer_mechanisms(self) -> list[TransferMechanism]:
        result = await self._session.execute(select(TransferMechanismRow).order_by(TransferMechanismRow.code))
        return [TransferMechanism.model_validate(r) for r in result.scalars()]


class PgOrganizationRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, organization_id: uuid.UUID) -> Organization | None:
        row = await self._session.get(OrganizationRow, organization_id)
        if row is None:
            return None
        return Organization.model_validate(row)

    async def get_purpose(self, purpose_id: uuid.UUID, organization_id: uuid.UUID) -> Purpose | None:
        row = await self._session.get(PurposeRow, purpose_id)
        if row is None or row.organization_id != organization_id:
            return None
        return Purpose.model_validate(row)


# ─── Data categories ─────────────────────────────────────


def _category_from_row(row: DataCategoryRow) -> DataCategory:
    return DataCategory(
        id=row.id,
        organization_id=row.organization_id,
        name=row.name,
        description=row.description,
        sensitivity=row.sensitivity,
        is_special_category=row.is_special_category,
        example_fields=row.example_fields or [],
        data_nature_ids=[link.data_nature_id for link in row.nature_links],
        override=OverriddenClassification.model_validate(row.override) if row.override else None,
        metadata=row.metadata_json or {},
        is_active=row.is_active,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _override_to_json(category: DataCategory) -> dict[str, Any] | None:
    if category.override is None:
        return None
    return category.override.model_dump(mode="json")


class PgDataCategoryRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _get_row(self, category_id: uuid.UUID, organization_id: uuid.UUID) -> DataCategoryRow | None:
        row = await self._session.get(DataCategoryRow, category_id)
        if row is None or row.organization_id != organization_id:
            return None
        return row

    async def create(self, category: DataCategory) -> DataCategory:
        row = DataCategoryRow(
            id=category.id,
            organization_id=category.organization_id,
            name=category.name,
            description=category.description,
            sensitivity=category.sensitivity,
            is_special_category=category.is_special_category,
            example_fields=category.example_fields,
            override=_override_to_json(category),
            metadata_json=category.metadata,
            is_active=category.is_active,
            created_at=category.created_at,
            updated_at=category.updated_at,
            nature_links=[
                DataCategoryNatureRow(data_category_id=category.id, data_nature_id=nature_id)
                for nature_id in category.data_nature_ids
            ],
        )
        self._session.add(row)
        await _flush(self._session, "Data category")
        return _category_from_row(row)

    async def get(self, category_id: uuid.UUID, organization_id: uuid.UUID) -> DataCategory | None:
        row = await self._get_row(category_id, organization_id)
        if row is None:
            return None
        return _category_from_row(row)

    async def update(self, category: DataCategory) -> DataCategory:
        row = await self._get_row(category.id, category.organization_id)
        if row is None:
            raise ValueError(f"Data category {category.id} not found")
        row.name = category.name
        row.description = category.description
        row.sensitivity = category.sensitivity
        row.is_special_category = category.is_special_category
        row.example_fields = category.example_fields
        row.override = _override_to_json(category)  # type: ignore[assignment]
        row.metadata_json = category.metadata  # type: ignore[assignment]
        row.is_active = category.is_active
        row.updated_at = category.updated_at

        wanted = list(category.data_nature_ids)
        current = {link.data_nature_id: link for link in row.nature_links}
        for nature_id, link in current.items():
            if nature_id not in wanted:
                row.nature_links.remove(link)
        for nature_id in wanted:
            if nature_id not in current:
                row.nature_links.append(DataCategoryNatureRow(data_category_id=row.id, data_nature_id=nature_id))

        await _flush(self._session, "Data category")
        return _category_from_row(row)

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
        stmt = select(DataCategoryRow).where(DataCategoryRow.organization_id == organization_id)
        if sensitivities is not None:
            stmt = stmt.where(DataCategoryRow.sensitivity.in_([s.value for s in sensitivities]))
        if is_special is not None:
            stmt = stmt.where(DataCategoryRow.is_special_category == is_special)
        if search:
            stmt = stmt.where(DataCategoryRow.name.ilike(f"%{search}%"))
        if active is not None:
            stmt = stmt.where(DataCategoryRow.is_active == active)
        if after is not None:
            cursor = await self._get_row(after, organization_id)
            if cursor is not None:
                stmt = stmt.where(
                    tuple_(DataCategoryRow.created_at, DataCategoryRow.id) > tuple_(cursor.created_at, cursor.id)
                )
        stmt = stmt.order_by(DataCategoryRow.created_at, DataCategoryRow.id).limit(limit)
        result = await self._session.execute(stmt)
        return [_category_from_row(r) for r in result.scalars()]


# ─── Recipients and assets ───────────────────────────────


class PgRecipientRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _get_row(self, recipient_id: uuid.UUID, organization_id: uuid.UUID) -> RecipientRow | None:
        row = await self._session.get(RecipientRow, recipient_id)
        if row is None or row.organization_id != organization_id:
            return None
        return row

    async def create(self, recipient: Recipient) -> Recipient:
        row = RecipientRow(
            id=recipient.id,
            organization_id=recipient.organization_id,
            name=recipient.name,
            type=recipient.type,
            description=recipient.description,
            parent_recipient_id=recipient.parent_recipient_id,
            hierarchy_type=recipient.hierarchy_type,
            is_active=recipient.is_active,
            created_at=recipient.created_at,
            updated_at=recipient.updated_at,
        )
        self._session.add(row)
        await _flush(self._session, "Recipient")
        return Recipient.model_validate(row)

    async def get(self, recipient_id: uuid.UUID, organization_id: uuid.UUID) -> Recipient | None:
        row = await self._get_row(recipient_id, organization_id)
        if row is None:
            return None
        return Recipient.model_validate(row)

    async def update(self, recipient: Recipient) -> Recipient:
        row = await self._get_row(recipient.id, recipient.organization_id)
        if row is None:
            raise ValueError(f"Recipient {recipient.id} not found")
        row.name = recipient.name
        row.type = recipient.type
        row.description = recipient.description
        row.parent_recipient_id = recipient.parent_recipient_id
        row.hierarchy_type = recipient.hierarchy_type
        row.is_active = recipient.is_active
        row.updated_at = recipient.updated_at
        await _flush(self._session, "Recipient")
        return Recipient.model_validate(row)

    async def delete(self, recipient_id: uuid.UUID, organization_id: uuid.UUID) -> None:
        row = await self._get_row(recipient_id, organization_id)
        if row is not None:
            await self._session.delete(row)
            await _flush(self._session, "Recipient")

    async def list_by_organization(
        self,
        organization_id: uuid.UUID,
        *,
        recipient_type: RecipientType | None = None,
        active_only: bool = False,
    ) -> list[Recipient]:
        stmt = select(RecipientRow).where(RecipientRow.organization_id == organization_id)
        if recipient_type is not None:
            stmt = stmt.where(RecipientRow.type == recipient_type)
        if active_only:
            stmt = stmt.where(RecipientRow.is_active.is_(True))
        stmt = stmt.order_by(RecipientRow.created_at, RecipientRow.id)
        result = await self._session.execute(stmt)
        return [Recipient.model_validate(r) for r in result.scalars()]

    async def list_children(self, parent_id: uuid.UUID, organization_id: uuid.UUID) -> list[Recipient]:
        stmt = (
            select(RecipientRow)
            .where(
                RecipientRow.organization_id == organization_id,
                RecipientRow.parent_recipient_id == parent_id,
            )
            .order_by(RecipientRow.created_at, RecipientRow.id)
        )
        result = await self._session.execute(stmt)
        return [Recipient.model_validate(r) for r in result.scalars()]


class PgDigitalAssetRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _get_row(self, asset_id: uuid.UUID, organization_id: uuid.UUID) -> DigitalAssetRow | None:
        row = await self._session.get(DigitalAssetRow, asset_id)
        if row is None or row.organization_id != organization_id:
            return None
        return row

    async def create(self, asset: DigitalAsset) -> DigitalAsset:
        row = DigitalAssetRow(
            id=asset.id,
            organization_id=asset.organization_id,
            name=asset.name,
            type=asset.type,
            description=asset.description,
            contains_personal_data=asset.contains_personal_data,
            is_active=asset.is_active,
            created_at=asset.created_at,
            updated_at=asset.updated_at,
        )
        self._session.add(row)
        await _flush(self._session, "Digital asset")
        return DigitalAsset.model_validate(row)

    async def get(self, asset_id: uuid.UUID, organization_id: uuid.UUID) -> DigitalAsset | None:
        row = await self._get_row(asset_id, organization_id)
        if row is None:
            return None
        return DigitalAsset.model_validate(row)

    async def update(self, asset: DigitalAsset) -> DigitalAsset:
        row = await self._get_row(asset.id, asset.organization_id)
        if row is None:
            raise ValueError(f"Digital asset {asset.id} not found")
        row.name = asset.name
        row.description = asset.description
        row.contains_personal_data = asset.contains_personal_data
        row.is_active = asset.is_active
        row.updated_at = asset.updated_at
        await _flush(self._session, "Digital asset")
        return DigitalAsset.model_validate(row)

    async def delete(self, asset_id: uuid.UUID, organization_id: uuid.UUID) -> None:
        row = await self._get_row(asset_id, organization_id)
        if row is not None:
            await self._session.delete(row)
            await _flush(self._session, "Digital asset")

    async def list_by_organization(self, organization_id: uuid.UUID) -> list[DigitalAsset]:
        stmt = (
            select(DigitalAssetRow)
            .where(DigitalAssetRow.organization_id == organization_id)
            .order_by(DigitalAssetRow.created_at, DigitalAssetRow.id)
        )
        result = await self._session.execute(stmt)
        return [DigitalAsset.model_validate(r) for r in result.scalars()]


# ─── Processing locations ────────────────────────────────

_LOCATION_TABLES: dict[LocationOwnerKind, tuple[type[RecipientLocationRow] | type[AssetLocationRow], str]] = {
    LocationOwnerKind.RECIPIENT: (RecipientLocationRow, "recipient_id"),
    LocationOwnerKind.ASSET: (AssetLocationRow, "digital_asset_id"),
}


class PgLocationRepository:
    """Locations of one owner kind, stored in that kind's table."""

    def __init__(self, session: AsyncSession, owner_kind: LocationOwnerKind) -> None:
        self._session = session
        self._owner_kind = owner_kind
        self._row_cls, self._owner_column = _LOCATION_TABLES[owner_kind]

    def _to_model(self, row: RecipientLocationRow | AssetLocationRow) -> ProcessingLocation:
        return ProcessingLocation(
            id=row.id,
            organization_id=row.organization_id,
            owner_kind=self._owner_kind,
            owner_id=getattr(row, self._owner_column),
            service=row.service,
            country_id=row.country_id,
            location_role=row.location_role,
            purpose_id=row.purpose_id,
            purpose_text=row.purpose_text,
            transfer_mechanism_id=row.transfer_mechanism_id,
            is_active=row.is_active,
            metadata=row.metadata_json,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    async def _get_row(
        self, location_id: uuid.UUID, organization_id: uuid.UUID
    ) -> RecipientLocationRow | AssetLocationRow | None:
        row = await self._session.get(self._row_cls, location_id)
        if row is None or row.organization_id != organization_id:
            return None
        return row

    def _ordered(self, stmt: Any) -> Any:
        return stmt.order_by(self._row_cls.created_at, self._row_cls.id)

    async def create(self, location: ProcessingLocation) -> ProcessingLocation:
        row = self._row_cls(
            id=location.id,
            organization_id=location.organization_id,
            service=location.service,
            country_id=location.country_id,
            location_role=location.location_role,
            purpose_id=location.purpose_id,
            purpose_text=location.purpose_text,
            transfer_mechanism_id=location.transfer_mechanism_id,
            is_active=location.is_active,
            metadata_json=location.metadata,
            created_at=location.created_at,
            updated_at=location.updated_at,
            **{self._owner_column: location.owner_id},
        )
        self._session.add(row)
        await _flush(self._session, "Processing location")
        return self._to_model(row)

    async def get(self, location_id: uuid.UUID, organization_id: uuid.UUID) -> ProcessingLocation | None:
        row = await self._get_row(location_id, organization_id)
        if row is None:
            return None
        return self._to_model(row)

    async def update(self, location: ProcessingLocation) -> ProcessingLocation:
        row = await self._get_row(location.id, location.organization_id)
        if row is None:
            raise ValueError(f"Processing location {location.id} not found")
        row.service = location.service
        row.country_id = location.country_id
        row.location_role = location.location_role
        row.purpose_id = location.purpose_id
        row.purpose_text = location.purpose_text
        row.transfer_mechanism_id = location.transfer_mechanism_id
        row.is_active = location.is_active
        row.metadata_json = location.metadata  # type: ignore[assignment]
        row.updated_at = location.updated_at
        await _flush(self._session, "Processing location")
        return self._to_model(row)

    async def list_for_owner(
        self,
        owner_id: uuid.UUID,
        organization_id: uuid.UUID,
        *,
        active: bool | None = True,
    ) -> list[ProcessingLocation]:
        owner_col = getattr(self._row_cls, self._owner_column)
        stmt = select(self._row_cls).where(
            self._row_cls.organization_id == organization_id,
            owner_col == owner_id,
        )
        if active is not None:
            stmt = stmt.where(self._row_cls.is_active == active)
        result = await self._session.execute(self._ordered(stmt))
        return [self._to_model(r) for r in result.scalars()]

    async def list_for_owners(
        self,
        owner_ids: Collection[uuid.UUID],
        organization_id: uuid.UUID,
    ) -> list[ProcessingLocation]:
        if not owner_ids:
            return []
        owner_col = getattr(self._row_cls, self._owner_column)
        stmt = select(self._row_cls).where(
            self._row_cls.organization_id == organization_id,
            owner_col.in_(list(owner_ids)),
            self._row_cls.is_active.is_(True),
        )
        result = await self._session.execute(self._ordered(stmt))
        return [self._to_model(r) for r in result.scalars()]

    async def list_by_country(
        self,
        organization_id: uuid.UUID,
        country_id: uuid.UUID,
        *,
        active_only: bool = True,
    ) -> list[ProcessingLocation]:
        stmt = select(self._row_cls).where(
            self._row_cls.organization_id == organization_id,
            self._row_cls.country_id == country_id,
        )
        if active_only:
            stmt = stmt.where(self._row_cls.is_active.is_(True))
        result = await self._session.execute(self._ordered(stmt))
        return [self._to_model(r) for r in result.scalars()]

    async def list_by_organization(
        self,
        organization_id: uuid.UUID,
        *,
        active_only: bool = True,
    ) -> list[ProcessingLocation]:
        stmt = select(self._row_cls).where(self._row_cls.organization_id == organization_id)
        if active_only:
            stmt = stmt.where(self._row_cls.is_active.is_(True))
        result = await self._session.execute(self._ordered(stmt))
        return [self._to_model(r) for r in result.scalars()]


# ─── Processing activities ───────────────────────────────

_LINK_TABLES: dict[LocationOwnerKind, tuple[type[ActivityRecipientRow] | type[ActivityAssetRow], str]] = {
    LocationOwnerKind.RECIPIENT: (ActivityRecipientRow, "recipient_id"),
    LocationOwnerKind.ASSET: (ActivityAssetRow, "digital_asset_id"),
}


class PgProcessingActivityRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, activity: ProcessingActivity) -> ProcessingActivity:
        row = ProcessingActivityRow(
            id=activity.id,
            organization_id=activity.organization_id,
            name=activity.name,
            description=activity.description,
            created_at=activity.created_at,
        )
        self._session.add(row)
        await _flush(self._session, "Processing activity")
        return ProcessingActivity.model_validate(row)

    async def get(self, activity_id: uuid.UUID, organization_id: uuid.UUID) -> ProcessingActivity | None:
        row = await self._session.get(ProcessingActivityRow, activity_id)
        if row is None or row.organization_id != organization_id:
            return None
        return ProcessingActivity.model_validate(row)

    async def add_link(self, link: ActivityLink) -> ActivityLink:
        row_cls, owner_column = _LINK_TABLES[link.owner_kind]
        row = row_cls(
            id=link.id,
            activity_id=link.activity_id,
            created_at=link.created_at,
            **{owner_column: link.owner_id},
        )
        self._session.add(row)
        await _flush(self._session, "Activity link")
        return link

    async def remove_link(
        self,
        activity_id: uuid.UUID,
        owner_kind: LocationOwnerKind,
        owner_id: uuid.UUID,
    ) -> bool:
        row_cls, owner_column = _LINK_TABLES[owner_kind]
        stmt = delete(row_cls).where(
            row_cls.activity_id == activity_id,
            getattr(row_cls, owner_column) == owner_id,
        )
        result = await self._session.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def list_links(self, activity_id: uuid.UUID, owner_kind: LocationOwnerKind) -> list[ActivityLink]:
        row_cls, owner_column = _LINK_TABLES[owner_kind]
        stmt = select(row_cls).where(row_cls.activity_id == activity_id).order_by(row_cls.created_at)
        result = await self._session.execute(stmt)
        return [
            ActivityLink(
                id=r.id,
                activity_id=r.activity_id,
                owner_kind=owner_kind,
                owner_id=getattr(r, owner_column),
                created_at=r.created_at,
            )
            for r in result.scalars()
        ]

    async def count_links_for_owner(self, owner_kind: LocationOwnerKind, owner_id: uuid.UUID) -> int:
        row_cls, owner_column = _LINK_TABLES[owner_kind]
        stmt = select(func.count()).select_from(row_cls).where(getattr(row_cls, owner_column) == owner_id)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())


# ─── Audit ───────────────────────────────────────────────


class PgAuditRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, event: AuditEvent) -> AuditEvent:
        row = AuditEventRow(
            id=event.id,
            organization_id=event.organization_id,
            event_type=event.event_type,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            actor_id=event.actor_id,
            description=event.description,
            details=event.details,
            occurred_at=event.occurred_at,
            previous_hash=event.previous_hash,
            event_hash=event.event_hash,
        )
        self._session.add(row)
        await self._session.flush()
        return AuditEvent.model_validate(row)

    async def get_last_hash(self, organization_id: uuid.UUID) -> str | None:
        stmt = (
            select(AuditEventRow.event_hash)
            .where(AuditEventRow.organization_id == organization_id)
            .order_by(AuditEventRow.occurred_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_chain(self, organization_id: uuid.UUID, *, limit: int = 1000) -> list[AuditEvent]:
        stmt = (
            select(AuditEventRow)
            .where(AuditEventRow.organization_id == organization_id)
            .order_by(AuditEventRow.occurred_at)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [AuditEvent.model_validate(r) for r in result.scalars()]

    async def list_by_entity(
        self,
        organization_id: uuid.UUID,
        entity_id: str,
        *,
        limit: int = 50,
    ) -> list[AuditEvent]:
        stmt = (
            select(AuditEventRow)
            .where(
                AuditEventRow.organization_id == organization_id,
                AuditEventRow.entity_id == entity_id,
            )
            .order_by(AuditEventRow.occurred_at)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [AuditEvent.model_validate(r) for r in result.scalars()]
