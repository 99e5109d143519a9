"""SQLAlchemy 2.0 ORM mapped classes for the ROPA compliance core."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

_FK_ORGANIZATION = "organizations.id"
_FK_COUNTRY = "countries.id"
_FK_RECIPIENT = "recipients.id"
_FK_ASSET = "digital_assets.id"
_FK_ACTIVITY = "processing_activities.id"
_CASCADE_ALL_DELETE_ORPHAN = "all, delete-orphan"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


# ─── Global reference data ───────────────────────────────


class CountryRow(Base):
    __tablename__ = "countries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    iso_code2: Mapped[str] = mapped_column(String(2), nullable=False, unique=True)
    iso_code3: Mapped[str | None] = mapped_column(String(3), unique=True)
    jurisdiction_tags: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)


class DataNatureRow(Base):
    __tablename__ = "data_natures"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, default="")
    classification: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    gdpr_article_ref: Mapped[str] = mapped_column(String(50), default="")


class TransferMechanismRow(Base):
    __tablename__ = "transfer_mechanisms"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    gdpr_article_ref: Mapped[str] = mapped_column(String(50), default="")
    category: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    is_derogation: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_adequacy: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_documentation: Mapped[bool] = mapped_column(Boolean, default=False)


# ─── Tenants ─────────────────────────────────────────────


class OrganizationRow(Base):
    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    headquarters_country_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey(_FK_COUNTRY, ondelete="RESTRICT"), index=True
    )


class PurposeRow(Base):
    __tablename__ = "purposes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey(_FK_ORGANIZATION, ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)


# ─── Classification ──────────────────────────────────────


class DataCategoryRow(Base):
    __tablename__ = "data_categories"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey(_FK_ORGANIZATION, ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    sensitivity: Mapped[str] = mapped_column(String(20), nullable=False)
    is_special_category: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    example_fields: Mapped[list[str] | None] = mapped_column(JSONB, default=list)
    override: Mapped[dict[str, object] | None] = mapped_column(JSONB)
    metadata_json: Mapped[dict[str, object] | None] = mapped_column("metadata", JSONB, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    nature_links: Mapped[list[DataCategoryNatureRow]] = relationship(
        back_populates="data_category", cascade=_CASCADE_ALL_DELETE_ORPHAN, lazy="selectin"
    )

    __table_args__ = (
        Index("ix_data_categories_org_special", "organization_id", "is_special_category"),
        Index("ix_data_categories_org_sensitivity", "organization_id", "sensitivity"),
    )


class DataCategoryNatureRow(Base):
    """Association row; unique per (category, nature)."""

    __tablename__ = "data_category_natures"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    data_category_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("data_categories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    data_nature_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("data_natures.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    data_category: Mapped[DataCategoryRow] = relationship(back_populates="nature_links")

    __table_args__ = (UniqueConstraint("data_category_id", "data_nature_id", name="uq_category_nature"),)


# ─── Recipients and assets ───────────────────────────────


class RecipientRow(Base):
    __tablename__ = "recipients"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey(_FK_ORGANIZATION, ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    parent_recipient_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey(_FK_RECIPIENT, ondelete="SET NULL"))
    hierarchy_type: Mapped[str | None] = mapped_column(String(30))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (Index("ix_recipients_org_parent", "organization_id", "parent_recipient_id"),)


class DigitalAssetRow(Base):
    __tablename__ = "digital_assets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey(_FK_ORGANIZATION, ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    contains_personal_data: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class _LocationColumns:
    """Columns shared by the recipient and asset location tables."""

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey(_FK_ORGANIZATION, ondelete="CASCADE"), nullable=False, index=True
    )
    service: Mapped[str] = mapped_column(String(500), nullable=False)
    country_id: Mapped[uuid.UUID] = mapped_column(ForeignKey(_FK_COUNTRY, ondelete="RESTRICT"), nullable=False)
    location_role: Mapped[str] = mapped_column(String(20), nullable=False)
    purpose_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("purposes.id", ondelete="SET NULL"))
    purpose_text: Mapped[str | None] = mapped_column(String(500))
    transfer_mechanism_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("transfer_mechanisms.id", ondelete="RESTRICT")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    metadata_json: Mapped[dict[str, object] | None] = mapped_column("metadata", JSONB)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class RecipientLocationRow(_LocationColumns, Base):
    __tablename__ = "recipient_processing_locations"

    recipient_id: Mapped[uuid.UUID] = mapped_column(ForeignKey(_FK_RECIPIENT, ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        Index("ix_recipient_locations_owner_active", "recipient_id", "is_active"),
        Index("ix_recipient_locations_org_country", "organization_id", "country_id"),
    )


class AssetLocationRow(_LocationColumns, Base):
    __tablename__ = "asset_processing_locations"

    digital_asset_id: Mapped[uuid.UUID] = mapped_column(ForeignKey(_FK_ASSET, ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        Index("ix_asset_locations_owner_active", "digital_asset_id", "is_active"),
        Index("ix_asset_locations_org_country", "organization_id", "country_id"),
    )


# ─── Processing activities ───────────────────────────────


class ProcessingActivityRow(Base):
    __tablename__ = "processing_activities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey(_FK_ORGANIZATION, ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class ActivityRecipientRow(Base):
    """Deleting an activity removes its links; a linked recipient cannot be deleted."""

    __tablename__ = "activity_recipients"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    activity_id: Mapped[uuid.UUID] = mapped_column(ForeignKey(_FK_ACTIVITY, ondelete="CASCADE"), nullable=False)
    recipient_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey(_FK_RECIPIENT, ondelete="RESTRICT"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (UniqueConstraint("activity_id", "recipient_id", name="uq_activity_recipient"),)


class ActivityAssetRow(Base):
    __tablename__ = "activity_assets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    activity_id: Mapped[uuid.UUID] = mapped_column(ForeignKey(_FK_ACTIVITY, ondelete="CASCADE"), nullable=False)
    digital_asset_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey(_FK_ASSET, ondelete="RESTRICT"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (UniqueConstraint("activity_id", "digital_asset_id", name="uq_activity_asset"),)


# ─── Audit ───────────────────────────────────────────────


class AuditEventRow(Base):
    """Append-only change records, hash-chained per organization."""

    __tablename__ = "audit_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey(_FK_ORGANIZATION, ondelete="CASCADE"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    actor_id: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    details: Mapped[dict[str, object] | None] = mapped_column(JSONB, default=dict)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    previous_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    event_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (Index("ix_audit_events_org_occurred", "organization_id", "occurred_at"),)
