"""Pydantic V2 domain models for the ROPA compliance core."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from ropa_core.enums import (
    AssetType,
    DataNatureClassification,
    HierarchyType,
    JurisdictionTag,
    LocationOwnerKind,
    LocationRole,
    RecipientType,
    SensitivityLevel,
    TransferMechanismCategory,
    TransferRiskLevel,
    TransferRiskReason,
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ─── Reference data (global, read-only) ──────────────────


class Country(BaseModel):
    """A country and its legal-framework membership tags."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    name: str = Field(min_length=1, max_length=200)
    iso_code2: str = Field(min_length=2, max_length=2)
    iso_code3: str | None = Field(default=None, min_length=3, max_length=3)
    jurisdiction_tags: frozenset[JurisdictionTag] = Field(default_factory=frozenset)

    def has_tag(self, tag: JurisdictionTag) -> bool:
        return tag in self.jurisdiction_tags

    @property
    def in_eea(self) -> bool:
        """EU members are always EEA members; either tag puts a country under GDPR directly."""
        return bool(self.jurisdiction_tags & {JurisdictionTag.EU, JurisdictionTag.EEA})


class DataNature(BaseModel):
    """Atomic data concept, marked SPECIAL (Art. 9/10) or NON_SPECIAL."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(default="")
    classification: DataNatureClassification
    gdpr_article_ref: str = Field(default="")

    @property
    def is_special(self) -> bool:
        return self.classification == DataNatureClassification.SPECIAL


class TransferMechanism(BaseModel):
    """Legal safeguard permitting a transfer to a third country."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(default="")
    gdpr_article_ref: str = Field(default="")
    category: TransferMechanismCategory
    is_derogation: bool = False
    requires_adequacy: bool = False
    requires_documentation: bool = False


# ─── Organization-scoped records ─────────────────────────


class Organization(BaseModel):
    """A tenant. Its headquarters country is the reference jurisdiction for transfers."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    name: str = Field(min_length=1, max_length=255)
    headquarters_country_id: uuid.UUID | None = None


class Purpose(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    organization_id: uuid.UUID
    name: str = Field(min_length=1, max_length=255)


class ComputedClassification(BaseModel):
    """Special-category flag derived from the linked data natures."""

    kind: Literal["computed"] = "computed"
    value: bool


class OverriddenClassification(BaseModel):
    """Special-category flag set by a compliance user, with mandatory justification."""

    model_config = ConfigDict(from_attributes=True)

    kind: Literal["overridden"] = "overridden"
    value: bool
    justification: str = Field(min_length=1)
    overridden_by: str = Field(min_length=1, max_length=200)
    overridden_at: datetime = Field(default_factory=_utcnow)


SpecialCategoryDecision = Annotated[
    ComputedClassification | OverriddenClassification,
    Field(discriminator="kind"),
]


class DataCategory(BaseModel):
    """Organization-owned bucket of personal data, linked to data natures."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    organization_id: uuid.UUID
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    sensitivity: SensitivityLevel = SensitivityLevel.INTERNAL
    is_special_category: bool = False
    example_fields: list[str] = Field(default_factory=list)
    data_nature_ids: list[uuid.UUID] = Field(default_factory=list)
    override: OverriddenClassification | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def decision(self) -> SpecialCategoryDecision:
        if self.override is not None:
            return self.override
        return ComputedClassification(value=self.is_special_category)

    @property
    def override_metadata(self) -> dict[str, Any] | None:
        """Flat override record as handed to the presentation layer."""
        if self.override is None:
            return None
        return {
            "overridden": True,
            "value": self.override.value,
            "justification": self.override.justification,
            "overridden_at": self.override.overridden_at,
            "overridden_by": self.override.overridden_by,
        }


class DataCategoryNatureLink(BaseModel):
    """Junction row between a data category and a data nature."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    data_category_id: uuid.UUID
    data_nature_id: uuid.UUID
    created_at: datetime = Field(default_factory=_utcnow)


class Recipient(BaseModel):
    """Party receiving or processing data. Parent links form a tree per organization."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    organization_id: uuid.UUID
    name: str = Field(min_length=1, max_length=255)
    type: RecipientType
    description: str | None = None
    parent_recipient_id: uuid.UUID | None = None
    hierarchy_type: HierarchyType | None = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class DigitalAsset(BaseModel):
    """A system that hosts or processes personal data."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    organization_id: uuid.UUID
    name: str = Field(min_length=1, max_length=255)
    type: AssetType
    description: str | None = None
    contains_personal_data: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class ProcessingLocation(BaseModel):
    """Where and how a recipient or digital asset handles data.

    Never mutated in place when its country changes: the old record is
    deactivated and a new one created, so history stays truthful.
    """

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    organization_id: uuid.UUID
    owner_kind: LocationOwnerKind
    owner_id: uuid.UUID
    service: str = Field(min_length=1, max_length=500)
    country_id: uuid.UUID
    location_role: LocationRole
    purpose_id: uuid.UUID | None = None
    purpose_text: str | None = None
    transfer_mechanism_id: uuid.UUID | None = None
    is_active: bool = True
    metadata: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class LocationWarning(BaseModel):
    """Soft-validation finding on a location; never blocks a write."""

    location_id: uuid.UUID
    owner_kind: LocationOwnerKind
    owner_id: uuid.UUID
    message: str


class ProcessingActivity(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    organization_id: uuid.UUID
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class ActivityLink(BaseModel):
    """Junction row between an activity and a recipient or digital asset."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    activity_id: uuid.UUID
    owner_kind: LocationOwnerKind
    owner_id: uuid.UUID
    created_at: datetime = Field(default_factory=_utcnow)


# ─── Hierarchy results ───────────────────────────────────


class RecipientNode(BaseModel):
    """A recipient reached during traversal; depth 0 is the queried node."""

    recipient: Recipient
    depth: int = Field(ge=0)


class ChainLocations(BaseModel):
    """Active locations of one recipient in an ancestor chain."""

    recipient_id: uuid.UUID
    recipient_name: str
    depth: int = Field(ge=0)
    locations: list[ProcessingLocation] = Field(default_factory=list)


class HierarchyHealthReport(BaseModel):
    organization_id: uuid.UUID
    total_recipients: int = 0
    orphaned_recipient_ids: list[uuid.UUID] = Field(default_factory=list)
    depth_violations: list[uuid.UUID] = Field(default_factory=list)
    circular_recipient_ids: list[uuid.UUID] = Field(default_factory=list)

    @property
    def total_issues(self) -> int:
        return len(self.orphaned_recipient_ids) + len(self.depth_violations) + len(self.circular_recipient_ids)

    @property
    def is_healthy(self) -> bool:
        return self.total_issues == 0


class ThirdCountryRecipient(BaseModel):
    """An active recipient with at least one active location in a third country."""

    recipient: Recipient
    countries: list[Country] = Field(default_factory=list)


class RecipientStatistics(BaseModel):
    organization_id: uuid.UUID
    total_recipients: int = 0
    by_type: dict[RecipientType, int] = Field(default_factory=lambda: dict.fromkeys(RecipientType, 0))
    with_parent: int = 0
    without_parent: int = 0
    active_recipients: int = 0
    inactive_recipients: int = 0
    third_country_recipients: int = 0


# ─── Transfer reports ────────────────────────────────────


class TransferRisk(BaseModel):
    """Risk assessment of a single location relative to the home jurisdiction."""

    level: TransferRiskLevel
    reason: TransferRiskReason
    mechanism: TransferMechanism | None = None
    mitigating_mechanism: TransferMechanism | None = None

    @property
    def documentation_required(self) -> bool:
        return self.mechanism is not None and self.mechanism.requires_documentation


class Transfer(BaseModel):
    """A detected cross-border flow from the organization to one location."""

    organization_country: Country
    owner_kind: LocationOwnerKind
    owner_id: uuid.UUID
    owner_name: str
    location: ProcessingLocation
    destination_country: Country
    depth: int = Field(default=0, ge=0)
    transfer_risk: TransferRisk

    @property
    def location_id(self) -> uuid.UUID:
        return self.location.id

    @property
    def recipient_id(self) -> uuid.UUID | None:
        return self.owner_id if self.owner_kind == LocationOwnerKind.RECIPIENT else None

    @property
    def asset_id(self) -> uuid.UUID | None:
        return self.owner_id if self.owner_kind == LocationOwnerKind.ASSET else None


class RiskDistribution(BaseModel):
    none: int = 0
    low: int = 0
    medium: int = 0
    high: int = 0
    critical: int = 0

    def add(self, level: TransferRiskLevel) -> None:
        setattr(self, level.value, getattr(self, level.value) + 1)

    @property
    def total(self) -> int:
        return self.none + self.low + self.medium + self.high + self.critical


class CountryLocationCount(BaseModel):
    country: Country
    location_count: int = Field(ge=0)


class TransferSummary(BaseModel):
    total_transfers: int = 0
    total_recipients: int = 0
    total_assets: int = 0
    recipients_with_transfers: int = 0
    assets_with_transfers: int = 0
    risk_distribution: RiskDistribution = Field(default_factory=RiskDistribution)
    countries_involved: list[CountryLocationCount] = Field(default_factory=list)


class ActivityTransferAnalysis(BaseModel):
    activity_id: uuid.UUID
    activity_name: str
    organization_country: Country
    recipient_transfers: list[Transfer] = Field(default_factory=list)
    asset_transfers: list[Transfer] = Field(default_factory=list)
    summary: TransferSummary = Field(default_factory=TransferSummary)
