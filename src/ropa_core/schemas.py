"""Input models for write operations.

Services accept either an instance of these models or a plain mapping;
``parse_input`` turns pydantic failures into ``ropa_core.exceptions.ValidationError``.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from typing import Any, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ropa_core.enums import AssetType, LocationRole, RecipientType, SensitivityLevel
from ropa_core.exceptions import ValidationError

SERVICE_MIN_LENGTH = 3
SERVICE_MAX_LENGTH = 500
PURPOSE_TEXT_MAX_LENGTH = 500

# Fields of a location that may never be cleared with an explicit None.
_NON_NULLABLE_LOCATION_FIELDS = ("service", "country_id", "location_role")

M = TypeVar("M", bound=BaseModel)


def parse_input(model_cls: type[M], data: M | Mapping[str, Any]) -> M:
    """Validate ``data`` against ``model_cls``, raising the core ValidationError."""
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc


class ProcessingLocationCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    service: str = Field(min_length=SERVICE_MIN_LENGTH, max_length=SERVICE_MAX_LENGTH)
    country_id: uuid.UUID
    location_role: LocationRole
    purpose_id: uuid.UUID | None = None
    purpose_text: str | None = Field(default=None, max_length=PURPOSE_TEXT_MAX_LENGTH)
    transfer_mechanism_id: uuid.UUID | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("service")
    @classmethod
    def _strip_service(cls, value: str) -> str:
        stripped = value.strip()
        if len(stripped) < SERVICE_MIN_LENGTH:
            raise ValueError(f"Service must be at least {SERVICE_MIN_LENGTH} characters")
        return stripped


class ProcessingLocationUpdate(BaseModel):
    """Partial update; also the field set accepted by a move.

    Only fields present in the input are applied. An explicit ``None`` clears
    purpose, purpose text, mechanism or metadata; service, country and role
    cannot be cleared. Owner and organization are not accepted at all.
    """

    model_config = ConfigDict(extra="forbid")

    service: str | None = Field(default=None, min_length=SERVICE_MIN_LENGTH, max_length=SERVICE_MAX_LENGTH)
    country_id: uuid.UUID | None = None
    location_role: LocationRole | None = None
    purpose_id: uuid.UUID | None = None
    purpose_text: str | None = Field(default=None, max_length=PURPOSE_TEXT_MAX_LENGTH)
    transfer_mechanism_id: uuid.UUID | None = None
    metadata: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _reject_cleared_required_fields(self) -> ProcessingLocationUpdate:
        for name in _NON_NULLABLE_LOCATION_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class DataCategoryCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    sensitivity: SensitivityLevel = SensitivityLevel.INTERNAL
    example_fields: list[str] = Field(default_factory=list)
    data_nature_ids: list[uuid.UUID] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class DataCategoryUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    sensitivity: SensitivityLevel | None = None
    example_fields: list[str] | None = None
    data_nature_ids: list[uuid.UUID] | None = None
    metadata: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _reject_cleared_required_fields(self) -> DataCategoryUpdate:
        for name in ("name", "sensitivity", "data_nature_ids"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class SpecialCategoryOverrideRequest(BaseModel):
    """Manual special-category decision. The justification is mandatory."""

    value: bool
    justification: str = Field(min_length=1, max_length=4000)

    @field_validator("justification")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Justification is required to override the special-category classification")
        return stripped


class RecipientCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    type: RecipientType
    description: str | None = Field(default=None, max_length=2000)
    parent_recipient_id: uuid.UUID | None = None
    locations: list[ProcessingLocationCreate] = Field(default_factory=list)


class RecipientUpdate(BaseModel):
    """Partial edit of a recipient. Parent links change through ``set_parent`` only."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=255)
    type: RecipientType | None = None
    description: str | None = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def _reject_cleared_required_fields(self) -> RecipientUpdate:
        for name in ("name", "type"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class DigitalAssetCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    type: AssetType
    description: str | None = Field(default=None, max_length=2000)
    contains_personal_data: bool = False
    locations: list[ProcessingLocationCreate] = Field(default_factory=list)


class ProcessingActivityCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
