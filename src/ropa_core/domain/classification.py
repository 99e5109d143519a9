"""Special-category classification of data categories.

A category is special when any linked data nature is SPECIAL. A compliance
user may override the derived value, but only with a written justification;
downgrading a category that has special natures is accepted and kept as
audit evidence.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ropa_core.enums import AuditEventType, SensitivityLevel
from ropa_core.exceptions import ConflictError, NotFoundError, ValidationError
from ropa_core.models import (
    ComputedClassification,
    DataCategory,
    OverriddenClassification,
    SpecialCategoryDecision,
)
from ropa_core.schemas import (
    DataCategoryCreate,
    DataCategoryUpdate,
    SpecialCategoryOverrideRequest,
    parse_input,
)

if TYPE_CHECKING:
    import uuid

    from ropa_core.domain.audit_service import AuditService
    from ropa_core.models import DataNature
    from ropa_core.reference.store import ReferenceDataStore
    from ropa_core.repository.protocols import DataCategoryRepository

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200


def decide_special_category(
    natures: Iterable[DataNature],
    override: OverriddenClassification | None = None,
) -> SpecialCategoryDecision:
    """Return the computed decision, or the override when one is given."""
    if override is None:
        return ComputedClassification(value=any(n.is_special for n in natures))
    if not override.justification.strip():
        raise ValidationError(
            "A justification is required to override the special-category classification",
            {"justification": ["must not be blank"]},
        )
    return override


def compute_is_special_category(
    natures: Iterable[DataNature],
    override: OverriddenClassification | None = None,
) -> bool:
    return decide_special_category(natures, override).value


def _reject_duplicate_natures(nature_ids: list[uuid.UUID]) -> None:
    duplicates = [str(nature_id) for nature_id, count in Counter(nature_ids).items() if count > 1]
    if duplicates:
        raise ConflictError(f"Data nature linked more than once: {', '.join(duplicates)}")


class DataCategoryService:
    """Organization-scoped data categories with derived special-category flags."""

    def __init__(
        self,
        repo: DataCategoryRepository,
        reference: ReferenceDataStore,
        audit: AuditService,
    ) -> None:
        self._repo = repo
        self._reference = reference
        self._audit = audit

    async def compute_is_special_category(
        self,
        nature_ids: Iterable[uuid.UUID],
        override: OverriddenClassification | None = None,
    ) -> bool:
        natures = await self._reference.get_data_natures(nature_ids)
        return compute_is_special_category(natures, override)

    async def _load(self, category_id: uuid.UUID, organization_id: uuid.UUID) -> DataCategory:
        category = await self._repo.get(category_id, organization_id)
        if category is None:
            raise NotFoundError("DataCategory", category_id)
        return category

    async def create_category(
        self,
        organization_id: uuid.UUID,
        data: DataCategoryCreate | Mapping[str, Any],
        *,
        actor_id: str,
        override: SpecialCategoryOverrideRequest | Mapping[str, Any] | None = None,
    ) -> DataCategory:
        """Create a category, deriving its special-category flag from ``data_nature_ids``."""
        payload = parse_input(DataCategoryCreate, data)
        _reject_duplicate_natures(payload.data_nature_ids)
        natures = await self._reference.get_data_natures(payload.data_nature_ids)
        computed = compute_is_special_category(natures)

        overridden = None
        if override is not None:
            request = parse_input(SpecialCategoryOverrideRequest, override)
            overridden = OverriddenClassification(
                value=request.value, justification=request.justification, overridden_by=actor_id
            )

        category = DataCategory(
            organization_id=organization_id,
            name=payload.name,
            description=payload.description,
            sensitivity=payload.sensitivity,
            is_special_category=compute_is_special_category(natures, overridden),
            example_fields=payload.example_fields,
            data_nature_ids=payload.data_nature_ids,
            override=overridden,
            metadata=payload.metadata,
        )
        saved = await self._repo.create(category)

        details: dict[str, Any] = {
            "is_special_category": saved.is_special_category,
            "data_nature_ids": [str(n) for n in saved.data_nature_ids],
        }
        if overridden is not None:
            details.update(self._override_evidence(computed, overridden))
        await self._audit.record_event(
            organization_id=organization_id,
            event_type=AuditEventType.CATEGORY_CREATED,
            entity_type="data_category",
            entity_id=str(saved.id),
            actor_id=actor_id,
            description=f"Data category created: {saved.name}",
            details=details,
        )
        return saved

    async def get_category(self, category_id: uuid.UUID, organization_id: uuid.UUID) -> DataCategory:
        return await self._load(category_id, organization_id)

    async def list_categories(
        self,
        organization_id: uuid.UUID,
        *,
        sensitivity: SensitivityLevel | None = None,
        is_special: bool | None = None,
        search: str | None = None,
        active: bool | None = True,
        limit: int = 50,
        after: uuid.UUID | None = None,
    ) -> list[DataCategory]:
        """List categories in creation order; pass the last id seen as ``after`` for the next page."""
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", {"limit": ["out of range"]})
        return await self._repo.list_categories(
            organization_id,
            sensitivities=[sensitivity] if sensitivity is not None else None,
            is_special=is_special,
            search=search.strip() if search else None,
            active=active,
            limit=limit,
            after=after,
        )

    async def list_special_categories(self, organization_id: uuid.UUID, *, limit: int = 50) -> list[DataCategory]:
        return await self.list_categories(organization_id, is_special=True, limit=limit)

    async def list_by_min_sensitivity(
        self,
        organization_id: uuid.UUID,
        minimum: SensitivityLevel,
        *,
        limit: int = 50,
    ) -> list[DataCategory]:
        levels = [level for level in SensitivityLevel if level.rank >= minimum.rank]
        return await self._repo.list_categories(organization_id, sensitivities=levels, limit=limit)

    async def update_category(
        self,
        category_id: uuid.UUID,
        organization_id: uuid.UUID,
        data: DataCategoryUpdate | Mapping[str, Any],
        *,
        actor_id: str,
    ) -> DataCategory:
        """Apply a partial update; a changed nature set triggers a recompute."""
        changes = parse_input(DataCategoryUpdate, data).changes()
        category = await self._load(category_id, organization_id)

        nature_ids = changes.get("data_nature_ids", category.data_nature_ids)
        _reject_duplicate_natures(nature_ids)
        natures = await self._reference.get_data_natures(nature_ids)

        updated = category.model_copy(update=changes)
        updated.is_special_category = compute_is_special_category(natures, updated.override)
        updated.updated_at = datetime.now(UTC)
        saved = await self._repo.update(updated)

        if saved.is_special_category != category.is_special_category:
            logger.info(
                "Data category %s special-category flag changed %s -> %s",
                saved.id,
                category.is_special_category,
                saved.is_special_category,
            )
        await self._audit.record_event(
            organization_id=organization_id,
            event_type=AuditEventType.CATEGORY_UPDATED,
            entity_type="data_category",
            entity_id=str(saved.id),
            actor_id=actor_id,
            description=f"Data category updated: {saved.name}",
            details={
                "changed_fields": sorted(changes),
                "is_special_category": saved.is_special_category,
            },
        )
        return saved

    async def set_override(
        self,
        category_id: uuid.UUID,
        organization_id: uuid.UUID,
        request: SpecialCategoryOverrideRequest | Mapping[str, Any],
        *,
        actor_id: str,
    ) -> DataCategory:
        """Force the special-category flag. The justification is stored as evidence."""
        payload = parse_input(SpecialCategoryOverrideRequest, request)
        category = await self._load(category_id, organization_id)
        natures = await self._reference.get_data_natures(category.data_nature_ids)
        computed = compute_is_special_category(natures)

        override = OverriddenClassification(
            value=payload.value, justification=payload.justification, overridden_by=actor_id
        )
        updated = category.model_copy(
            update={
                "override": override,
                "is_special_category": compute_is_special_category(natures, override),
                "updated_at": datetime.now(UTC),
            }
        )
        saved = await self._repo.update(updated)

        logger.info("Special-category override set on %s to %s by %s", saved.id, override.value, actor_id)
        await self._audit.record_event(
            organization_id=organization_id,
            event_type=AuditEventType.CATEGORY_OVERRIDE_SET,
            entity_type="data_category",
            entity_id=str(saved.id),
            actor_id=actor_id,
            description=f"Special-category override set: {saved.name}",
            details=self._override_evidence(computed, override),
        )
        return saved

    async def clear_override(
        self,
        category_id: uuid.UUID,
        organization_id: uuid.UUID,
        *,
        actor_id: str,
    ) -> DataCategory:
        """Return to the derived value. A no-op when no override is set."""
        category = await self._load(category_id, organization_id)
        if category.override is None:
            return category

        natures = await self._reference.get_data_natures(category.data_nature_ids)
        updated = category.model_copy(
            update={
                "override": None,
                "is_special_category": compute_is_special_category(natures),
                "updated_at": datetime.now(UTC),
            }
        )
        saved = await self._repo.update(updated)

        await self._audit.record_event(
            organization_id=organization_id,
            event_type=AuditEventType.CATEGORY_OVERRIDE_CLEARED,
            entity_type="data_category",
            entity_id=str(saved.id),
            actor_id=actor_id,
            description=f"Special-category override cleared: {saved.name}",
            details={"is_special_category": saved.is_special_category},
        )
        return saved

    async def deactivate_category(
        self,
        category_id: uuid.UUID,
        organization_id: uuid.UUID,
        *,
        actor_id: str,
    ) -> DataCategory:
        """Soft-delete. Calling it on an inactive category changes nothing."""
        category = await self._load(category_id, organization_id)
        if not category.is_active:
            return category

        saved = await self._repo.update(
            category.model_copy(update={"is_active": False, "updated_at": datetime.now(UTC)})
        )
        await self._audit.record_event(
            organization_id=organization_id,
            event_type=AuditEventType.CATEGORY_DEACTIVATED,
            entity_type="data_category",
            entity_id=str(saved.id),
            actor_id=actor_id,
            description=f"Data category deactivated: {saved.name}",
        )
        return saved

    @staticmethod
    def _override_evidence(computed: bool, override: OverriddenClassification) -> dict[str, Any]:
        downgrade = computed and not override.value
        if downgrade:
            logger.warning(
                "Special-category downgrade by %s despite special data natures: %s",
                override.overridden_by,
                override.justification,
            )
        return {
            "computed_value": computed,
            "override_value": override.value,
            "justification": override.justification,
            "overridden_by": override.overridden_by,
            "overridden_at": override.overridden_at.isoformat(),
            "downgrade": downgrade,
        }
