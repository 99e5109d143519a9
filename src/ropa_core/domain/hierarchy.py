"""Recipient hierarchy: parent links, traversal and structural rules.

Parent links are stored by id. Traversals load the organization's
recipients into an id-keyed arena and walk it iteratively, visiting each
recipient at most once, so a corrupt link can never cause unbounded
recursion and no reachable recipient is ever cut off. Cycles and depth
limits are enforced when a parent is set; the traversal-time check only
reports corruption.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from opentelemetry import trace

from ropa_core import cancellation
from ropa_core.domain.jurisdiction import is_third_country
from ropa_core.enums import AuditEventType, HierarchyType, LocationOwnerKind, RecipientType
from ropa_core.exceptions import ConflictError, CycleError, NotFoundError, ValidationError
from ropa_core.models import (
    ChainLocations,
    HierarchyHealthReport,
    Recipient,
    RecipientNode,
    RecipientStatistics,
    ThirdCountryRecipient,
)
from ropa_core.schemas import RecipientCreate, RecipientUpdate, parse_input
from ropa_core.settings import ComplianceSettings

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable

    from ropa_core.cancellation import CancellationToken
    from ropa_core.domain.audit_service import AuditService
    from ropa_core.domain.locations import LocationRegistry
    from ropa_core.models import Country
    from ropa_core.reference.store import ReferenceDataStore
    from ropa_core.repository.protocols import ProcessingActivityRepository, RecipientRepository, UnitOfWork

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True)
class HierarchyRule:
    """Which parents a recipient type accepts, and how deep it may sit."""

    allowed_parent_types: frozenset[RecipientType] = frozenset()
    max_depth: int = 0
    hierarchy_type: HierarchyType | None = None

    @property
    def can_have_parent(self) -> bool:
        return bool(self.allowed_parent_types)


_NO_PARENT = HierarchyRule()

HIERARCHY_RULES: dict[RecipientType, HierarchyRule] = {
    RecipientType.PROCESSOR: _NO_PARENT,
    RecipientType.SUB_PROCESSOR: HierarchyRule(
        allowed_parent_types=frozenset({RecipientType.PROCESSOR, RecipientType.SUB_PROCESSOR}),
        max_depth=5,
        hierarchy_type=HierarchyType.PROCESSOR_CHAIN,
    ),
    RecipientType.JOINT_CONTROLLER: _NO_PARENT,
    RecipientType.SERVICE_PROVIDER: _NO_PARENT,
    RecipientType.SEPARATE_CONTROLLER: _NO_PARENT,
    RecipientType.PUBLIC_AUTHORITY: _NO_PARENT,
    RecipientType.INTERNAL_DEPARTMENT: HierarchyRule(
        allowed_parent_types=frozenset({RecipientType.INTERNAL_DEPARTMENT}),
        max_depth=10,
        hierarchy_type=HierarchyType.ORGANIZATIONAL,
    ),
}

# Types that are meaningless without a parent.
_REQUIRES_PARENT = frozenset({RecipientType.SUB_PROCESSOR})


# ─── Arena traversal ─────────────────────────────────────


def children_index(recipients: Iterable[Recipient]) -> dict[uuid.UUID, list[Recipient]]:
    index: dict[uuid.UUID, list[Recipient]] = {}
    for recipient in recipients:
        if recipient.parent_recipient_id is not None:
            index.setdefault(recipient.parent_recipient_id, []).append(recipient)
    return index


def walk_descendants(
    root: Recipient,
    children: Mapping[uuid.UUID, list[Recipient]],
    *,
    token: CancellationToken | None = None,
) -> list[RecipientNode]:
    """Breadth-first walk from ``root`` (depth 0); every node is returned once."""
    nodes = [RecipientNode(recipient=root, depth=0)]
    visited = {root.id}
    queue: deque[tuple[Recipient, int]] = deque([(root, 0)])

    while queue:
        cancellation.check(token, "descendant traversal")
        current, depth = queue.popleft()
        for child in children.get(current.id, []):
            if child.id in visited:
                logger.error("Recipient hierarchy corrupt: %s reached twice below %s", child.id, root.id)
                continue
            visited.add(child.id)
            nodes.append(RecipientNode(recipient=child, depth=depth + 1))
            queue.append((child, depth + 1))
    return nodes


def walk_ancestors(recipient: Recipient, arena: Mapping[uuid.UUID, Recipient]) -> tuple[list[Recipient], bool]:
    """Ancestors nearest first, and whether the walk ran into a loop."""
    chain: list[Recipient] = []
    seen = {recipient.id}
    parent_id = recipient.parent_recipient_id
    while parent_id is not None:
        if parent_id in seen:
            return chain, True
        parent = arena.get(parent_id)
        if parent is None:
            break
        seen.add(parent_id)
        chain.append(parent)
        parent_id = parent.parent_recipient_id
    return chain, False


class RecipientService:
    """Recipients of an organization and the tree formed by their parent links."""

    def __init__(
        self,
        repo: RecipientRepository,
        locations: LocationRegistry,
        activities: ProcessingActivityRepository,
        reference: ReferenceDataStore,
        audit: AuditService,
        unit_of_work: UnitOfWork,
        settings: ComplianceSettings | None = None,
    ) -> None:
        self._repo = repo
        self._locations = locations
        self._activities = activities
        self._reference = reference
        self._audit = audit
        self._uow = unit_of_work
        self._settings = settings or ComplianceSettings()

    @property
    def max_depth(self) -> int:
        return self._settings.hierarchy_max_depth

    def depth_limit(self, recipient_type: RecipientType) -> int:
        """Deepest position a recipient of this type may hold."""
        return min(HIERARCHY_RULES[recipient_type].max_depth, self.max_depth)

    async def _load(self, recipient_id: uuid.UUID, organization_id: uuid.UUID) -> Recipient:
        recipient = await self._repo.get(recipient_id, organization_id)
        if recipient is None:
            raise NotFoundError("Recipient", recipient_id)
        return recipient

    async def _arena(self, organization_id: uuid.UUID) -> dict[uuid.UUID, Recipient]:
        recipients = await self._repo.list_by_organization(organization_id)
        return {r.id: r for r in recipients}

    # ─── Reads ────────────────────────────────────────────

    async def get_recipient(self, recipient_id: uuid.UUID, organization_id: uuid.UUID) -> Recipient:
        return await self._load(recipient_id, organization_id)

    async def list_recipients(
        self,
        organization_id: uuid.UUID,
        *,
        recipient_type: RecipientType | None = None,
        active_only: bool = False,
    ) -> list[Recipient]:
        return await self._repo.list_by_organization(
            organization_id, recipient_type=recipient_type, active_only=active_only
        )

    async def list_children(self, recipient_id: uuid.UUID, organization_id: uuid.UUID) -> list[Recipient]:
        """Immediate children only."""
        await self._load(recipient_id, organization_id)
        return await self._repo.list_children(recipient_id, organization_id)

    async def get_descendant_tree(
        self,
        recipient_id: uuid.UUID,
        organization_id: uuid.UUID,
        *,
        token: CancellationToken | None = None,
    ) -> list[RecipientNode]:
        """The recipient (depth 0) and everything below it, each exactly once."""
        with tracer.start_as_current_span("recipient.descendant_tree") as span:
            span.set_attribute("organization.id", str(organization_id))
            root = await self._load(recipient_id, organization_id)
            arena = await self._arena(organization_id)
            nodes = walk_descendants(root, children_index(arena.values()), token=token)
            span.set_attribute("recipient.descendants", len(nodes) - 1)
            return nodes

    async def get_ancestor_chain(self, recipient_id: uuid.UUID, organization_id: uuid.UUID) -> list[Recipient]:
        """Parents up to the root, nearest first."""
        recipient = await self._load(recipient_id, organization_id)
        chain, cyclic = walk_ancestors(recipient, await self._arena(organization_id))
        if cyclic:
            logger.error("Recipient hierarchy corrupt: loop above recipient %s", recipient_id)
        return chain

    async def calculate_depth(self, recipient_id: uuid.UUID, organization_id: uuid.UUID) -> int:
        return len(await self.get_ancestor_chain(recipient_id, organization_id))

    async def check_circular_reference(
        self,
        candidate_parent_id: uuid.UUID,
        recipient_id: uuid.UUID,
        organization_id: uuid.UUID,
    ) -> bool:
        """True when making ``candidate_parent_id`` the parent of ``recipient_id`` closes a loop."""
        if candidate_parent_id == recipient_id:
            return True
        chain = await self.get_ancestor_chain(candidate_parent_id, organization_id)
        return any(ancestor.id == recipient_id for ancestor in chain)

    async def get_locations_with_parent_chain(
        self,
        recipient_id: uuid.UUID,
        organization_id: uuid.UUID,
    ) -> list[ChainLocations]:
        """Active locations of the recipient (depth 0) and of each ancestor."""
        recipient = await self._load(recipient_id, organization_id)
        chain = [recipient, *await self.get_ancestor_chain(recipient_id, organization_id)]
        result = []
        for depth, member in enumerate(chain):
            locations = await self._locations.list_active_for_owner(member.id, organization_id)
            result.append(
                ChainLocations(recipient_id=member.id, recipient_name=member.name, depth=depth, locations=locations)
            )
        return result

    async def check_hierarchy_health(self, organization_id: uuid.UUID) -> HierarchyHealthReport:
        arena = await self._arena(organization_id)
        report = HierarchyHealthReport(organization_id=organization_id, total_recipients=len(arena))
        for recipient in arena.values():
            if recipient.type in _REQUIRES_PARENT and recipient.parent_recipient_id is None:
                report.orphaned_recipient_ids.append(recipient.id)
            if recipient.parent_recipient_id is None:
                continue
            chain, cyclic = walk_ancestors(recipient, arena)
            if cyclic:
                report.circular_recipient_ids.append(recipient.id)
                continue
            if len(chain) > self.depth_limit(recipient.type):
                report.depth_violations.append(recipient.id)

        if not report.is_healthy:
            logger.warning(
                "Hierarchy health for organization %s: %d issue(s) in %d recipients",
                organization_id,
                report.total_issues,
                report.total_recipients,
            )
        return report

    async def _third_country_destinations(self, organization_id: uuid.UUID) -> dict[uuid.UUID, list[Country]]:
        destinations: dict[uuid.UUID, list[Country]] = {}
        for location in await self._locations.list_active_for_organization(organization_id):
            country = await self._reference.get_country(location.country_id)
            if not is_third_country(country):
                continue
            countries = destinations.setdefault(location.owner_id, [])
            if country not in countries:
                countries.append(country)
        return destinations

    async def get_third_country_recipients(self, organization_id: uuid.UUID) -> list[ThirdCountryRecipient]:
        """Active recipients processing data in a third country, each with the countries involved."""
        destinations = await self._third_country_destinations(organization_id)
        recipients = await self._repo.list_by_organization(organization_id, active_only=True)
        return [
            ThirdCountryRecipient(recipient=r, countries=destinations[r.id]) for r in recipients if r.id in destinations
        ]

    async def get_recipient_statistics(self, organization_id: uuid.UUID) -> RecipientStatistics:
        recipients = await self._repo.list_by_organization(organization_id)
        destinations = await self._third_country_destinations(organization_id)
        stats = RecipientStatistics(organization_id=organization_id, total_recipients=len(recipients))
        for recipient in recipients:
            stats.by_type[recipient.type] += 1
            if recipient.parent_recipient_id is None:
                stats.without_parent += 1
            else:
                stats.with_parent += 1
            if recipient.is_active:
                stats.active_recipients += 1
                if recipient.id in destinations:
                    stats.third_country_recipients += 1
            else:
                stats.inactive_recipients += 1
        return stats

    # ─── Writes ───────────────────────────────────────────

    @staticmethod
    def _check_parent_type(recipient_type: RecipientType, parent: Recipient) -> None:
        rule = HIERARCHY_RULES[recipient_type]
        if not rule.can_have_parent:
            raise ValidationError(
                f"Recipient type {recipient_type} cannot have a parent",
                {"parent_recipient_id": ["not allowed for this recipient type"]},
            )
        if parent.type not in rule.allowed_parent_types:
            allowed = ", ".join(sorted(rule.allowed_parent_types))
            raise ValidationError(
                f"Parent type {parent.type} is not allowed for {recipient_type}; allowed: {allowed}",
                {"parent_recipient_id": [f"parent must be one of: {allowed}"]},
            )

    def _check_placement(
        self,
        recipient: Recipient,
        parent: Recipient | None,
        arena: Mapping[uuid.UUID, Recipient],
    ) -> None:
        """Validate ``recipient`` under ``parent``, including the depth of everything below it."""
        base_depth = 0
        if parent is not None:
            self._check_parent_type(recipient.type, parent)
            ancestors, _ = walk_ancestors(parent, arena)
            base_depth = len(ancestors) + 1

        limit = self.depth_limit(recipient.type)
        if base_depth > limit:
            raise ValidationError(
                f"Depth {base_depth} exceeds the maximum of {limit} for {recipient.type}",
                {"parent_recipient_id": [f"hierarchy too deep ({base_depth} > {limit})"]},
            )
        for node in walk_descendants(recipient, children_index(arena.values()))[1:]:
            depth = base_depth + node.depth
            limit = self.depth_limit(node.recipient.type)
            if depth > limit:
                raise ValidationError(
                    f"Placing {recipient.name} here puts descendant {node.recipient.name} at depth {depth}, "
                    f"which exceeds the maximum of {limit} for {node.recipient.type}",
                    {"parent_recipient_id": [f"subtree too deep ({depth} > {limit})"]},
                )

    async def create_recipient(
        self,
        organization_id: uuid.UUID,
        data: RecipientCreate | Mapping[str, Any],
        *,
        actor_id: str,
    ) -> Recipient:
        """Create a recipient and its initial locations as one unit.

        If any location is rejected, the recipient is not stored either.
        """
        payload = parse_input(RecipientCreate, data)
        parent = None
        if payload.parent_recipient_id is not None:
            parent = await self._load(payload.parent_recipient_id, organization_id)

        recipient = Recipient(
            organization_id=organization_id,
            name=payload.name,
            type=payload.type,
            description=payload.description,
            parent_recipient_id=payload.parent_recipient_id,
            hierarchy_type=HIERARCHY_RULES[payload.type].hierarchy_type if parent else None,
        )
        if parent is not None:
            self._check_placement(recipient, parent, await self._arena(organization_id))

        async with self._uow.transaction():
            saved = await self._repo.create(recipient)
            for location in payload.locations:
                await self._locations.create_location(saved.id, organization_id, location, actor_id=actor_id)
            await self._audit.record_event(
                organization_id=organization_id,
                event_type=AuditEventType.RECIPIENT_CREATED,
                entity_type="recipient",
                entity_id=str(saved.id),
                actor_id=actor_id,
                description=f"Recipient created: {saved.name}",
                details={"type": saved.type, "locations": len(payload.locations)},
            )

        logger.info("Created recipient %s (%s) with %d location(s)", saved.id, saved.type, len(payload.locations))
        return saved

    async def update_recipient(
        self,
        recipient_id: uuid.UUID,
        organization_id: uuid.UUID,
        data: RecipientUpdate | Mapping[str, Any],
        *,
        actor_id: str,
    ) -> Recipient:
        """Edit name, description or type.

        A type change is checked against the current parent, the depth of
        the subtree and the parent types the children accept.
        """
        payload = parse_input(RecipientUpdate, data)
        recipient = await self._load(recipient_id, organization_id)
        changes = {k: v for k, v in payload.changes().items() if getattr(recipient, k) != v}
        if not changes:
            return recipient

        updated = recipient.model_copy(update={**changes, "updated_at": datetime.now(UTC)})
        if "type" in changes:
            arena = await self._arena(organization_id)
            parent = arena.get(recipient.parent_recipient_id) if recipient.parent_recipient_id else None
            self._check_placement(updated, parent, arena)
            for child in children_index(arena.values()).get(recipient_id, []):
                if updated.type not in HIERARCHY_RULES[child.type].allowed_parent_types:
                    raise ValidationError(
                        f"Child {child.name} ({child.type}) cannot have a {updated.type} parent",
                        {"type": [f"not accepted as parent by {child.type}"]},
                    )
            hierarchy_type = HIERARCHY_RULES[updated.type].hierarchy_type if parent else None
            updated = updated.model_copy(update={"hierarchy_type": hierarchy_type})

        saved = await self._repo.update(updated)
        await self._audit.record_event(
            organization_id=organization_id,
            event_type=AuditEventType.RECIPIENT_UPDATED,
            entity_type="recipient",
            entity_id=str(saved.id),
            actor_id=actor_id,
            description=f"Recipient updated: {saved.name}",
            details={"changed_fields": sorted(changes)},
        )
        return saved

    async def deactivate_recipient(
        self,
        recipient_id: uuid.UUID,
        organization_id: uuid.UUID,
        *,
        actor_id: str,
    ) -> Recipient:
        """Take a recipient out of transfer analysis. Repeating the call returns it unchanged."""
        recipient = await self._load(recipient_id, organization_id)
        if not recipient.is_active:
            logger.debug("Recipient %s already inactive", recipient_id)
            return recipient

        saved = await self._repo.update(
            recipient.model_copy(update={"is_active": False, "updated_at": datetime.now(UTC)})
        )
        await self._audit.record_event(
            organization_id=organization_id,
            event_type=AuditEventType.RECIPIENT_DEACTIVATED,
            entity_type="recipient",
            entity_id=str(saved.id),
            actor_id=actor_id,
            description=f"Recipient deactivated: {saved.name}",
        )
        logger.info("Deactivated recipient %s", saved.id)
        return saved

    async def set_parent(
        self,
        recipient_id: uuid.UUID,
        organization_id: uuid.UUID,
        parent_id: uuid.UUID | None,
        *,
        actor_id: str,
    ) -> Recipient:
        """Re-link a recipient together with its subtree. Loops are checked before the type rules."""
        recipient = await self._load(recipient_id, organization_id)
        if parent_id == recipient.parent_recipient_id:
            return recipient

        hierarchy_type = None
        if parent_id is not None:
            arena = await self._arena(organization_id)
            parent = arena.get(parent_id)
            if parent is None:
                raise NotFoundError("Recipient", parent_id)
            ancestors, _ = walk_ancestors(parent, arena)
            if parent_id == recipient_id or any(a.id == recipient_id for a in ancestors):
                raise CycleError(recipient_id, parent_id)
            self._check_placement(recipient, parent, arena)
            hierarchy_type = HIERARCHY_RULES[recipient.type].hierarchy_type

        updated = recipient.model_copy(
            update={
                "parent_recipient_id": parent_id,
                "hierarchy_type": hierarchy_type,
                "updated_at": datetime.now(UTC),
            }
        )
        saved = await self._repo.update(updated)

        await self._audit.record_event(
            organization_id=organization_id,
            event_type=AuditEventType.RECIPIENT_PARENT_CHANGED,
            entity_type="recipient",
            entity_id=str(saved.id),
            actor_id=actor_id,
            description=f"Recipient parent changed: {saved.name}",
            details={
                "previous_parent_id": str(recipient.parent_recipient_id) if recipient.parent_recipient_id else None,
                "parent_id": str(parent_id) if parent_id else None,
            },
        )
        logger.info("Recipient %s parent %s -> %s", recipient_id, recipient.parent_recipient_id, parent_id)
        return saved

    async def delete_recipient(
        self,
        recipient_id: uuid.UUID,
        organization_id: uuid.UUID,
        *,
        actor_id: str,
    ) -> None:
        """Delete a recipient and its locations. Refused while any activity links it."""
        recipient = await self._load(recipient_id, organization_id)
        links = await self._activities.count_links_for_owner(LocationOwnerKind.RECIPIENT, recipient_id)
        if links:
            raise ConflictError(
                f"Recipient {recipient_id} is linked to {links} processing activit{'y' if links == 1 else 'ies'}; "
                "unlink it first"
            )

        children = await self._repo.list_children(recipient_id, organization_id)
        if children:
            logger.warning("Deleting recipient %s detaches %d child recipient(s)", recipient_id, len(children))

        async with self._uow.transaction():
            await self._repo.delete(recipient_id, organization_id)
            await self._audit.record_event(
                organization_id=organization_id,
                event_type=AuditEventType.RECIPIENT_DELETED,
                entity_type="recipient",
                entity_id=str(recipient_id),
                actor_id=actor_id,
                description=f"Recipient deleted: {recipient.name}",
                details={"detached_children": [str(c.id) for c in children]},
            )
