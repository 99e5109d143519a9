"""Cross-border transfer detection.

Combines the organization's headquarters country, the active locations of
recipients (and everything below them in the hierarchy) or digital assets,
and the jurisdiction rules into risk-annotated transfer reports. Every call
is a read over current data; nothing is cached between calls.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING

from opentelemetry import trace

from ropa_core import cancellation
from ropa_core.domain.hierarchy import children_index, walk_ancestors, walk_descendants
from ropa_core.domain.jurisdiction import derive_transfer_risk, is_mitigating
from ropa_core.enums import LocationOwnerKind, TransferRiskLevel
from ropa_core.exceptions import ConfigurationError, NotFoundError
from ropa_core.models import (
    ActivityTransferAnalysis,
    CountryLocationCount,
    RiskDistribution,
    Transfer,
    TransferSummary,
)

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable

    from ropa_core.cancellation import CancellationToken
    from ropa_core.models import Country, ProcessingLocation, Recipient, TransferMechanism
    from ropa_core.reference.store import ReferenceDataStore
    from ropa_core.repository.protocols import (
        DigitalAssetRepository,
        LocationRepository,
        OrganizationRepository,
        ProcessingActivityRepository,
        RecipientRepository,
    )

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True)
class _Owner:
    """An entity whose locations are evaluated, with the chain that may mitigate it."""

    kind: LocationOwnerKind
    id: uuid.UUID
    name: str
    depth: int
    chain: tuple[uuid.UUID, ...]


def summarize_transfers(
    recipient_transfers: Iterable[Transfer],
    asset_transfers: Iterable[Transfer] = (),
    *,
    total_recipients: int = 0,
    total_assets: int = 0,
) -> TransferSummary:
    recipient_transfers = list(recipient_transfers)
    asset_transfers = list(asset_transfers)
    every = recipient_transfers + asset_transfers

    distribution = RiskDistribution()
    per_country: Counter[uuid.UUID] = Counter()
    countries: dict[uuid.UUID, Country] = {}
    for transfer in every:
        distribution.add(transfer.transfer_risk.level)
        per_country[transfer.destination_country.id] += 1
        countries[transfer.destination_country.id] = transfer.destination_country

    return TransferSummary(
        total_transfers=len(every),
        total_recipients=total_recipients,
        total_assets=total_assets,
        recipients_with_transfers=len({t.owner_id for t in recipient_transfers}),
        assets_with_transfers=len({t.owner_id for t in asset_transfers}),
        risk_distribution=distribution,
        countries_involved=[
            CountryLocationCount(country=countries[country_id], location_count=count)
            for country_id, count in sorted(per_country.items(), key=lambda item: (-item[1], countries[item[0]].name))
        ],
    )


class TransferDetectionEngine:
    def __init__(
        self,
        organizations: OrganizationRepository,
        recipients: RecipientRepository,
        assets: DigitalAssetRepository,
        activities: ProcessingActivityRepository,
        recipient_locations: LocationRepository,
        asset_locations: LocationRepository,
        reference: ReferenceDataStore,
    ) -> None:
        self._organizations = organizations
        self._recipients = recipients
        self._assets = assets
        self._activities = activities
        self._recipient_locations = recipient_locations
        self._asset_locations = asset_locations
        self._reference = reference

    async def _home_country(self, organization_id: uuid.UUID) -> Country:
        organization = await self._organizations.get_by_id(organization_id)
        if organization is None:
            raise NotFoundError("Organization", organization_id)
        if organization.headquarters_country_id is None:
            raise ConfigurationError(
                f"Organization {organization_id} has no headquarters country. "
                "Set your organization's headquarters country before running transfer analysis."
            )
        return await self._reference.get_country(organization.headquarters_country_id)

    async def _active_arena(self, organization_id: uuid.UUID) -> dict[uuid.UUID, Recipient]:
        recipients = await self._recipients.list_by_organization(organization_id, active_only=True)
        return {r.id: r for r in recipients}

    def _recipient_owners(
        self,
        starts: Iterable[Recipient],
        arena: dict[uuid.UUID, Recipient],
        token: CancellationToken | None,
    ) -> list[_Owner]:
        """Walk down from each start, visiting every recipient at most once.

        Depth is measured from the top of the active hierarchy, so it does not
        depend on which start reached a recipient first.
        """
        children = children_index(arena.values())
        owners: list[_Owner] = []
        visited: set[uuid.UUID] = set()
        for start in starts:
            if start.id in visited:
                continue
            for node in walk_descendants(start, children, token=token):
                recipient = node.recipient
                if recipient.id in visited:
                    continue
                visited.add(recipient.id)
                ancestors, cyclic = walk_ancestors(recipient, arena)
                if cyclic:
                    logger.error("Recipient hierarchy corrupt: loop above recipient %s", recipient.id)
                owners.append(
                    _Owner(
                        kind=LocationOwnerKind.RECIPIENT,
                        id=recipient.id,
                        name=recipient.name,
                        depth=len(ancestors),
                        chain=(recipient.id, *(a.id for a in ancestors)),
                    )
                )
        return owners

    async def _evaluate(
        self,
        origin: Country,
        owners: list[_Owner],
        locations: list[ProcessingLocation],
        token: CancellationToken | None,
    ) -> list[Transfer]:
        by_owner: dict[uuid.UUID, list[ProcessingLocation]] = {}
        for location in locations:
            by_owner.setdefault(location.owner_id, []).append(location)

        # First mitigating mechanism per (owner, destination country).
        mitigations: dict[tuple[uuid.UUID, uuid.UUID], TransferMechanism] = {}
        for location in locations:
            key = (location.owner_id, location.country_id)
            if key in mitigations:
                continue
            mechanism = await self._reference.find_transfer_mechanism(location.transfer_mechanism_id)
            if is_mitigating(mechanism):
                mitigations[key] = mechanism  # type: ignore[assignment]

        transfers = []
        for owner in owners:
            cancellation.check(token, "transfer detection")
            for location in by_owner.get(owner.id, []):
                destination = await self._reference.get_country(location.country_id)
                mechanism = await self._reference.find_transfer_mechanism(location.transfer_mechanism_id)
                chain_mechanism = next(
                    (
                        mitigations[(member, location.country_id)]
                        for member in owner.chain
                        if (member, location.country_id) in mitigations
                    ),
                    None,
                )
                risk = derive_transfer_risk(origin, destination, mechanism, chain_mechanism)
                if risk.level == TransferRiskLevel.NONE:
                    continue
                transfers.append(
                    Transfer(
                        organization_country=origin,
                        owner_kind=owner.kind,
                        owner_id=owner.id,
                        owner_name=owner.name,
                        location=location,
                        destination_country=destination,
                        depth=owner.depth,
                        transfer_risk=risk,
                    )
                )
        return transfers

    async def _recipient_transfers(
        self,
        origin: Country,
        organization_id: uuid.UUID,
        owners: list[_Owner],
        token: CancellationToken | None,
    ) -> list[Transfer]:
        chain_ids = {member for owner in owners for member in owner.chain}
        locations = await self._recipient_locations.list_for_owners(chain_ids, organization_id)
        return await self._evaluate(origin, owners, locations, token)

    async def detect_cross_border_transfers(
        self,
        organization_id: uuid.UUID,
        *,
        token: CancellationToken | None = None,
    ) -> list[Transfer]:
        """Every recipient location outside the organization's jurisdiction.

        Raises ConfigurationError when the organization has no headquarters
        country: without a home jurisdiction no location can be judged.
        """
        with tracer.start_as_current_span("transfers.detect") as span:
            span.set_attribute("organization.id", str(organization_id))
            origin = await self._home_country(organization_id)
            arena = await self._active_arena(organization_id)

            roots = [r for r in arena.values() if r.parent_recipient_id not in arena]
            owners = self._recipient_owners(roots, arena, token)
            reached = {o.id for o in owners}
            unreached = [r for r in arena.values() if r.id not in reached]
            if unreached:
                logger.error(
                    "Recipient hierarchy corrupt: %d recipient(s) unreachable from any root in organization %s",
                    len(unreached),
                    organization_id,
                )
                owners.extend(self._recipient_owners(unreached, arena, token))

            transfers = await self._recipient_transfers(origin, organization_id, owners, token)
            span.set_attribute("transfers.recipients", len(owners))
            span.set_attribute("transfers.count", len(transfers))

        critical = sum(1 for t in transfers if t.transfer_risk.level == TransferRiskLevel.CRITICAL)
        logger.info(
            "Organization %s: %d transfer(s) across %d recipient(s), %d critical",
            organization_id,
            len(transfers),
            len(owners),
            critical,
        )
        return transfers

    async def detect_asset_transfers(
        self,
        organization_id: uuid.UUID,
        *,
        token: CancellationToken | None = None,
    ) -> list[Transfer]:
        """Digital-asset counterpart of ``detect_cross_border_transfers``."""
        origin = await self._home_country(organization_id)
        assets = [a for a in await self._assets.list_by_organization(organization_id) if a.is_active]
        owners = await self._asset_owners(organization_id, [a.id for a in assets])
        return await self._asset_transfers(origin, organization_id, owners, token)

    async def _asset_owners(self, organization_id: uuid.UUID, asset_ids: list[uuid.UUID]) -> list[_Owner]:
        """Active assets among ``asset_ids``; missing or inactive ones are skipped."""
        owners = []
        for asset_id in asset_ids:
            asset = await self._assets.get(asset_id, organization_id)
            if asset is None or not asset.is_active:
                continue
            owners.append(
                _Owner(kind=LocationOwnerKind.ASSET, id=asset.id, name=asset.name, depth=0, chain=(asset.id,))
            )
        return owners

    async def _asset_transfers(
        self,
        origin: Country,
        organization_id: uuid.UUID,
        owners: list[_Owner],
        token: CancellationToken | None,
    ) -> list[Transfer]:
        locations = await self._asset_locations.list_for_owners([o.id for o in owners], organization_id)
        return await self._evaluate(origin, owners, locations, token)

    async def get_activity_transfer_analysis(
        self,
        activity_id: uuid.UUID,
        organization_id: uuid.UUID,
        *,
        token: CancellationToken | None = None,
    ) -> ActivityTransferAnalysis:
        """Transfers of one activity, split into recipient-side and asset-side findings.

        Linked recipients contribute their whole descendant tree. An activity
        with nothing linked yields empty lists and a zeroed summary.
        """
        with tracer.start_as_current_span("transfers.activity_analysis") as span:
            span.set_attribute("organization.id", str(organization_id))
            span.set_attribute("activity.id", str(activity_id))

            activity = await self._activities.get(activity_id, organization_id)
            if activity is None:
                raise NotFoundError("ProcessingActivity", activity_id)
            origin = await self._home_country(organization_id)

            recipient_links = await self._activities.list_links(activity_id, LocationOwnerKind.RECIPIENT)
            asset_links = await self._activities.list_links(activity_id, LocationOwnerKind.ASSET)

            owners: list[_Owner] = []
            if recipient_links:
                arena = await self._active_arena(organization_id)
                starts = [arena[link.owner_id] for link in recipient_links if link.owner_id in arena]
                owners = self._recipient_owners(starts, arena, token)
            recipient_transfers = await self._recipient_transfers(origin, organization_id, owners, token)

            asset_owners = await self._asset_owners(organization_id, [link.owner_id for link in asset_links])
            asset_transfers = await self._asset_transfers(origin, organization_id, asset_owners, token)

            summary = summarize_transfers(
                recipient_transfers,
                asset_transfers,
                total_recipients=len(owners),
                total_assets=len(asset_owners),
            )
            span.set_attribute("transfers.count", summary.total_transfers)

        return ActivityTransferAnalysis(
            activity_id=activity.id,
            activity_name=activity.name,
            organization_country=origin,
            recipient_transfers=recipient_transfers,
            asset_transfers=asset_transfers,
            summary=summary,
        )
