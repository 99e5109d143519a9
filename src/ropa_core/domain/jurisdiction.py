"""Jurisdiction predicates and transfer-risk derivation.

Pure functions over reference data; no storage access.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ropa_core.enums import JurisdictionTag, TransferMechanismCategory, TransferRiskLevel, TransferRiskReason
from ropa_core.models import TransferRisk

if TYPE_CHECKING:
    from ropa_core.models import Country, TransferMechanism


def is_same_jurisdiction(a: Country, b: Country) -> bool:
    """Same country, both inside the EU/EEA framework, or both covered by adequacy."""
    if a.id == b.id:
        return True
    if a.in_eea and b.in_eea:
        return True
    return a.has_tag(JurisdictionTag.ADEQUATE) and b.has_tag(JurisdictionTag.ADEQUATE)


def is_third_country(country: Country) -> bool:
    return country.has_tag(JurisdictionTag.THIRD_COUNTRY) and not country.has_tag(JurisdictionTag.ADEQUATE)


def requires_safeguards(origin: Country, destination: Country) -> bool:
    return not is_same_jurisdiction(origin, destination) and is_third_country(destination)


def is_mitigating(mechanism: TransferMechanism | None) -> bool:
    return mechanism is not None and mechanism.category != TransferMechanismCategory.NONE


def derive_transfer_risk(
    origin: Country,
    destination: Country,
    mechanism: TransferMechanism | None = None,
    chain_mechanism: TransferMechanism | None = None,
) -> TransferRisk:
    """Classify one location relative to the organization's home country.

    ``mechanism`` is the one attached to the location itself;
    ``chain_mechanism`` is a mechanism found on another active location in
    the same recipient chain for the same destination country.
    """
    if is_same_jurisdiction(origin, destination):
        return TransferRisk(level=TransferRiskLevel.NONE, reason=TransferRiskReason.SAME_JURISDICTION)

    if destination.has_tag(JurisdictionTag.ADEQUATE) or destination.in_eea:
        return TransferRisk(
            level=TransferRiskLevel.LOW,
            reason=TransferRiskReason.ADEQUACY_OR_EEA,
            mechanism=mechanism,
        )

    if is_third_country(destination):
        if is_mitigating(mechanism):
            return TransferRisk(
                level=TransferRiskLevel.MEDIUM,
                reason=TransferRiskReason.SAFEGUARDS_IN_PLACE,
                mechanism=mechanism,
            )
        if is_mitigating(chain_mechanism):
            return TransferRisk(
                level=TransferRiskLevel.HIGH,
                reason=TransferRiskReason.MITIGATED_IN_CHAIN,
                mitigating_mechanism=chain_mechanism,
            )

    if requires_safeguards(origin, destination):
        return TransferRisk(
            level=TransferRiskLevel.CRITICAL,
            reason=TransferRiskReason.THIRD_COUNTRY_NO_MECHANISM,
            mechanism=mechanism,
        )

    # Untagged destinations fall outside every rule above.
    return TransferRisk(level=TransferRiskLevel.LOW, reason=TransferRiskReason.ADEQUACY_OR_EEA, mechanism=mechanism)


def validate_transfer_mechanism_requirement(
    origin: Country,
    destination: Country,
    mechanism: TransferMechanism | None,
) -> str | None:
    """Return why ``mechanism`` cannot legitimize the transfer, or None when it can."""
    if not requires_safeguards(origin, destination):
        return None
    if mechanism is None:
        return (
            f"Transfer from {origin.name} to {destination.name} requires a transfer mechanism "
            "(GDPR Art. 44-49)"
        )
    if mechanism.category == TransferMechanismCategory.NONE:
        return f"Mechanism {mechanism.code} does not cover a transfer to {destination.name}"
    if mechanism.requires_adequacy:
        return f"{destination.name} has no adequacy decision, so mechanism {mechanism.code} does not apply"
    return None
