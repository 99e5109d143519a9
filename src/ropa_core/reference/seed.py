"""Canonical reference data: countries, data natures and transfer mechanisms.

Identifiers are derived with ``uuid5`` from each record's natural key so
every environment seeds the same ids.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from ropa_core.db.tables import CountryRow, DataNatureRow, TransferMechanismRow
from ropa_core.enums import DataNatureClassification, JurisdictionTag, TransferMechanismCategory
from ropa_core.models import Country, DataNature, TransferMechanism

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_NAMESPACE = uuid.UUID("6f1c2a4e-3b7d-4c8e-9a10-5d2e8f4b7c31")

_EU = frozenset({JurisdictionTag.EU, JurisdictionTag.EEA})
_EEA_EFTA = frozenset({JurisdictionTag.EEA, JurisdictionTag.EFTA})
_ADEQUATE = frozenset({JurisdictionTag.THIRD_COUNTRY, JurisdictionTag.ADEQUATE})
_THIRD = frozenset({JurisdictionTag.THIRD_COUNTRY})
_EFTA_ADEQUATE = _ADEQUATE | {JurisdictionTag.EFTA}

# (iso_code2, iso_code3, name, tags)
COUNTRIES: list[tuple[str, str, str, frozenset[JurisdictionTag]]] = [
    # EU member states
    ("AT", "AUT", "Austria", _EU),
    ("BE", "BEL", "Belgium", _EU),
    ("BG", "BGR", "Bulgaria", _EU),
    ("HR", "HRV", "Croatia", _EU),
    ("CY", "CYP", "Cyprus", _EU),
    ("CZ", "CZE", "Czechia", _EU),
    ("DK", "DNK", "Denmark", _EU),
    ("EE", "EST", "Estonia", _EU),
    ("FI", "FIN", "Finland", _EU),
    ("FR", "FRA", "France", _EU),
    ("DE", "DEU", "Germany", _EU),
    ("GR", "GRC", "Greece", _EU),
    ("HU", "HUN", "Hungary", _EU),
    ("IE", "IRL", "Ireland", _EU),
    ("IT", "ITA", "Italy", _EU),
    ("LV", "LVA", "Latvia", _EU),
    ("LT", "LTU", "Lithuania", _EU),
    ("LU", "LUX", "Luxembourg", _EU),
    ("MT", "MLT", "Malta", _EU),
    ("NL", "NLD", "Netherlands", _EU),
    ("PL", "POL", "Poland", _EU),
    ("PT", "PRT", "Portugal", _EU),
    ("RO", "ROU", "Romania", _EU),
    ("SK", "SVK", "Slovakia", _EU),
    ("SI", "SVN", "Slovenia", _EU),
    ("ES", "ESP", "Spain", _EU),
    ("SE", "SWE", "Sweden", _EU),
    # EEA, non-EU
    ("IS", "ISL", "Iceland", _EEA_EFTA),
    ("LI", "LIE", "Liechtenstein", _EEA_EFTA),
    ("NO", "NOR", "Norway", _EEA_EFTA),
    # EFTA outside the EEA, with an adequacy decision
    ("CH", "CHE", "Switzerland", _EFTA_ADEQUATE),
    # Adequacy decisions (Art. 45)
    ("AD", "AND", "Andorra", _ADEQUATE),
    ("AR", "ARG", "Argentina", _ADEQUATE),
    ("CA", "CAN", "Canada", _ADEQUATE),
    ("FO", "FRO", "Faroe Islands", _ADEQUATE),
    ("GG", "GGY", "Guernsey", _ADEQUATE),
    ("IL", "ISR", "Israel", _ADEQUATE),
    ("IM", "IMN", "Isle of Man", _ADEQUATE),
    ("JP", "JPN", "Japan", _ADEQUATE),
    ("JE", "JEY", "Jersey", _ADEQUATE),
    ("NZ", "NZL", "New Zealand", _ADEQUATE),
    ("KR", "KOR", "South Korea", _ADEQUATE),
    ("GB", "GBR", "United Kingdom", _ADEQUATE),
    ("UY", "URY", "Uruguay", _ADEQUATE),
    # Third countries
    ("US", "USA", "United States", _THIRD),
    ("CN", "CHN", "China", _THIRD),
    ("IN", "IND", "India", _THIRD),
    ("BR", "BRA", "Brazil", _THIRD),
    ("AU", "AUS", "Australia", _THIRD),
    ("SG", "SGP", "Singapore", _THIRD),
    ("RU", "RUS", "Russia", _THIRD),
    ("ZA", "ZAF", "South Africa", _THIRD),
    ("MX", "MEX", "Mexico", _THIRD),
    ("TR", "TUR", "Turkey", _THIRD),
    ("AE", "ARE", "United Arab Emirates", _THIRD),
    ("PH", "PHL", "Philippines", _THIRD),
    ("UA", "UKR", "Ukraine", _THIRD),
]

_SPECIAL = DataNatureClassification.SPECIAL
_NON_SPECIAL = DataNatureClassification.NON_SPECIAL

# (name, description, classification, gdpr_article_ref)
DATA_NATURES: list[tuple[str, str, DataNatureClassification, str]] = [
    ("Racial or Ethnic Origin", "Information revealing racial or ethnic origin", _SPECIAL, "Art. 9(1)"),
    ("Political Opinions", "Political opinions, affiliations or voting preferences", _SPECIAL, "Art. 9(1)"),
    ("Religious or Philosophical Beliefs", "Religious beliefs or philosophical convictions", _SPECIAL, "Art. 9(1)"),
    ("Trade Union Membership", "Trade union membership or activities", _SPECIAL, "Art. 9(1)"),
    ("Genetic Data", "Inherited or acquired genetic characteristics", _SPECIAL, "Art. 9(1)"),
    ("Biometric Data", "Biometric data used to uniquely identify a person", _SPECIAL, "Art. 9(1)"),
    ("Health Data", "Physical or mental health, medical history and health services", _SPECIAL, "Art. 9(1)"),
    ("Sex Life", "Data concerning a person's sex life", _SPECIAL, "Art. 9(1)"),
    ("Sexual Orientation", "Data revealing a person's sexual orientation", _SPECIAL, "Art. 9(1)"),
    ("Criminal Convictions and Offences", "Criminal records, convictions and offences", _SPECIAL, "Art. 10"),
    ("Name", "First name, last name, maiden name and aliases", _NON_SPECIAL, "Art. 4(1)"),
    ("Contact Information", "Email addresses, phone numbers and postal addresses", _NON_SPECIAL, "Art. 4(1)"),
    ("Demographic Data", "Age, date of birth, gender, nationality and marital status", _NON_SPECIAL, "Art. 4(1)"),
    ("Identification Numbers", "National ID, passport and social security numbers", _NON_SPECIAL, "Art. 4(1)"),
    ("Employment Data", "Job title, work history, salary and performance reviews", _NON_SPECIAL, "Art. 4(1)"),
    ("Financial Data", "Bank accounts, card details, transactions and income", _NON_SPECIAL, "Art. 4(1)"),
    ("Education Data", "Degrees, certifications and academic records", _NON_SPECIAL, "Art. 4(1)"),
    ("Device and Technical Data", "IP addresses, device IDs and browser types", _NON_SPECIAL, "Art. 4(1)"),
    ("Location Data", "GPS coordinates, geolocation and travel history", _NON_SPECIAL, "Art. 4(1)"),
    ("Communication Data", "Message content, call logs and communication metadata", _NON_SPECIAL, "Art. 4(1)"),
    ("Behavioral Data", "Behavior patterns, preferences and interaction history", _NON_SPECIAL, "Art. 4(1)"),
    ("Marketing Preferences", "Marketing consent and communication preferences", _NON_SPECIAL, "Art. 4(1)"),
    ("Customer Relationship Data", "Customer IDs, purchase history and support tickets", _NON_SPECIAL, "Art. 4(1)"),
    ("Online Activity Data", "Page views, click patterns and browsing history", _NON_SPECIAL, "Art. 4(1)"),
    ("Transactional Data", "Orders, payment methods and invoices", _NON_SPECIAL, "Art. 4(1)"),
]

_ADEQUACY = TransferMechanismCategory.ADEQUACY
_SAFEGUARD = TransferMechanismCategory.SAFEGUARD
_DEROGATION = TransferMechanismCategory.DEROGATION

# (code, name, gdpr_article_ref, category, is_derogation, requires_adequacy, requires_documentation)
TRANSFER_MECHANISMS: list[tuple[str, str, str, TransferMechanismCategory, bool, bool, bool]] = [
    ("ADEQUACY", "Adequacy Decision", "Art. 45", _ADEQUACY, False, True, False),
    ("SCC", "Standard Contractual Clauses", "Art. 46(2)(c)", _SAFEGUARD, False, False, True),
    ("BCR", "Binding Corporate Rules", "Art. 46(2)(b)", _SAFEGUARD, False, False, True),
    ("CODE_OF_CONDUCT", "Approved Code of Conduct", "Art. 46(2)(e)", _SAFEGUARD, False, False, True),
    ("CERTIFICATION", "Approved Certification Mechanism", "Art. 46(2)(f)", _SAFEGUARD, False, False, True),
    ("EXPLICIT_CONSENT", "Explicit Consent", "Art. 49(1)(a)", _DEROGATION, True, False, True),
    ("CONTRACT_PERFORMANCE", "Contract Performance", "Art. 49(1)(b)", _DEROGATION, True, False, True),
    ("PUBLIC_INTEREST", "Public Interest", "Art. 49(1)(d)", _DEROGATION, True, False, True),
    ("LEGAL_CLAIMS", "Legal Claims", "Art. 49(1)(e)", _DEROGATION, True, False, True),
    ("VITAL_INTERESTS", "Vital Interests", "Art. 49(1)(f)", _DEROGATION, True, False, True),
    ("PUBLIC_REGISTER", "Public Register", "Art. 49(1)(g)", _DEROGATION, True, False, False),
    ("LEGITIMATE_INTERESTS", "Compelling Legitimate Interests", "Art. 49(1)", _DEROGATION, True, False, True),
    ("NONE", "Not Applicable / No Transfer", "N/A", TransferMechanismCategory.NONE, False, False, False),
]


def country_id(iso_code2: str) -> uuid.UUID:
    return uuid.uuid5(_NAMESPACE, f"country:{iso_code2.upper()}")


def data_nature_id(name: str) -> uuid.UUID:
    return uuid.uuid5(_NAMESPACE, f"data-nature:{name}")


def transfer_mechanism_id(code: str) -> uuid.UUID:
    return uuid.uuid5(_NAMESPACE, f"transfer-mechanism:{code.upper()}")


def build_countries() -> list[Country]:
    return [
        Country(id=country_id(iso2), name=name, iso_code2=iso2, iso_code3=iso3, jurisdiction_tags=tags)
        for iso2, iso3, name, tags in COUNTRIES
    ]


def build_data_natures() -> list[DataNature]:
    return [
        DataNature(
            id=data_nature_id(name),
            name=name,
            description=description,
            classification=classification,
            gdpr_article_ref=article,
        )
        for name, description, classification, article in DATA_NATURES
    ]


def build_transfer_mechanisms() -> list[TransferMechanism]:
    return [
        TransferMechanism(
            id=transfer_mechanism_id(code),
            code=code,
            name=name,
            gdpr_article_ref=article,
            category=category,
            is_derogation=is_derogation,
            requires_adequacy=requires_adequacy,
            requires_documentation=requires_documentation,
        )
        for code, name, article, category, is_derogation, requires_adequacy, requires_documentation in (
            TRANSFER_MECHANISMS
        )
    ]


async def _count(session: AsyncSession, table: type) -> int:
    result = await session.execute(select(func.count()).select_from(table))
    return int(result.scalar_one())


async def seed_reference_data(session: AsyncSession) -> dict[str, int]:
    """Insert the canonical reference rows into empty tables.

    Tables that already hold rows are left untouched, so running this
    repeatedly is safe. Returns the number of rows inserted per table.
    """
    inserted = {"countries": 0, "data_natures": 0, "transfer_mechanisms": 0}

    if await _count(session, CountryRow) == 0:
        for country in build_countries():
            session.add(
                CountryRow(
                    id=country.id,
                    name=country.name,
                    iso_code2=country.iso_code2,
                    iso_code3=country.iso_code3,
                    jurisdiction_tags=sorted(tag.value for tag in country.jurisdiction_tags),
                )
            )
            inserted["countries"] += 1

    if await _count(session, DataNatureRow) == 0:
        for nature in build_data_natures():
            session.add(
                DataNatureRow(
                    id=nature.id,
                    name=nature.name,
                    description=nature.description,
                    classification=nature.classification,
                    gdpr_article_ref=nature.gdpr_article_ref,
                )
            )
            inserted["data_natures"] += 1

    if await _count(session, TransferMechanismRow) == 0:
        for mechanism in build_transfer_mechanisms():
            session.add(
                TransferMechanismRow(
                    id=mechanism.id,
                    code=mechanism.code,
                    name=mechanism.name,
                    description=mechanism.description,
                    gdpr_article_ref=mechanism.gdpr_article_ref,
                    category=mechanism.category,
                    is_derogation=mechanism.is_derogation,
                    requires_adequacy=mechanism.requires_adequacy,
                    requires_documentation=mechanism.requires_documentation,
                )
            )
            inserted["transfer_mechanisms"] += 1

    await session.flush()
    for table, count in inserted.items():
        if count:
            logger.info("Seeded %d rows into %s", count, table)
        else:
            logger.debug("Skipped seeding %s: table already populated", table)
    return inserted
