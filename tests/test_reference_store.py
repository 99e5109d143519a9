"""Tests for the cached reference data store."""

import asyncio
import uuid

import pytest
from ropa_core.enums import DataNatureClassification, JurisdictionTag, TransferMechanismCategory
from ropa_core.exceptions import NotFoundError
from ropa_core.reference.seed import country_id, data_nature_id
from ropa_core.reference.store import ReferenceDataStore

from conftest import MockReferenceRepository


class TestCountries:
    async def test_lookup_by_iso2_and_iso3(self, reference_store: ReferenceDataStore) -> None:
        by_iso2 = await reference_store.get_country_by_code("de")
        by_iso3 = await reference_store.get_country_by_code("DEU")
        assert by_iso2.id == by_iso3.id == country_id("DE")
        assert by_iso2.name == "Germany"

    async def test_unknown_code(self, reference_store: ReferenceDataStore) -> None:
        with pytest.raises(NotFoundError):
            await reference_store.get_country_by_code("XX")

    async def test_unknown_id(self, reference_store: ReferenceDataStore) -> None:
        with pytest.raises(NotFoundError):
            await reference_store.get_country(uuid.uuid4())
        assert await reference_store.find_country(uuid.uuid4()) is None

    async def test_filter_by_tag(self, reference_store: ReferenceDataStore) -> None:
        eu = await reference_store.list_countries(tag=JurisdictionTag.EU)
        assert len(eu) == 27
        assert all(c.in_eea for c in eu)

    async def test_switzerland_is_efta_and_adequate(self, reference_store: ReferenceDataStore) -> None:
        switzerland = await reference_store.get_country_by_code("CH")
        assert switzerland.has_tag(JurisdictionTag.EFTA)
        assert switzerland.has_tag(JurisdictionTag.ADEQUATE)
        assert not switzerland.in_eea

    async def test_norway_is_eea_but_not_eu(self, reference_store: ReferenceDataStore) -> None:
        norway = await reference_store.get_country_by_code("NO")
        assert norway.in_eea
        assert not norway.has_tag(JurisdictionTag.EU)


class TestDataNatures:
    async def test_special_natures(self, reference_store: ReferenceDataStore) -> None:
        special = await reference_store.list_data_natures(classification=DataNatureClassification.SPECIAL)
        names = {n.name for n in special}
        assert "Health Data" in names
        assert "Criminal Convictions and Offences" in names
        assert "Contact Information" not in names
        assert len(special) == 10

    async def test_resolve_many_fails_on_unknown(self, reference_store: ReferenceDataStore) -> None:
        with pytest.raises(NotFoundError):
            await reference_store.get_data_natures([data_nature_id("Name"), uuid.uuid4()])

    async def test_resolve_many_keeps_order(self, reference_store: ReferenceDataStore) -> None:
        ids = [data_nature_id("Health Data"), data_nature_id("Name")]
        natures = await reference_store.get_data_natures(ids)
        assert [n.id for n in natures] == ids


class TestTransferMechanisms:
    async def test_lookup_by_code(self, reference_store: ReferenceDataStore) -> None:
        scc = await reference_store.get_transfer_mechanism_by_code("scc")
        assert scc.category == TransferMechanismCategory.SAFEGUARD
        assert scc.requires_documentation

    async def test_find_none(self, reference_store: ReferenceDataStore) -> None:
        assert await reference_store.find_transfer_mechanism(None) is None

    async def test_derogations(self, reference_store: ReferenceDataStore) -> None:
        derogations = await reference_store.list_transfer_mechanisms(category=TransferMechanismCategory.DEROGATION)
        assert len(derogations) == 7
        assert all(m.is_derogation for m in derogations)


class TestCaching:
    async def test_loaded_once(
        self, reference_store: ReferenceDataStore, reference_repo: MockReferenceRepository
    ) -> None:
        await asyncio.gather(*(reference_store.get_country(country_id("FR")) for _ in range(5)))
        await reference_store.list_data_natures()
        assert reference_repo.loads == 1

    async def test_reload_reads_again(
        self, reference_store: ReferenceDataStore, reference_repo: MockReferenceRepository
    ) -> None:
        await reference_store.get_country(country_id("FR"))
        reference_repo.countries = [c for c in reference_repo.countries if c.iso_code2 != "FR"]
        await reference_store.reload()
        assert reference_repo.loads == 2
        assert await reference_store.find_country(country_id("FR")) is None
