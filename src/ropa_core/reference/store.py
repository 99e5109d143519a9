"""Process-wide cache of the global reference tables."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from ropa_core.exceptions import NotFoundError

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable

    from ropa_core.enums import DataNatureClassification, JurisdictionTag, TransferMechanismCategory
    from ropa_core.models import Country, DataNature, TransferMechanism
    from ropa_core.repository.protocols import ReferenceRepository

logger = logging.getLogger(__name__)


class ReferenceDataStore:
    """Read-only lookups over countries, data natures and transfer mechanisms.

    Rows are loaded on first use and kept until ``reload()`` is called.
    Nothing in the core writes to these tables.
    """

    def __init__(self, repo: ReferenceRepository) -> None:
        self._repo = repo
        self._lock = asyncio.Lock()
        self._loaded = False
        self._countries: dict[uuid.UUID, Country] = {}
        self._countries_by_code: dict[str, Country] = {}
        self._natures: dict[uuid.UUID, DataNature] = {}
        self._mechanisms: dict[uuid.UUID, TransferMechanism] = {}
        self._mechanisms_by_code: dict[str, TransferMechanism] = {}

    async def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        async with self._lock:
            if not self._loaded:
                await self._load()

    async def _load(self) -> None:
        countries = await self._repo.list_countries()
        natures = await self._repo.list_data_natures()
        mechanisms = await self._repo.list_transfer_mechanisms()

        self._countries = {c.id: c for c in countries}
        self._countries_by_code = {}
        for country in countries:
            self._countries_by_code[country.iso_code2.upper()] = country
            if country.iso_code3:
                self._countries_by_code[country.iso_code3.upper()] = country
        self._natures = {n.id: n for n in natures}
        self._mechanisms = {m.id: m for m in mechanisms}
        self._mechanisms_by_code = {m.code.upper(): m for m in mechanisms}
        self._loaded = True

        logger.info(
            "Reference data loaded: %d countries, %d data natures, %d transfer mechanisms",
            len(self._countries),
            len(self._natures),
            len(self._mechanisms),
        )

    async def reload(self) -> None:
        """Drop the cache and read the reference tables again."""
        async with self._lock:
            self._loaded = False
            await self._load()

    # ─── Countries ─────────────────────────────────────────

    async def get_country(self, country_id: uuid.UUID) -> Country:
        await self._ensure_loaded()
        country = self._countries.get(country_id)
        if country is None:
            raise NotFoundError("Country", country_id)
        return country

    async def find_country(self, country_id: uuid.UUID) -> Country | None:
        await self._ensure_loaded()
        return self._countries.get(country_id)

    async def get_country_by_code(self, code: str) -> Country:
        """Look up by ISO 3166 alpha-2 or alpha-3 code, case-insensitively."""
        await self._ensure_loaded()
        country = self._countries_by_code.get(code.upper())
        if country is None:
            raise NotFoundError("Country", code)
        return country

    async def list_countries(self, *, tag: JurisdictionTag | None = None) -> list[Country]:
        await self._ensure_loaded()
        countries = sorted(self._countries.values(), key=lambda c: c.name)
        if tag is not None:
            countries = [c for c in countries if c.has_tag(tag)]
        return countries

    # ─── Data natures ──────────────────────────────────────

    async def get_data_nature(self, nature_id: uuid.UUID) -> DataNature:
        await self._ensure_loaded()
        nature = self._natures.get(nature_id)
        if nature is None:
            raise NotFoundError("DataNature", nature_id)
        return nature

    async def get_data_natures(self, nature_ids: Iterable[uuid.UUID]) -> list[DataNature]:
        """Resolve every id, raising NotFoundError on the first unknown one."""
        await self._ensure_loaded()
        natures = []
        for nature_id in nature_ids:
            nature = self._natures.get(nature_id)
            if nature is None:
                raise NotFoundError("DataNature", nature_id)
            natures.append(nature)
        return natures

    async def list_data_natures(
        self, *, classification: DataNatureClassification | None = None
    ) -> list[DataNature]:
        await self._ensure_loaded()
        natures = sorted(self._natures.values(), key=lambda n: n.name)
        if classification is not None:
            natures = [n for n in natures if n.classification == classification]
        return natures

    # ─── Transfer mechanisms ───────────────────────────────

    async def get_transfer_mechanism(self, mechanism_id: uuid.UUID) -> TransferMechanism:
        await self._ensure_loaded()
        mechanism = self._mechanisms.get(mechanism_id)
        if mechanism is None:
            raise NotFoundError("TransferMechanism", mechanism_id)
        return mechanism

    async def find_transfer_mechanism(self, mechanism_id: uuid.UUID | None) -> TransferMechanism | None:
        if mechanism_id is None:
            return None
        await self._ensure_loaded()
        return self._mechanisms.get(mechanism_id)

    async def get_transfer_mechanism_by_code(self, code: str) -> TransferMechanism:
        await self._ensure_loaded()
        mechanism = self._mechanisms_by_code.get(code.upper())
        if mechanism is None:
            raise NotFoundError("TransferMechanism", code)
        return mechanism

    async def list_transfer_mechanisms(
        self, *, category: TransferMechanismCategory | None = None
    ) -> list[TransferMechanism]:
        await self._ensure_loaded()
        mechanisms = sorted(self._mechanisms.values(), key=lambda m: m.code)
        if category is not None:
            mechanisms = [m for m in mechanisms if m.category == category]
        return mechanisms
