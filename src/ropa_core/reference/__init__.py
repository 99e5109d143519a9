"""Global reference data: countries, data natures, transfer mechanisms."""

from ropa_core.reference.store import ReferenceDataStore

__all__ = ["ReferenceDataStore"]
