"""Domain enums for the ROPA compliance core."""

from enum import StrEnum


class JurisdictionTag(StrEnum):
    """Legal-framework membership labels attached to a country."""

    EU = "eu"
    EEA = "eea"
    EFTA = "efta"
    THIRD_COUNTRY = "third_country"
    ADEQUATE = "adequate"


class DataNatureClassification(StrEnum):
    """Article 9/10 classification of a data nature."""

    SPECIAL = "special"
    NON_SPECIAL = "non_special"


class SensitivityLevel(StrEnum):
    """Data category sensitivity, ordered PUBLIC < INTERNAL < CONFIDENTIAL < RESTRICTED."""

    PUBLIC = "public"
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"
    RESTRICTED = "restricted"

    @property
    def rank(self) -> int:
        return _SENSITIVITY_ORDER[self]


_SENSITIVITY_ORDER: dict[SensitivityLevel, int] = {
    SensitivityLevel.PUBLIC: 0,
    SensitivityLevel.INTERNAL: 1,
    SensitivityLevel.CONFIDENTIAL: 2,
    SensitivityLevel.RESTRICTED: 3,
}


class LocationRole(StrEnum):
    """What a processing location does with the data."""

    HOSTING = "hosting"
    PROCESSING = "processing"
    BOTH = "both"


class LocationOwnerKind(StrEnum):
    """Entity a processing location is attached to."""

    RECIPIENT = "recipient"
    ASSET = "asset"


class RecipientType(StrEnum):
    """Parties that receive or process an organization's personal data."""

    PROCESSOR = "processor"
    SUB_PROCESSOR = "sub_processor"
    JOINT_CONTROLLER = "joint_controller"
    SERVICE_PROVIDER = "service_provider"
    SEPARATE_CONTROLLER = "separate_controller"
    PUBLIC_AUTHORITY = "public_authority"
    INTERNAL_DEPARTMENT = "internal_department"


class HierarchyType(StrEnum):
    """Kind of chain a recipient participates in."""

    PROCESSOR_CHAIN = "processor_chain"
    ORGANIZATIONAL = "organizational"


class AssetType(StrEnum):
    """Digital asset categories."""

    ANALYTICS_PLATFORM = "analytics_platform"
    API = "api"
    APPLICATION = "application"
    CLOUD_SERVICE = "cloud_service"
    CRM = "crm"
    DATABASE = "database"
    ERP = "erp"
    FILE_STORAGE = "file_storage"
    MARKETING_TOOL = "marketing_tool"
    ON_PREMISE_SYSTEM = "on_premise_system"
    OTHER = "other"


class TransferMechanismCategory(StrEnum):
    """Legal basis family of a transfer mechanism (GDPR Art. 45, 46, 49)."""

    ADEQUACY = "adequacy"
    SAFEGUARD = "safeguard"
    DEROGATION = "derogation"
    NONE = "none"


class TransferRiskLevel(StrEnum):
    """Risk tier of a detected cross-border transfer."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TransferRiskReason(StrEnum):
    """Why a transfer received its risk tier."""

    SAME_JURISDICTION = "same_jurisdiction"
    ADEQUACY_OR_EEA = "adequacy_or_eea"
    SAFEGUARDS_IN_PLACE = "safeguards_in_place"
    MITIGATED_IN_CHAIN = "mitigated_in_chain"
    THIRD_COUNTRY_NO_MECHANISM = "third_country_no_mechanism"


class AuditEventType(StrEnum):
    """Types of auditable compliance-record changes."""

    CATEGORY_CREATED = "category_created"
    CATEGORY_UPDATED = "category_updated"
    CATEGORY_DEACTIVATED = "category_deactivated"
    CATEGORY_OVERRIDE_SET = "category_override_set"
    CATEGORY_OVERRIDE_CLEARED = "category_override_cleared"
    LOCATION_CREATED = "location_created"
    LOCATION_UPDATED = "location_updated"
    LOCATION_DEACTIVATED = "location_deactivated"
    LOCATION_MOVED = "location_moved"
    RECIPIENT_CREATED = "recipient_created"
    RECIPIENT_UPDATED = "recipient_updated"
    RECIPIENT_PARENT_CHANGED = "recipient_parent_changed"
    RECIPIENT_DEACTIVATED = "recipient_deactivated"
    RECIPIENT_DELETED = "recipient_deleted"
    ASSET_CREATED = "asset_created"
    ASSET_DEACTIVATED = "asset_deactivated"
    ASSET_DELETED = "asset_deleted"
    ACTIVITY_CREATED = "activity_created"
    ACTIVITY_LINKED = "activity_linked"
    ACTIVITY_UNLINKED = "activity_unlinked"
