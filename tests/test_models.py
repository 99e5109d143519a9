"""Tests for domain models and input parsing."""

import uuid

import pytest
from ropa_core.enums import (
    JurisdictionTag,
    SensitivityLevel,
    TransferMechanismCategory,
    TransferRiskLevel,
    TransferRiskReason,
)
from ropa_core.exceptions import ValidationError
from ropa_core.models import (
    ComputedClassification,
    Country,
    DataCategory,
    HierarchyHealthReport,
    OverriddenClassification,
    RiskDistribution,
    TransferMechanism,
    TransferRisk,
)
from ropa_core.schemas import (
    ProcessingLocationCreate,
    ProcessingLocationUpdate,
    SpecialCategoryOverrideRequest,
    parse_input,
)


class TestCountry:
    def test_eu_member_is_in_eea(self) -> None:
        germany = Country(name="Germany", iso_code2="DE", jurisdiction_tags={JurisdictionTag.EU, JurisdictionTag.EEA})
        assert germany.in_eea

    def test_eu_tag_alone_counts_as_eea(self) -> None:
        country = Country(name="Somewhere", iso_code2="SW", jurisdiction_tags={JurisdictionTag.EU})
        assert country.in_eea

    def test_adequate_country_is_not_in_eea(self) -> None:
        japan = Country(
            name="Japan",
            iso_code2="JP",
            jurisdiction_tags={JurisdictionTag.THIRD_COUNTRY, JurisdictionTag.ADEQUATE},
        )
        assert not japan.in_eea
        assert japan.has_tag(JurisdictionTag.ADEQUATE)


class TestDataCategoryDecision:
    def test_decision_without_override_is_computed(self) -> None:
        category = DataCategory(organization_id=uuid.uuid4(), name="Patients", is_special_category=True)
        assert category.decision == ComputedClassification(value=True)
        assert category.override_metadata is None

    def test_decision_with_override_is_overridden(self) -> None:
        override = OverriddenClassification(value=False, justification="Pseudonymised", overridden_by="dpo")
        category = DataCategory(
            organization_id=uuid.uuid4(), name="Patients", is_special_category=False, override=override
        )
        assert category.decision is override
        metadata = category.override_metadata
        assert metadata is not None
        assert metadata["overridden"] is True
        assert metadata["justification"] == "Pseudonymised"
        assert metadata["overridden_by"] == "dpo"


class TestSensitivityLevel:
    def test_levels_are_ordered(self) -> None:
        ranks = [level.rank for level in SensitivityLevel]
        assert ranks == sorted(ranks)
        assert SensitivityLevel.PUBLIC.rank < SensitivityLevel.RESTRICTED.rank


class TestReports:
    def test_risk_distribution_counts(self) -> None:
        distribution = RiskDistribution()
        distribution.add(TransferRiskLevel.CRITICAL)
        distribution.add(TransferRiskLevel.CRITICAL)
        distribution.add(TransferRiskLevel.LOW)
        assert distribution.critical == 2
        assert distribution.low == 1
        assert distribution.total == 3

    def test_health_report_totals(self) -> None:
        report = HierarchyHealthReport(organization_id=uuid.uuid4())
        assert report.is_healthy
        report.orphaned_recipient_ids.append(uuid.uuid4())
        report.depth_violations.append(uuid.uuid4())
        assert report.total_issues == 2
        assert not report.is_healthy

    def test_documentation_required_follows_mechanism(self) -> None:
        scc = TransferMechanism(
            code="SCC",
            name="Standard Contractual Clauses",
            category=TransferMechanismCategory.SAFEGUARD,
            requires_documentation=True,
        )
        risk = TransferRisk(
            level=TransferRiskLevel.MEDIUM, reason=TransferRiskReason.SAFEGUARDS_IN_PLACE, mechanism=scc
        )
        assert risk.documentation_required
        bare = TransferRisk(level=TransferRiskLevel.CRITICAL, reason=TransferRiskReason.THIRD_COUNTRY_NO_MECHANISM)
        assert not bare.documentation_required


class TestInputParsing:
    def test_service_is_stripped(self) -> None:
        payload = parse_input(
            ProcessingLocationCreate,
            {"service": "  Email delivery  ", "country_id": str(uuid.uuid4()), "location_role": "hosting"},
        )
        assert payload.service == "Email delivery"

    def test_short_service_reports_field(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_input(
                ProcessingLocationCreate,
                {"service": "  ab  ", "country_id": str(uuid.uuid4()), "location_role": "hosting"},
            )
        assert "service" in exc_info.value.field_errors

    def test_unknown_role_reports_field(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_input(
                ProcessingLocationCreate,
                {"service": "Email delivery", "country_id": str(uuid.uuid4()), "location_role": "storage"},
            )
        assert "location_role" in exc_info.value.field_errors

    def test_owner_fields_are_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_input(ProcessingLocationUpdate, {"organization_id": str(uuid.uuid4())})

    def test_service_cannot_be_cleared(self) -> None:
        with pytest.raises(ValidationError):
            parse_input(ProcessingLocationUpdate, {"service": None})

    def test_update_changes_only_contain_given_fields(self) -> None:
        update = parse_input(ProcessingLocationUpdate, {"purpose_text": None, "service": "Backups"})
        assert update.changes() == {"purpose_text": None, "service": "Backups"}

    def test_blank_justification_is_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_input(SpecialCategoryOverrideRequest, {"value": False, "justification": "   "})
        assert "justification" in exc_info.value.field_errors

    def test_instance_passes_through(self) -> None:
        request = SpecialCategoryOverrideRequest(value=True, justification="Contains diagnoses")
        assert parse_input(SpecialCategoryOverrideRequest, request) is request
