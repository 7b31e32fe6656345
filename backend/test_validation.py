"""
backend/test_validation.py

Tests for the opportunity schema validator.

Tests:
1. Complete payloads normalize with defaults applied
2. Re-validating a normalized record yields the same record
3. Every independent violation is reported (no short-circuit)
4. Cross-field investment bounds and fraction boundaries
5. Partial validation for drafts and updates

Run:
    pytest backend/test_validation.py -v
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from backend.models import OpportunityStatus, PropertyType
from backend.validation import NOT_A_MAPPING, validate, validate_partial


def paths(result):
    return [e.path for e in result.errors]


def minimal_payload(**overrides):
    payload = {
        "opportunity_name": "Harbor Point Retail",
        "property_address": {"street": "1 Harbor Way", "city": "Tampa", "state": "FL", "zip": "33602"},
        "property_type": "retail",
        "total_project_cost": 3000000,
        "equity_requirement": 1000000,
        "minimum_investment": 25000,
        "target_raise_amount": 1000000,
    }
    payload.update(overrides)
    return payload


class TestValidateComplete:

    def test_minimal_payload_gets_defaults(self):
        result = validate(minimal_payload())

        assert result.ok
        record = result.value
        assert record.status == OpportunityStatus.draft
        assert record.property_type == PropertyType.retail
        assert record.property_address.country == "US"
        assert record.public_listing is False
        assert record.featured_listing is False
        assert record.accredited_only is True

    def test_full_payload_is_normalized(self, opportunity_payload):
        result = validate(opportunity_payload(minimum_investment="50000.10"))

        assert result.ok, result.errors
        assert result.value.property_address.state == "TX"
        assert result.value.minimum_investment == Decimal("50000.10")

    def test_revalidating_normalized_record_is_idempotent(self, opportunity_payload):
        first = validate(opportunity_payload())
        second = validate(first.value.model_dump())

        assert second.ok
        assert second.value == first.value

    def test_owner_and_id_are_never_taken_from_payload(self):
        result = validate(minimal_payload(owner_id="attacker", id="fixed-id"))

        assert result.ok
        dumped = result.value.model_dump()
        assert "owner_id" not in dumped
        assert "id" not in dumped

    @pytest.mark.parametrize("candidate", [None, [1, 2], "opportunity", 42])
    def test_non_mapping_is_single_root_error(self, candidate):
        result = validate(candidate)

        assert not result.ok
        assert len(result.errors) == 1
        assert result.errors[0].path == ""
        assert result.errors[0].message == NOT_A_MAPPING

    def test_independent_violations_are_all_reported(self):
        result = validate(minimal_payload(
            projected_irr=1.5,
            minimum_investment=-5,
            property_address={"street": "1 Harbor Way", "city": "Tampa", "state": "FLA", "zip": "33602"},
        ))

        assert not result.ok
        assert sorted(paths(result)) == sorted(["projected_irr", "minimum_investment", "property_address.state"])

    def test_missing_required_field(self):
        payload = minimal_payload()
        del payload["property_type"]

        result = validate(payload)

        assert paths(result) == ["property_type"]
        assert result.errors[0].message == "Property type is required"

    def test_blank_name_is_rejected(self):
        result = validate(minimal_payload(opportunity_name="   "))

        assert paths(result) == ["opportunity_name"]

    def test_enum_error_lists_allowed_values(self):
        result = validate(minimal_payload(property_type="castle"))

        assert paths(result) == ["property_type"]
        message = result.errors[0].message
        assert "property_type" in message
        for allowed in ("multifamily", "retail", "office", "industrial", "land", "mixed_use"):
            assert allowed in message

    def test_nested_paths_are_dotted(self):
        result = validate(minimal_payload(
            property_address={"street": "1 Harbor Way", "city": "Tampa", "state": "FL", "zip": "336"},
            geographic_restrictions=["FL", ""],
        ))

        assert sorted(paths(result)) == ["geographic_restrictions.1", "property_address.zip"]

    def test_state_must_be_two_characters(self):
        result = validate(minimal_payload(
            property_address={"street": "1 Harbor Way", "city": "Tampa", "state": "F", "zip": "33602"},
        ))

        assert paths(result) == ["property_address.state"]
        assert result.errors[0].message == "State must be 2 characters"

    def test_geographic_restrictions_are_upper_cased_and_deduplicated(self):
        result = validate(minimal_payload(geographic_restrictions=["tx", "FL", "TX"]))

        assert result.ok
        assert result.value.geographic_restrictions == ["TX", "FL"]


class TestFieldRules:

    @pytest.mark.parametrize("value", [0, 1, 0.5])
    def test_fraction_boundaries_accepted(self, value):
        assert validate(minimal_payload(projected_irr=value, loan_to_cost_ratio=value)).ok

    @pytest.mark.parametrize("value", [-0.01, 1.0001])
    def test_fraction_out_of_range_rejected(self, value):
        result = validate(minimal_payload(projected_irr=value))

        assert paths(result) == ["projected_irr"]

    @pytest.mark.parametrize("field", ["total_project_cost", "equity_requirement", "minimum_investment"])
    def test_amounts_must_be_positive(self, field):
        result = validate(minimal_payload(**{field: 0}))

        assert field in paths(result)
        assert any(e.message.endswith("must be positive") for e in result.errors)

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_numbers_rejected(self, value):
        result = validate(minimal_payload(projected_irr=value, debt_amount=value))

        assert "projected_irr" in paths(result)
        assert "debt_amount" in paths(result)

    def test_return_multiple_below_one_rejected(self):
        result = validate(minimal_payload(projected_total_return_multiple=0.9))

        assert paths(result) == ["projected_total_return_multiple"]

    @pytest.mark.parametrize("field,value", [
        ("projected_irr", True),
        ("projected_irr", "0.5"),
        ("projected_total_return_multiple", False),
    ])
    def test_ratios_reject_booleans_and_strings(self, field, value):
        result = validate(minimal_payload(**{field: value}))

        assert paths(result) == [field]
        assert result.errors[0].message.endswith("must be a number")

    @pytest.mark.parametrize("field,value", [
        ("public_listing", "yes"),
        ("featured_listing", 1),
        ("accredited_only", "false"),
    ])
    def test_visibility_flags_must_be_booleans(self, field, value):
        result = validate(minimal_payload(**{field: value}))

        assert paths(result) == [field]
        assert result.errors[0].message.endswith("must be true or false")

    def test_partial_update_rejects_boolean_ratio(self):
        result = validate_partial({"projected_irr": True})

        assert paths(result) == ["projected_irr"]

    def test_fundraising_deadline_must_be_in_future(self):
        past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        future = (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()

        assert paths(validate(minimal_payload(fundraising_deadline=past))) == ["fundraising_deadline"]
        assert validate(minimal_payload(fundraising_deadline=future)).ok

    def test_unparseable_dates_rejected(self):
        result = validate(minimal_payload(expected_closing_date="next spring"))

        assert paths(result) == ["expected_closing_date"]

    def test_other_timeline_dates_may_be_in_past(self):
        assert validate(minimal_payload(expected_closing_date="2001-06-30")).ok

    def test_year_built_range(self):
        next_year = datetime.now().year + 1

        assert paths(validate(minimal_payload(year_built=1799))) == ["year_built"]
        result = validate(minimal_payload(year_built=next_year))
        assert paths(result) == ["year_built"]
        assert result.errors[0].message == "Year built cannot be in the future"
        assert validate(minimal_payload(year_built=1800)).ok


class TestCrossFieldRules:

    def test_maximum_equal_to_minimum_is_valid(self):
        assert validate(minimal_payload(minimum_investment=25000, maximum_investment=25000)).ok

    def test_maximum_below_minimum(self):
        result = validate(minimal_payload(minimum_investment=25000, maximum_investment="24999.99"))

        assert paths(result) == ["maximum_investment"]

    def test_target_raise_below_minimum(self):
        result = validate(minimal_payload(minimum_investment=25000, target_raise_amount=20000))

        assert paths(result) == ["target_raise_amount"]

    def test_both_bounds_violated_reports_both(self):
        result = validate(minimal_payload(
            minimum_investment=25000, maximum_investment=10000, target_raise_amount=20000,
        ))

        assert paths(result) == ["maximum_investment", "target_raise_amount"]

    def test_cross_field_skipped_when_operand_already_invalid(self):
        result = validate(minimal_payload(minimum_investment="lots", maximum_investment=10))

        assert paths(result) == ["minimum_investment"]


class TestValidatePartial:

    def test_empty_patch_is_valid_and_injects_nothing(self):
        result = validate_partial({})

        assert result.ok
        assert result.value.changes() == {}

    def test_only_supplied_keys_are_changes(self):
        result = validate_partial({"projected_irr": 0.2, "status": "fundraising"})

        assert result.ok
        assert result.value.changes() == {"projected_irr": 0.2, "status": OpportunityStatus.fundraising}

    def test_per_field_rules_still_apply(self):
        result = validate_partial({"projected_irr": 2, "property_type": "castle"})

        assert sorted(paths(result)) == ["projected_irr", "property_type"]

    def test_null_for_required_field_rejected(self):
        result = validate_partial({"property_type": None})

        assert paths(result) == ["property_type"]
        assert result.errors[0].message == "Property type cannot be null"

    def test_null_clears_optional_field(self):
        result = validate_partial({"maximum_investment": None})

        assert result.ok
        assert result.value.changes() == {"maximum_investment": None}

    def test_cross_field_when_both_present(self):
        result = validate_partial({"minimum_investment": 100, "maximum_investment": 50})

        assert paths(result) == ["maximum_investment"]

    def test_cross_field_skipped_when_one_operand_absent(self):
        assert validate_partial({"maximum_investment": 50}).ok

    def test_cross_field_uses_existing_record(self):
        existing = {"minimum_investment": Decimal("25000"), "target_raise_amount": Decimal("1000000")}

        result = validate_partial({"maximum_investment": 50}, existing=existing)

        assert paths(result) == ["maximum_investment"]

    def test_non_mapping_rejected(self):
        result = validate_partial("draft")

        assert paths(result) == [""]
