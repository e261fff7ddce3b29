"""Unit tests for the tolerance rule registry."""

import pytest

from manageros.business.errors import RuleValidationError
from manageros.business.tolerance import RuleType
from manageros.services.rule_registry import (
    RULE_MODULES, get_rule_config_schema, get_rule_module, validate_rule_config
)
from manageros.services.rules.one_on_one_frequency import OneOnOneFrequencyConfig


@pytest.mark.unit
class TestRuleRegistry:
    """Test cases for rule type lookup and config validation."""

    def test_every_rule_type_is_registered(self):
        assert set(RULE_MODULES) == set(RuleType)
        for rule_type, module in RULE_MODULES.items():
            assert module.rule_type == rule_type

    def test_lookup_accepts_string_values(self):
        assert get_rule_module("feedback_360") is RULE_MODULES[RuleType.FEEDBACK_360]
        assert get_rule_config_schema(RuleType.ONE_ON_ONE_FREQUENCY) is OneOnOneFrequencyConfig

    def test_unknown_rule_type_is_rejected(self):
        with pytest.raises(RuleValidationError, match="Unknown rule type"):
            get_rule_module("coffee_breaks")

    @pytest.mark.parametrize("rule_type, config", [
        (RuleType.ONE_ON_ONE_FREQUENCY, {"warningThresholdDays": 14, "urgentThresholdDays": 30}),
        (RuleType.INITIATIVE_CHECKIN, {"warningThresholdDays": 7}),
        (RuleType.FEEDBACK_360, {"warningThresholdMonths": 6}),
        (RuleType.MANAGER_SPAN, {"maxDirectReports": 8}),
        (RuleType.MAX_REPORTS, {"maxReports": 10}),
    ])
    def test_valid_configs_round_trip_unchanged(self, rule_type, config):
        assert validate_rule_config(rule_type, config) == config

    def test_optional_flag_is_kept_when_set(self):
        config = validate_rule_config(RuleType.ONE_ON_ONE_FREQUENCY, {
            "warningThresholdDays": 14,
            "urgentThresholdDays": 30,
            "onlyFullTimeEmployees": True,
        })
        assert config["onlyFullTimeEmployees"] is True

    def test_unknown_keys_are_dropped(self):
        config = validate_rule_config(RuleType.MANAGER_SPAN, {"maxDirectReports": 5, "color": "red"})
        assert config == {"maxDirectReports": 5}

    def test_missing_field_is_reported(self):
        with pytest.raises(RuleValidationError) as exc_info:
            validate_rule_config(RuleType.ONE_ON_ONE_FREQUENCY, {"warningThresholdDays": 14})

        assert "urgentThresholdDays" in exc_info.value.message
        assert exc_info.value.errors[0]["loc"] == ["urgentThresholdDays"]

    @pytest.mark.parametrize("value", [0, -3, "14", 14.5, True, None])
    def test_thresholds_must_be_positive_integers(self, value):
        with pytest.raises(RuleValidationError):
            validate_rule_config(RuleType.INITIATIVE_CHECKIN, {"warningThresholdDays": value})

    def test_config_for_another_type_is_rejected(self):
        with pytest.raises(RuleValidationError):
            validate_rule_config(RuleType.FEEDBACK_360, {"warningThresholdDays": 14})

    def test_non_object_config_is_rejected(self):
        with pytest.raises(RuleValidationError, match="expected an object"):
            validate_rule_config(RuleType.MAX_REPORTS, [10])
