# ==== TOLERANCE RULE REGISTRY ==== #

"""
Registry of tolerance rule types for ManagerOS.

Maps each rule type to its configuration model and check coroutine, and
validates raw configuration dictionaries against the model for their type.
"""

from typing import Any, Dict, List, Type

from pydantic import ValidationError

from manageros.business.errors import RuleValidationError
from manageros.business.tolerance import RuleType
from manageros.services.rules import (
    feedback_360,
    initiative_checkin,
    manager_span,
    max_reports,
    one_on_one_frequency,
)
from manageros.services.rules.base import RuleConfig, RuleModule


RULE_MODULES: Dict[RuleType, RuleModule] = {
    module.RULE.rule_type: module.RULE
    for module in (
        one_on_one_frequency,
        initiative_checkin,
        feedback_360,
        manager_span,
        max_reports,
    )
}


def _coerce_rule_type(rule_type: Any) -> RuleType:
    try:
        return RuleType(rule_type)
    except ValueError:
        raise RuleValidationError(f"Unknown rule type: {rule_type}")


def get_rule_module(rule_type: Any) -> RuleModule:
    """
    Get the check module for a rule type.

    Args:
        rule_type: Rule type enum member or its string value

    Returns:
        RuleModule: Configuration model and evaluate coroutine

    Raises:
        RuleValidationError: If the rule type is not registered
    """
    return RULE_MODULES[_coerce_rule_type(rule_type)]


def get_rule_config_schema(rule_type: Any) -> Type[RuleConfig]:
    """Get the configuration model for a rule type."""
    return get_rule_module(rule_type).config_model


def format_validation_errors(errors: List[Dict[str, Any]]) -> str:
    """Render pydantic errors as ``field: message`` pairs."""
    parts = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ())) or "config"
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


def parse_rule_config(rule_type: Any, config: Any) -> RuleConfig:
    """
    Validate a raw configuration against the model for its rule type.

    Args:
        rule_type: Rule type enum member or its string value
        config: Raw configuration, normally a camelCase dictionary

    Returns:
        RuleConfig: Parsed configuration model

    Raises:
        RuleValidationError: If the type is unknown or the config is invalid
    """
    model = get_rule_config_schema(rule_type)

    if not isinstance(config, dict):
        raise RuleValidationError("Invalid config: expected an object")

    try:
        return model.model_validate(config)
    except ValidationError as e:
        errors = e.errors(include_url=False, include_context=False)
        raise RuleValidationError(
            f"Invalid config: {format_validation_errors(errors)}",
            errors=[
                {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
                for err in errors
            ],
        )


def validate_rule_config(rule_type: Any, config: Any) -> Dict[str, Any]:
    """Validate a configuration and return its normalized camelCase form."""
    parsed = parse_rule_config(rule_type, config)
    return parsed.model_dump(by_alias=True, exclude_none=True)
