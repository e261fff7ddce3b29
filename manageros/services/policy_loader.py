# ==== POLICY LOADER SERVICE ==== #

"""
Policy loader for default tolerance rule templates.

Loads the YAML templates used to seed an organization's tolerance rules and
the fallback thresholds used by people statistics when an organization has
not configured the corresponding rule.
"""

import functools
import os
from typing import Any, Dict, Optional

import yaml

from manageros.business.tolerance import RuleType
from manageros.observability.tracing import get_tracer
from manageros.settings import settings


tracer = get_tracer(__name__)

DEFAULT_POLICY_PATH = os.path.join(
    os.path.dirname(__file__),
    "..",
    "business",
    "policies",
    "default_tolerance_rules.yaml"
)

# Used when the policy file cannot be read
FALLBACK_TEMPLATES: Dict[str, Dict[str, Any]] = {
    RuleType.ONE_ON_ONE_FREQUENCY.value: {
        "name": "Regular 1:1s",
        "is_enabled": True,
        "config": {"warningThresholdDays": 14, "urgentThresholdDays": 30},
    },
    RuleType.INITIATIVE_CHECKIN.value: {
        "name": "Initiative check-ins",
        "is_enabled": True,
        "config": {"warningThresholdDays": 14},
    },
    RuleType.FEEDBACK_360.value: {
        "name": "360 feedback cadence",
        "is_enabled": True,
        "config": {"warningThresholdMonths": 6},
    },
    RuleType.MANAGER_SPAN.value: {
        "name": "Manager span of control",
        "is_enabled": True,
        "config": {"maxDirectReports": 8},
    },
}


# ==== TEMPLATE LOADING ==== #


@functools.lru_cache(maxsize=8)
def _load_templates(config_path: str) -> Dict[str, Dict[str, Any]]:
    with tracer.start_as_current_span("load_tolerance_policy") as span:
        span.set_attribute("config_path", config_path)

        try:
            with open(config_path, "r") as f:
                templates = yaml.safe_load(f) or {}

            span.set_attribute("config_loaded", True)
            return templates

        except FileNotFoundError:
            span.set_attribute("config_loaded", False)
            span.set_attribute("fallback_used", True)
            return FALLBACK_TEMPLATES


def get_default_rule_templates(config_path: Optional[str] = None) -> Dict[RuleType, Dict[str, Any]]:
    """
    Get default rule templates keyed by rule type.

    Args:
        config_path (Optional[str]): Policy file, defaults to
                                     TOLERANCE_POLICY_PATH or the bundled file

    Returns:
        Dict[RuleType, Dict[str, Any]]: name, description, is_enabled and
                                        config of each template
    """
    path = config_path or settings.TOLERANCE_POLICY_PATH or DEFAULT_POLICY_PATH
    templates = _load_templates(os.path.abspath(path))

    # Unknown rule types in the file are ignored
    return {
        RuleType(rule_type): dict(template)
        for rule_type, template in templates.items()
        if rule_type in RuleType._value2member_map_
    }


def get_default_threshold(rule_type: RuleType, key: str, default: int) -> int:
    """Get one configured default threshold, e.g. ``warningThresholdDays``."""
    template = get_default_rule_templates().get(rule_type, {})
    value = (template.get("config") or {}).get(key)
    return value if isinstance(value, int) and value > 0 else default
