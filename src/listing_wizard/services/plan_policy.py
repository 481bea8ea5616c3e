"""
Plan Policy - subscription plan configuration and limits
Plans are defined in data/plans.yaml
"""
import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from ..schemas import Plan, PlanLimits

logger = logging.getLogger(__name__)

PLANS_PATH = Path(__file__).parent.parent / "data" / "plans.yaml"

# Resource names accepted by the usage meter, mapped to the limits key
RESOURCE_TYPES = {
    "listings": "listings",
    "aiRequests": "ai_requests",
    "ai_requests": "ai_requests",
}


@lru_cache(maxsize=1)
def _load_plan_config() -> Dict[str, Dict]:
    """Load plan configuration from YAML file"""
    with open(PLANS_PATH, 'r', encoding='utf-8') as f:
        config = yaml.safe_load(f) or {}
    plans = config.get('plans', {})
    logger.debug(f"Loaded {len(plans)} plans from {PLANS_PATH}")
    return plans


def list_plans() -> Dict[str, Dict]:
    """All plan configurations keyed by plan name"""
    return dict(_load_plan_config())


def get_plan_config(plan: str) -> Optional[Dict]:
    """Configuration for one plan, or None if it is not defined"""
    return _load_plan_config().get(Plan(plan).value)


def get_plan_limits(plan: str) -> PlanLimits:
    """
    Monthly limits of a plan

    Args:
        plan: 'free', 'pro' or 'enterprise'

    Returns:
        PlanLimits (-1 for unlimited)
    """
    plan_config = get_plan_config(plan)
    if not plan_config:
        raise ValueError(f"Plan '{plan}' is not configured")
    return PlanLimits.model_validate(plan_config.get('limits', {}))


def limit_for(limits: PlanLimits, resource_type: str) -> int:
    """Pick the limit for a resource type out of a PlanLimits"""
    return getattr(limits, normalize_resource_type(resource_type))


def normalize_resource_type(resource_type: str) -> str:
    """Map 'listings' / 'aiRequests' to the PlanLimits attribute name"""
    try:
        return RESOURCE_TYPES[resource_type]
    except KeyError:
        raise ValueError(
            f"Unknown resource type: {resource_type}. Expected one of: listings, aiRequests"
        ) from None


def plan_summaries() -> List[Dict]:
    """Plan list for display on the pricing page"""
    summaries = []
    for name, plan_config in list_plans().items():
        summaries.append({
            "name": name,
            "display_name": plan_config.get('display_name', name.capitalize()),
            "price_monthly": plan_config.get('price_monthly', 0),
            "features": plan_config.get('features', []),
            "limits": plan_config.get('limits', {}),
        })
    return summaries
