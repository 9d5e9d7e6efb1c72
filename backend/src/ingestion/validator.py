"""Decides whether a fetched Garmin payload carries measured data.

Only payloads judged meaningful here are ever written to ``garmin_raw_data``;
the normalizers rely on that.
"""

import logging
from typing import Any

logger = logging.getLogger("PayloadValidator")

METRIC_TYPES = ("hrv", "sleep", "body_battery", "steps", "stress")

WELLNESS_LIST_TYPES = frozenset({"hrv", "body_battery", "stress"})
STEP_FIELDS = ("totalSteps", "steps")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_meaningful(payload: Any, metric_type: str) -> bool:
    """Returns True if *payload* holds real data for *metric_type*. Never raises."""
    try:
        if payload is None:
            return False
        if isinstance(payload, (dict, list)) and len(payload) == 0:
            return False

        if metric_type in WELLNESS_LIST_TYPES:
            if not isinstance(payload, dict):
                return False
            wellness = payload.get("wellnessData")
            return isinstance(wellness, list) and len(wellness) > 0

        if metric_type == "sleep":
            if not isinstance(payload, dict):
                return False
            daily = payload.get("dailySleepDTO")
            return isinstance(daily, dict) and len(daily) > 0

        if metric_type == "steps":
            if not isinstance(payload, dict):
                return False
            return any(_is_number(payload.get(key)) for key in STEP_FIELDS)

        # Unknown types: anything with at least one key
        return isinstance(payload, dict) and len(payload) > 0
    except (TypeError, AttributeError, ValueError) as e:
        logger.debug(f"Validator rejected malformed {metric_type} payload: {e}")
        return False
