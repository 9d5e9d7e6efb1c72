import logging
from typing import Any, Dict, Optional

from backend.src.ingestion.base import NormalizationBase
from backend.src.schemas import ActivityMetrics

logger = logging.getLogger("ActivityProcessor")


class ActivityProcessor(NormalizationBase):
    metric_type = "steps"
    model = ActivityMetrics

    def __init__(self):
        # Flat daily summary is the current shape; dailyMovement is the legacy one
        self.matchers = (
            ("flat", self._match_flat),
            ("daily_movement", self._match_daily_movement),
        )

    def _match_flat(self, payload: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(payload, dict) or "totalSteps" not in payload:
            return None
        return {
            "steps": self._parse_int(payload.get("totalSteps")),
            "calories": self._parse_int(
                self._first(payload.get("calories"), payload.get("totalKilocalories"))
            ),
            "active_minutes": self._parse_int(payload.get("activeMinutes")),
        }

    def _match_daily_movement(self, payload: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(payload, dict):
            return None
        movement = self._dict(payload.get("dailyMovement"))
        if movement is None:
            return None
        return {
            "steps": self._parse_int(movement.get("totalSteps")),
            "calories": self._parse_int(movement.get("caloriesBurned")),
            "active_minutes": self._seconds_to_minutes(movement.get("activeTimeSeconds")),
        }
