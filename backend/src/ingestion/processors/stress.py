import logging
from typing import Any, Dict, Optional

from backend.src.ingestion.base import NormalizationBase
from backend.src.schemas import StressMetrics

logger = logging.getLogger("StressProcessor")


class StressProcessor(NormalizationBase):
    """
    The daily stress endpoint returns a ``wellnessData`` list whose first entry
    carries ``value`` (average) and ``max``; older payloads were a flat summary.
    """
    metric_type = "stress"
    model = StressMetrics

    def __init__(self):
        self.matchers = (
            ("wellness_data", self._match_wellness_data),
            ("flat", self._match_flat),
        )

    def _match_wellness_data(self, payload: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(payload, dict):
            return None
        entries = self._list(payload.get("wellnessData"))
        if not entries or not isinstance(entries[0], dict):
            return None
        entry = entries[0]
        return self._summary_fields(
            self._first(entry.get("value"), entry.get("averageStressLevel"), entry.get("avgStressLevel")),
            self._first(entry.get("max"), entry.get("maxStressLevel")),
        )

    def _match_flat(self, payload: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(payload, dict):
            return None
        return self._summary_fields(
            self._first(payload.get("avgStressLevel"), payload.get("averageStressLevel")),
            payload.get("maxStressLevel"),
        )

    def _summary_fields(self, avg, peak) -> Optional[Dict[str, Any]]:
        if avg is None and peak is None:
            return None
        # Garmin does not report resting periods in the daily stress summary
        return {
            "avg": self._parse_float(avg),
            "max": self._parse_float(peak),
            "resting_periods": 0,
        }
