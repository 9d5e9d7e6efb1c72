import logging
from typing import Any, Dict, Optional

from backend.src.ingestion.base import NormalizationBase
from backend.src.schemas import HrvMetrics

logger = logging.getLogger("HrvProcessor")

HRV_STATUS_MAP = {
    "balanced": "balanced",
    "optimal": "balanced",
    "good": "balanced",
    "unbalanced": "unbalanced",
    "poor": "unbalanced",
    "low": "low",
    "critical": "low",
}


class HrvProcessor(NormalizationBase):
    metric_type = "hrv"
    model = HrvMetrics

    def __init__(self):
        self.matchers = (
            ("wellness_data", self._match_wellness_data),
            ("hrv_summary", self._match_hrv_summary),
            ("flat", self._match_flat),
        )

    def _match_wellness_data(self, payload: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(payload, dict):
            return None
        entries = self._list(payload.get("wellnessData"))
        if not entries or not isinstance(entries[0], dict):
            return None
        return self._summary_fields(entries[0])

    def _match_hrv_summary(self, payload: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(payload, dict):
            return None
        summary = self._dict(payload.get("hrvSummary"))
        return self._summary_fields(summary) if summary else None

    def _match_flat(self, payload: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(payload, dict) or "lastNightAvg" not in payload:
            return None
        return self._summary_fields(payload)

    def _summary_fields(self, summary: Dict[str, Any]) -> Dict[str, Any]:
        score = self._parse_float(summary.get("lastNightAvg"))
        seven_day = self._parse_float(self._first(summary.get("sevenDayAvg"), summary.get("weeklyAvg")))
        last_night = self._parse_float(summary.get("lastNight"))
        return {
            "score": score,
            "seven_day_avg": seven_day or score,
            "status": self.map_status(summary.get("status")),
            "last_night": last_night or score,
        }

    @staticmethod
    def map_status(raw) -> str:
        if not isinstance(raw, str):
            return "balanced"
        return HRV_STATUS_MAP.get(raw.strip().lower(), "balanced")
