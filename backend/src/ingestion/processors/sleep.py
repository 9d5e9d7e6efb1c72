import logging
from typing import Any, Dict, Optional

from backend.src.ingestion.base import NormalizationBase
from backend.src.schemas import SleepMetrics

logger = logging.getLogger("SleepProcessor")

# Journal answers are recorded in German; both spellings share one ordinal scale.
SLEEP_QUALITY_ALIASES = {
    "poor": "poor",
    "schlecht": "poor",
    "fair": "fair",
    "okay": "fair",
    "good": "good",
    "gut": "good",
    "excellent": "excellent",
    "sehr_gut": "excellent",
}

SLEEP_QUALITY_ORDER = ("poor", "fair", "good", "excellent")


def sleep_quality_from_score(score: float) -> str:
    if score >= 80:
        return "excellent"
    if score >= 70:
        return "good"
    if score >= 50 or score <= 0:
        return "fair"
    return "poor"


def canonical_sleep_quality(value) -> Optional[str]:
    """Maps an English or German quality label onto the canonical scale."""
    if not isinstance(value, str):
        return None
    return SLEEP_QUALITY_ALIASES.get(value.strip().lower().replace(" ", "_"))


class SleepProcessor(NormalizationBase):
    metric_type = "sleep"
    model = SleepMetrics

    def __init__(self):
        self.matchers = (
            ("daily_sleep_dto", self._match_daily_sleep_dto),
        )

    def _match_daily_sleep_dto(self, payload: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(payload, dict):
            return None
        dto = self._dict(payload.get("dailySleepDTO"))
        if dto is None:
            return None

        return {
            "duration": self._seconds_to_minutes(dto.get("sleepTimeSeconds")),
            "deep_sleep": self._seconds_to_minutes(dto.get("deepSleepSeconds")),
            "light_sleep": self._seconds_to_minutes(dto.get("lightSleepSeconds")),
            "rem_sleep": self._seconds_to_minutes(dto.get("remSleepSeconds")),
            "awake": self._seconds_to_minutes(
                self._first(dto.get("awakeSleepSeconds"), dto.get("awakeTimeSeconds"))
            ),
            "quality": sleep_quality_from_score(self._sleep_score(dto)),
        }

    def _sleep_score(self, dto: Dict[str, Any]) -> float:
        if dto.get("sleepScore") is not None:
            return self._parse_float(dto.get("sleepScore"))
        scores = dto.get("sleepScores")
        if not isinstance(scores, dict):
            return 0.0
        overall = scores.get("overall")
        if isinstance(overall, dict):
            return self._parse_float(overall.get("value"))
        return self._parse_float(overall)
