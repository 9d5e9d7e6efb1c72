"""
7-dimension wellness framework.

Every dimension is scored 0-3 as the mean of the sub-scores it has inputs
for; a dimension with no inputs at all gets the neutral midpoint. The total
is the plain sum of the seven dimension scores (0-21).
"""

import logging
from typing import Any, Dict, List, Optional

from backend.src.ingestion.processors.sleep import canonical_sleep_quality
from backend.src.schemas import FrameworkDimension, FrameworkScore, NormalizedDailyMetrics

logger = logging.getLogger("FrameworkScorer")

DIMENSIONS = ("koerper", "mind", "soul", "energie", "schlaf", "regeneration", "balance")
MAX_SCORE = 3.0
NEUTRAL_SCORE = 1.5
TREND_THRESHOLD = 0.2

HRV_STATUS_SCORES = {"balanced": 3.0, "unbalanced": 1.5, "low": 0.5}
SLEEP_QUALITY_SCORES = {"excellent": 3.0, "good": 2.25, "fair": 1.5, "poor": 0.5}
ALCOHOL_SCORES = {"kein": 3.0, "ein_glas": 2.0, "moderat": 1.0, "hoch": 0.0}


def _clamp(value: float) -> float:
    return max(0.0, min(MAX_SCORE, value))


def _scaled(value: float, full_at: float) -> float:
    """Linear 0-3 scale reaching the maximum at *full_at*."""
    return _clamp(MAX_SCORE * value / full_at)


def _rating(value) -> Optional[float]:
    """Maps a 1-10 journal rating onto 0-3."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return _clamp((float(value) - 1) / 9 * MAX_SCORE)
    except (TypeError, ValueError):
        return None


def _yes_no(value) -> Optional[float]:
    if value is None:
        return None
    return MAX_SCORE if value else 1.0


def dimension_status(score: float) -> str:
    if score >= 2.5:
        return "optimal"
    if score >= 2.0:
        return "good"
    if score >= 1.5:
        return "needs_attention"
    return "critical"


def overall_assessment(total: float) -> str:
    if total >= 18:
        return "Excellent overall health status"
    if total >= 15:
        return "Good health status with room for optimization"
    if total >= 12:
        return "Moderate health status - action needed"
    return "Poor health status - immediate intervention required"


def trend(score: float, previous: Optional[float]) -> str:
    if previous is None:
        return "stable"
    delta = round(score - previous, 1)
    if delta >= TREND_THRESHOLD:
        return "improving"
    if delta <= -TREND_THRESHOLD:
        return "declining"
    return "stable"


class FrameworkScorer:
    """Deterministic scorer over Garmin metrics and the optional journal entry."""

    def score(
        self,
        metrics: NormalizedDailyMetrics,
        journal: Any = None,
        previous: Optional[FrameworkScore] = None,
    ) -> FrameworkScore:
        sub_scores = self._sub_scores(metrics, journal)

        dimensions: Dict[str, FrameworkDimension] = {}
        for name in DIMENSIONS:
            values = [v for v in sub_scores[name] if v is not None]
            value = round(sum(values) / len(values), 1) if values else NEUTRAL_SCORE
            prev_value = None
            if previous is not None and name in previous.dimensions:
                prev_value = previous.dimensions[name].score
            dimensions[name] = FrameworkDimension(
                score=value,
                status=dimension_status(value),
                trend=trend(value, prev_value),
            )

        total = round(sum(d.score for d in dimensions.values()), 1)
        logger.debug(f"Framework total {total} for {metrics.day}")
        return FrameworkScore(total=total, dimensions=dimensions, assessment=overall_assessment(total))

    def _sub_scores(self, m: NormalizedDailyMetrics, journal: Any) -> Dict[str, List[Optional[float]]]:
        def j(field: str):
            return getattr(journal, field, None) if journal is not None else None

        steps = _scaled(m.activity.steps, 10000) if m.has("steps") else None
        garmin_stress = None
        if m.has("stress") and m.stress.avg > 0:
            garmin_stress = _clamp((100 - m.stress.avg) / 100 * MAX_SCORE)
        journal_stress = _rating(j("stress_level"))
        if journal_stress is not None:
            journal_stress = MAX_SCORE - journal_stress

        alcohol = j("alkohol_konsum")
        alcohol_score = ALCOHOL_SCORES.get(alcohol.strip().lower()) if isinstance(alcohol, str) else None

        battery = m.body_battery if m.has_battery_level() else None
        totals = m.body_battery
        energy_balance = None
        if m.has("body_battery") and (totals.charged or totals.drained):
            energy_balance = _clamp(MAX_SCORE * totals.charged / max(totals.drained, 1))

        sleep_duration = sleep_quality = None
        if m.has("sleep") and m.sleep.duration > 0:
            sleep_duration = _scaled(m.sleep.duration, 480)
            sleep_quality = SLEEP_QUALITY_SCORES[m.sleep.quality]
        journal_sleep = canonical_sleep_quality(j("schlafqualitaet"))

        hrv_status = hrv_ratio = None
        if m.has("hrv") and m.hrv.score > 0:
            hrv_status = HRV_STATUS_SCORES[m.hrv.status]
            if m.hrv.seven_day_avg > 0:
                hrv_ratio = _scaled(m.hrv.score / m.hrv.seven_day_avg, 1.0)

        return {
            "koerper": [steps, _yes_no(j("sport_heute")), alcohol_score],
            "mind": [garmin_stress, journal_stress, _yes_no(j("meditation_heute"))],
            "soul": [_rating(j("werte_zufriedenheit")), _rating(j("tag_bewertung"))],
            "energie": [
                _scaled(battery.end, 100) if battery is not None else None,
                _scaled(battery.max, 100) if battery is not None else None,
            ],
            "schlaf": [
                sleep_duration,
                sleep_quality,
                SLEEP_QUALITY_SCORES[journal_sleep] if journal_sleep else None,
            ],
            "regeneration": [hrv_status, hrv_ratio, alcohol_score],
            "balance": [energy_balance, garmin_stress],
        }
