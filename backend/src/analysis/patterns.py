import logging
from typing import List

from backend.src.schemas import NormalizedDailyMetrics, Pattern

logger = logging.getLogger("PatternDetector")

SHORT_SLEEP_MINUTES = 420
LOW_BODY_BATTERY_END = 30
RECOVERY_RATIO = 1.1


def detect_patterns(metrics: NormalizedDailyMetrics) -> List[Pattern]:
    """
    Evaluates each rule independently; a rule whose metric is missing is skipped.
    Confidences are fixed per rule.
    """
    patterns: List[Pattern] = []
    has_hrv = metrics.has("hrv") and metrics.hrv.score > 0

    if metrics.has("sleep") and has_hrv and 0 < metrics.sleep.duration < SHORT_SLEEP_MINUTES:
        patterns.append(Pattern(
            type="sleep_hrv_correlation",
            confidence=0.85,
            description="Insufficient sleep correlates with lower HRV recovery",
            impact="negative",
        ))

    if metrics.has_battery_level() and metrics.body_battery.end < LOW_BODY_BATTERY_END:
        patterns.append(Pattern(
            type="energy_depletion",
            confidence=0.78,
            description="Critical energy depletion detected - recovery needed",
            impact="negative",
        ))

    if has_hrv and metrics.hrv.score > RECOVERY_RATIO * metrics.hrv.seven_day_avg:
        patterns.append(Pattern(
            type="optimal_recovery",
            confidence=0.92,
            description="Above-average recovery - ready for high performance",
            impact="positive",
        ))

    if patterns:
        logger.debug(f"Detected patterns: {[p.type for p in patterns]}")
    return patterns
