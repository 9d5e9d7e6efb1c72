import logging
from datetime import datetime, timezone
from typing import List, Optional

from backend.src.schemas import Alert, NormalizedDailyMetrics, Recommendation

logger = logging.getLogger("RecommendationEngine")


def generate_recommendations(metrics: NormalizedDailyMetrics) -> List[Recommendation]:
    """Returns recommendations sorted by priority, most urgent first."""
    recommendations: List[Recommendation] = []
    has_hrv = metrics.has("hrv") and metrics.hrv.score > 0

    if has_hrv and metrics.hrv.score < 35:
        recommendations.append(Recommendation(
            priority=1,
            category="Recovery",
            action="Active recovery: light movement, meditation and an early night",
            expected_roi=0.85,
            timing="immediate",
        ))

    if metrics.has("sleep") and 0 < metrics.sleep.duration < 420:
        recommendations.append(Recommendation(
            priority=2,
            category="Sleep",
            action="Extend sleep by 30-60 minutes for better recovery",
            expected_roi=0.75,
            timing="today",
        ))

    if metrics.has("stress") and metrics.stress.avg > 50:
        recommendations.append(Recommendation(
            priority=3,
            category="Stress",
            action="Reduce stress with breathing exercises or a short meditation",
            expected_roi=0.65,
            timing="immediate",
        ))

    return sorted(recommendations, key=lambda r: r.priority)


def detect_alerts(metrics: NormalizedDailyMetrics, now: Optional[datetime] = None) -> List[Alert]:
    triggered = now or datetime.now(timezone.utc)
    alerts: List[Alert] = []

    if metrics.has("hrv") and 0 < metrics.hrv.score < 25:
        alerts.append(Alert(
            severity="critical",
            message="HRV critically low - immediate recovery required",
            triggered=triggered,
        ))

    if metrics.has_battery_level() and metrics.body_battery.end < 20:
        alerts.append(Alert(
            severity="warning",
            message="Body battery critically low - manage your energy",
            triggered=triggered,
        ))

    if metrics.has("sleep") and metrics.sleep.quality == "poor":
        alerts.append(Alert(
            severity="warning",
            message="Poor sleep quality detected - review your sleep hygiene",
            triggered=triggered,
        ))

    if alerts:
        logger.info(f"{len(alerts)} alert(s) raised for {metrics.day}")
    return alerts
