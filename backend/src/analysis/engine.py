import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from backend.src.ingestion import GarminNormalizer
from backend.src.schemas import AnalysisResult, NormalizedDailyMetrics, TimeContext
from backend.src.storage import RawDataStore
from .framework import FrameworkScorer
from .patterns import detect_patterns
from .recommendations import detect_alerts, generate_recommendations
from .timing import apply_timing

logger = logging.getLogger("AnalysisEngine")

ANALYSIS_TYPES = ("daily", "weekly", "retrospective", "emergency")


def seasonality(day: date) -> str:
    if 3 <= day.month <= 5:
        return "spring"
    if 6 <= day.month <= 8:
        return "summer"
    if 9 <= day.month <= 11:
        return "autumn"
    return "winter"


def time_context(day: date, analysis_type: str) -> TimeContext:
    return TimeContext(
        analysis_date=day,
        analysis_type=analysis_type,
        day_of_week=day.weekday(),
        is_weekend=day.weekday() >= 5,
        seasonality=seasonality(day),
    )


class AnalysisEngine:
    """
    Runs the daily analysis for one user and date: loads the stored Garmin
    records, normalizes and timing-corrects them, then scores the framework
    and derives patterns, recommendations and alerts.
    """
    def __init__(
        self,
        store: RawDataStore,
        normalizer: Optional[GarminNormalizer] = None,
        scorer: Optional[FrameworkScorer] = None,
    ):
        self.store = store
        self.normalizer = normalizer or GarminNormalizer()
        self.scorer = scorer or FrameworkScorer()

    def load_metrics(self, user_id: str, day: date, now: Optional[datetime] = None) -> NormalizedDailyMetrics:
        records = self.store.select_by_user_and_date(user_id, day)
        return apply_timing(self.normalizer.normalize(records, day=day), day, now=now)

    def run_full_analysis(
        self,
        user_id: str,
        day: date,
        analysis_type: str = "daily",
        now: Optional[datetime] = None,
    ) -> AnalysisResult:
        if analysis_type not in ANALYSIS_TYPES:
            raise ValueError(f"Unknown analysis type '{analysis_type}'")

        now = now or datetime.now(timezone.utc)
        logger.info(f"Running {analysis_type} analysis for user {user_id} on {day}")

        context = time_context(day, analysis_type)
        metrics = self.load_metrics(user_id, day, now=now)
        if metrics.is_empty:
            logger.info(f"No Garmin data for user {user_id} on {day}; rules will not fire")

        previous_metrics = self.load_metrics(user_id, day - timedelta(days=1), now=now)
        previous_journal = self.store.journal_entry(user_id, day - timedelta(days=1))
        previous = None
        if not previous_metrics.is_empty or previous_journal is not None:
            previous = self.scorer.score(previous_metrics, previous_journal)

        framework = self.scorer.score(metrics, self.store.journal_entry(user_id, day), previous)

        return AnalysisResult(
            patterns=detect_patterns(metrics),
            recommendations=generate_recommendations(metrics),
            alerts=detect_alerts(metrics, now=now),
            framework=framework,
            context=context,
        )
