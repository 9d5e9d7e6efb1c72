from datetime import date, datetime, timedelta, timezone
from typing import Optional

from backend.src.schemas import NormalizedDailyMetrics

TIMING_NOTE = "HRV measured on this date reflects recovery from the previous day's activities."


def apply_timing(
    normalized: NormalizedDailyMetrics,
    measurement_date: date,
    now: Optional[datetime] = None,
) -> NormalizedDailyMetrics:
    """
    Annotates HRV with the day it physiologically reflects (the day before it
    was measured). Next-day patterns can only be validated for past dates.
    Returns a copy; the input is left untouched.
    """
    today = (now or datetime.now(timezone.utc)).date()

    hrv = normalized.hrv.model_copy(update={
        "reflects_date": measurement_date - timedelta(days=1),
        "measurement_date": measurement_date,
        "can_validate_patterns": measurement_date < today,
    })
    metadata = {
        **normalized.metadata,
        "timingCorrected": True,
        "timingNote": TIMING_NOTE,
    }
    return normalized.model_copy(update={"hrv": hrv, "metadata": metadata})
