import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from backend.src.schemas import NormalizedDailyMetrics
from .validator import METRIC_TYPES
from .processors.hrv import HrvProcessor
from .processors.sleep import SleepProcessor
from .processors.body_battery import BodyBatteryProcessor
from .processors.activity import ActivityProcessor
from .processors.stress import StressProcessor

logger = logging.getLogger("Normalizer")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _field(record: Any, name: str):
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def _sort_key(record: Any) -> datetime:
    created = _field(record, "created_at")
    if not isinstance(created, datetime):
        return _EPOCH
    # SQLite hands back naive datetimes for tz-aware columns
    return created if created.tzinfo else created.replace(tzinfo=timezone.utc)


class GarminNormalizer:
    """
    Turns the raw Garmin records stored for one (user, date) into the
    canonical NormalizedDailyMetrics. Never raises on malformed payloads.
    """
    def __init__(self):
        self.hrv_processor = HrvProcessor()
        self.sleep_processor = SleepProcessor()
        self.body_battery_processor = BodyBatteryProcessor()
        self.activity_processor = ActivityProcessor()
        self.stress_processor = StressProcessor()

    def normalize(self, records: Optional[Iterable[Any]], day=None) -> NormalizedDailyMetrics:
        latest = self._latest_by_type(records or [])

        if day is None and latest:
            day = _field(next(iter(latest.values())), "data_date")

        result = NormalizedDailyMetrics(
            day=day,
            hrv=self.hrv_processor.process(self._payload(latest, "hrv")),
            sleep=self.sleep_processor.process(self._payload(latest, "sleep")),
            body_battery=self.body_battery_processor.process(self._payload(latest, "body_battery")),
            activity=self.activity_processor.process(self._payload(latest, "steps")),
            stress=self.stress_processor.process(self._payload(latest, "stress")),
            available_types=[t for t in METRIC_TYPES if t in latest],
        )
        logger.debug(f"Normalized {len(latest)} metric types for {day}: {result.available_types}")
        return result

    def _latest_by_type(self, records: Iterable[Any]) -> Dict[str, Any]:
        """Keeps the most recently created record per metric type."""
        latest: Dict[str, Any] = {}
        for record in sorted(records, key=_sort_key):
            data_type = _field(record, "data_type")
            if data_type in METRIC_TYPES:
                latest[data_type] = record
        return latest

    @staticmethod
    def _payload(latest: Dict[str, Any], data_type: str):
        record = latest.get(data_type)
        return _field(record, "raw_json") if record is not None else None
