import logging
from typing import Any, Dict, List, Optional

from backend.src.ingestion.base import NormalizationBase
from backend.src.schemas import BodyBatteryMetrics

logger = logging.getLogger("BodyBatteryProcessor")


class BodyBatteryProcessor(NormalizationBase):
    """
    Garmin has shipped body battery as explicit start/end/min/max levels, as a
    list of ``bodyBatteryData`` samples, and as ``wellnessData`` value samples.
    Explicit levels win; anything missing is derived from the samples.
    ``has_levels`` stays False when the payload only carried charge totals.
    """
    metric_type = "body_battery"
    model = BodyBatteryMetrics

    def __init__(self):
        self.matchers = (
            ("levels", self._match_levels),
        )

    def _match_levels(self, payload: Any) -> Optional[Dict[str, Any]]:
        if isinstance(payload, list):
            # Some endpoints wrap the daily summary in a one-element list
            payload = payload[0] if payload and isinstance(payload[0], dict) else None
        if not isinstance(payload, dict):
            return None

        samples = self._samples(payload)
        explicit = {
            "start": self._first(payload.get("startLevel"), payload.get("start")),
            "end": self._first(payload.get("endLevel"), payload.get("end")),
            "min": self._first(payload.get("minLevel"), payload.get("min")),
            "max": self._first(payload.get("maxLevel"), payload.get("max")),
        }
        entry = self._wellness_entry(payload)
        charged = self._first(
            payload.get("charged"), payload.get("bodyBatteryChargedValue"), entry.get("charged")
        )
        drained = self._first(
            payload.get("drained"), payload.get("bodyBatteryDrainedValue"), entry.get("drained")
        )
        has_levels = bool(samples) or any(v is not None for v in explicit.values())
        if not has_levels and charged is None and drained is None:
            return None

        derived = {}
        if samples:
            derived = {
                "start": samples[0],
                "end": samples[-1],
                "min": min(samples),
                "max": max(samples),
            }

        fields = {}
        for key, value in explicit.items():
            fields[key] = self._parse_int(value if value is not None else derived.get(key))
        fields["charged"] = self._parse_int(charged)
        fields["drained"] = self._parse_int(drained)
        fields["has_levels"] = has_levels
        return fields

    def _wellness_entry(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        entries = self._list(payload.get("wellnessData"))
        return entries[0] if entries and isinstance(entries[0], dict) else {}

    def _samples(self, payload: Dict[str, Any]) -> List[float]:
        battery_data = self._list(payload.get("bodyBatteryData"))
        if battery_data:
            return self._numbers(
                sample.get("bodyBatteryLevel") for sample in battery_data if isinstance(sample, dict)
            )
        wellness = self._list(payload.get("wellnessData"))
        return self._numbers(
            sample.get("value") for sample in wellness if isinstance(sample, dict)
        )
