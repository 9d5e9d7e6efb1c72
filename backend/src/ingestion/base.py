import math
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from pydantic import BaseModel

logger = logging.getLogger("NormalizerBase")

# A matcher inspects one raw payload and returns the normalized fields it could
# read, or None when the payload is not in its shape.
Matcher = Callable[[Any], Optional[Dict[str, Any]]]


class NormalizationBase:
    """
    Base class for per-metric Garmin processors.
    Provides total parsing helpers (never raise, never return NaN) and the
    ordered shape-matcher dispatch used by every processor.
    """
    metric_type: str = ""
    model: type = BaseModel
    matchers: Sequence[Tuple[str, Matcher]] = ()

    def process(self, payload: Any) -> BaseModel:
        """Tries each shape matcher in order; the first one that matches wins."""
        for name, matcher in self.matchers:
            try:
                fields = matcher(payload)
            except (TypeError, AttributeError, KeyError, IndexError, ValueError) as e:
                logger.debug(f"{self.metric_type}: matcher '{name}' failed on payload: {e}")
                continue
            if fields is not None:
                return self.model(**fields)
        if payload:
            logger.debug(f"{self.metric_type}: no matcher recognized payload, using defaults")
        return self.model()

    # --- Parsing Helpers ---

    @staticmethod
    def _dict(val) -> Optional[Dict[str, Any]]:
        return val if isinstance(val, dict) and val else None

    @staticmethod
    def _list(val) -> List[Any]:
        return val if isinstance(val, list) else []

    @staticmethod
    def _first(*values):
        """Returns the first value that is not None."""
        for val in values:
            if val is not None:
                return val
        return None

    def _parse_float(self, val) -> float:
        if val is None or val == "" or isinstance(val, (bool, dict, list)):
            return 0.0
        try:
            if pd.isna(val):
                return 0.0
            result = float(val)
        except (TypeError, ValueError):
            return 0.0
        return result if math.isfinite(result) else 0.0

    def _parse_int(self, val) -> int:
        # Handle "100.0" strings as 100
        return int(round(self._parse_float(val)))

    def _seconds_to_minutes(self, val) -> int:
        return int(round(self._parse_float(val) / 60))

    def _numbers(self, values) -> List[float]:
        """Parses a list of samples, dropping entries that are not finite numbers."""
        result = []
        for val in values:
            if val is None or isinstance(val, (bool, dict, list)):
                continue
            try:
                if pd.isna(val):
                    continue
                number = float(val)
            except (TypeError, ValueError):
                continue
            if math.isfinite(number):
                result.append(number)
        return result
