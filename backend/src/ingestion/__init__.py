from .manager import GarminNormalizer
from .validator import METRIC_TYPES, is_meaningful
