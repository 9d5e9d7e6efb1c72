from .engine import ANALYSIS_TYPES, AnalysisEngine
from .framework import FrameworkScorer
from .patterns import detect_patterns
from .recommendations import detect_alerts, generate_recommendations
from .timing import apply_timing
