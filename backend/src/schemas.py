"""Canonical data model shared by ingestion, sync and analysis.

Fields are snake_case in Python and serialize as camelCase (``sevenDayAvg``,
``dataPointsSynced``) for the dashboard.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

HrvStatus = Literal["balanced", "unbalanced", "low"]
SleepQuality = Literal["poor", "fair", "good", "excellent"]
Impact = Literal["positive", "negative", "neutral"]
Timing = Literal["immediate", "today", "this_week"]
Severity = Literal["info", "warning", "critical"]


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True

# --- Normalized Garmin Data ---

class HrvMetrics(CamelModel):
    score: float = 0
    seven_day_avg: float = 0
    status: HrvStatus = "balanced"
    last_night: float = 0

    # Set by the timing correction step
    reflects_date: Optional[date] = None
    measurement_date: Optional[date] = None
    can_validate_patterns: Optional[bool] = None

class BodyBatteryMetrics(CamelModel):
    start: int = 0
    end: int = 0
    min: int = 0
    max: int = 0
    charged: int = 0
    drained: int = 0
    # False when no level was reported; the levels above are then placeholders
    has_levels: bool = False

class SleepMetrics(CamelModel):
    duration: int = 0  # minutes
    deep_sleep: int = 0
    light_sleep: int = 0
    rem_sleep: int = 0
    awake: int = 0
    quality: SleepQuality = "fair"

class StressMetrics(CamelModel):
    avg: float = 0
    max: float = 0
    resting_periods: int = 0

class ActivityMetrics(CamelModel):
    steps: int = 0
    calories: int = 0
    active_minutes: int = 0

class NormalizedDailyMetrics(CamelModel):
    day: Optional[date] = Field(default=None, alias="date")
    hrv: HrvMetrics = Field(default_factory=HrvMetrics)
    body_battery: BodyBatteryMetrics = Field(default_factory=BodyBatteryMetrics)
    sleep: SleepMetrics = Field(default_factory=SleepMetrics)
    stress: StressMetrics = Field(default_factory=StressMetrics)
    activity: ActivityMetrics = Field(default_factory=ActivityMetrics)
    available_types: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def has(self, metric_type: str) -> bool:
        return metric_type in self.available_types

    def has_battery_level(self) -> bool:
        return self.has("body_battery") and self.body_battery.has_levels

    @property
    def is_empty(self) -> bool:
        return not self.available_types

# --- Analysis ---

class Pattern(CamelModel):
    type: str
    confidence: float
    description: str
    impact: Impact

class Recommendation(CamelModel):
    priority: int
    category: str
    action: str
    expected_roi: float = Field(alias="expectedROI")
    timing: Timing

class Alert(CamelModel):
    severity: Severity
    message: str
    triggered: datetime

class FrameworkDimension(CamelModel):
    score: float
    status: str
    trend: str

class FrameworkScore(CamelModel):
    total: float
    dimensions: Dict[str, FrameworkDimension]
    assessment: str

class TimeContext(CamelModel):
    analysis_date: date
    analysis_type: str
    day_of_week: int  # Monday = 0
    is_weekend: bool
    seasonality: str

class AnalysisResult(CamelModel):
    patterns: List[Pattern] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    alerts: List[Alert] = Field(default_factory=list)
    framework: Optional[FrameworkScore] = None
    context: Optional[TimeContext] = None

# --- Sync ---

class SyncResult(CamelModel):
    success: bool
    data_points_synced: int = 0
    empty_responses: int = 0
    date_range: str = ""
    errors: List[str] = Field(default_factory=list)
    message: str = ""

class AutoSyncResult(CamelModel):
    success: bool
    synced_users: int = 0
    errors: int = 0
    error_details: List[str] = Field(default_factory=list)
    message: str = ""

class ConnectionTestResult(CamelModel):
    success: bool
    message: str

class DataQualityReport(CamelModel):
    total_records: int
    meaningful_records: int
    empty_records: int
    data_types: Dict[str, int]
    last_sync: Optional[datetime] = None
    sample_data: List[Dict[str, Any]] = Field(default_factory=list)
