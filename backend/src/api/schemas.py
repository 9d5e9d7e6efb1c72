from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from backend.src.schemas import CamelModel

# --- Requests ---

class BulkSyncRequest(CamelModel):
    weeks_past: Optional[int] = Field(default=None, ge=1, le=52)

class CredentialsRequest(CamelModel):
    email: str
    password: str
    user_id: Optional[str] = None

class SettingsRequest(BaseModel):
    request_delay_seconds: Optional[float] = Field(default=None, ge=0)
    request_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    fetch_max_attempts: Optional[int] = Field(default=None, ge=1, le=10)
    retry_backoff_seconds: Optional[float] = Field(default=None, ge=0)
    sync_deadline_seconds: Optional[float] = Field(default=None, gt=0)
    auto_sync_enabled: Optional[bool] = None
    auto_sync_interval_minutes: Optional[int] = Field(default=None, ge=1)
    auto_sync_threshold_hours: Optional[float] = Field(default=None, ge=0)
    default_weeks_past: Optional[int] = Field(default=None, ge=1, le=52)
    fallback_account_id: Optional[str] = None

# --- Responses ---

class CleanResponse(BaseModel):
    deleted: int

class MessageResponse(BaseModel):
    message: str

class SyncLogResponse(CamelModel):
    id: str
    sync_type: str
    status: str
    data_points_synced: Optional[int] = None
    error_message: Optional[str] = None
    sync_duration_ms: Optional[int] = None
    sync_timestamp: datetime
