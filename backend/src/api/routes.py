import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..analysis import AnalysisEngine
from ..config import config_manager
from ..database import SessionLocal, get_db
from ..exceptions import StorageError, SyncInProgressError
from ..schemas import (
    AnalysisResult,
    AutoSyncResult,
    ConnectionTestResult,
    DataQualityReport,
    NormalizedDailyMetrics,
    SyncResult,
)
from ..storage import RawDataStore
from ..sync import SyncOrchestrator
from .auth import get_current_user_id, require_service_token
from .schemas import (
    BulkSyncRequest,
    CleanResponse,
    CredentialsRequest,
    MessageResponse,
    SettingsRequest,
    SyncLogResponse,
)

# Logging
logger = logging.getLogger("API")

# Router Initialization
router = APIRouter()

_orchestrator = SyncOrchestrator(SessionLocal)


def get_orchestrator() -> SyncOrchestrator:
    return _orchestrator


def parse_date(date_str: str) -> date:
    try:
        return datetime.strptime(date_str, "%Y-%m-%d").date()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD.")

# -----------------------------------------------------------------------------
# Sync Endpoints
# -----------------------------------------------------------------------------

@router.post("/api/garmin/bulk-sync", response_model=SyncResult)
async def bulk_sync(
    request: Optional[BulkSyncRequest] = None,
    user_id: str = Depends(get_current_user_id),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Replaces the user's stored Garmin data with the last N weeks."""
    try:
        weeks_past = request.weeks_past if request else None
        return await orchestrator.bulk_sync(user_id, weeks_past=weeks_past)
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/api/garmin/sync/{date_str}", response_model=SyncResult)
async def sync_single_date(
    date_str: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Re-fetches a single day."""
    target_date = parse_date(date_str)
    try:
        return await orchestrator.sync_date(user_id, target_date)
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))

@router.post(
    "/api/garmin/auto-sync",
    response_model=AutoSyncResult,
    dependencies=[Depends(require_service_token)],
)
async def trigger_auto_sync(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Service trigger for the auto-sync batch (also run by the background worker)."""
    try:
        return await orchestrator.auto_sync()
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))

# -----------------------------------------------------------------------------
# Connection & Credentials
# -----------------------------------------------------------------------------

@router.post("/api/garmin/test-connection", response_model=ConnectionTestResult)
async def test_connection(
    user_id: str = Depends(get_current_user_id),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    try:
        return orchestrator.test_connection(user_id)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))

@router.put("/api/garmin/credentials", response_model=MessageResponse)
async def save_credentials(
    request: CredentialsRequest,
    user_id: str = Depends(get_current_user_id),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    try:
        orchestrator.save_credentials(user_id, request.email, request.password, request.user_id)
        return {"message": "Credentials saved"}
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))

# -----------------------------------------------------------------------------
# Data Access Endpoints
# -----------------------------------------------------------------------------

@router.get("/api/garmin/dates", response_model=List[date])
async def get_available_dates(
    user_id: str = Depends(get_current_user_id),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Dates with stored Garmin data, newest first."""
    try:
        return orchestrator.get_available_data_dates(user_id)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/api/garmin/days/{date_str}", response_model=NormalizedDailyMetrics)
async def get_day(
    date_str: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Normalized, timing-corrected metrics for one day."""
    target_date = parse_date(date_str)
    try:
        metrics = orchestrator.get_data_for_date(user_id, target_date)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if metrics is None:
        raise HTTPException(status_code=404, detail=f"No Garmin data for {date_str}")
    return metrics

@router.get("/api/garmin/quality", response_model=DataQualityReport)
async def get_data_quality(
    user_id: str = Depends(get_current_user_id),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    try:
        return orchestrator.validate_data_quality(user_id)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/api/garmin/clean", response_model=CleanResponse)
async def clean_invalid_records(
    user_id: str = Depends(get_current_user_id),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    try:
        return {"deleted": orchestrator.clean_invalid_records(user_id)}
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/api/garmin/sync-logs", response_model=List[SyncLogResponse])
async def get_sync_logs(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Sync audit log for the current user, oldest first."""
    try:
        return RawDataStore(db).sync_logs(user_id)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))

# -----------------------------------------------------------------------------
# Analysis Endpoints
# -----------------------------------------------------------------------------

@router.get("/api/analysis/{date_str}", response_model=AnalysisResult)
async def run_analysis(
    date_str: str,
    analysis_type: str = "daily",
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Full rule-based analysis for one day. Days without data yield empty lists."""
    target_date = parse_date(date_str)
    try:
        engine = AnalysisEngine(RawDataStore(db))
        return engine.run_full_analysis(user_id, target_date, analysis_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))

# -----------------------------------------------------------------------------
# Settings Endpoints
# -----------------------------------------------------------------------------

@router.get("/api/settings")
async def get_settings():
    """Retrieves the runtime sync settings."""
    return config_manager.get_config()

@router.post("/api/settings", response_model=MessageResponse)
async def save_settings(request: SettingsRequest):
    """Updates runtime sync settings; omitted fields are left unchanged."""
    config_manager.update_config(**request.model_dump(exclude_none=True))
    return {"message": "Settings saved"}
