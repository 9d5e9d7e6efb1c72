import os
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.src.api.routes import get_orchestrator, router
from backend.src.config import config_manager
from backend.src.database import init_db
from backend.src.exceptions import StorageError
from backend.src.paths import get_user_data_dir

# Configure logging
log_dir = get_user_data_dir()
log_file = os.path.join(log_dir, "backend_debug.log")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.FileHandler(log_file),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger("API")
logger.info(f"API Starting... Logging to {log_file}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    init_db()

    # Reset status on startup in case a previous run died mid-sync
    cfg = config_manager.get_config()
    if cfg.get("status") not in ["Idle", "Error"]:
        logger.info("Startup: Resetting stuck status to Idle.")
        config_manager.update_status("Idle")

    task = asyncio.create_task(background_worker())

    yield

    # Shutdown
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass

app = FastAPI(
    title="GAF System API",
    description="Garmin ingestion, normalization and daily wellness analysis.",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(router)

@app.get("/api/status")
async def get_status():
    """Returns the background worker status and the last auto-sync time."""
    cfg = config_manager.get_config()
    return {
        "status": cfg.get("status"),
        "last_auto_sync": cfg.get("last_auto_sync"),
        "auto_sync_enabled": cfg.get("auto_sync_enabled"),
    }

# --- Background Logic ---

def auto_sync_due(cfg: dict, now: datetime) -> bool:
    if not cfg.get("auto_sync_enabled", True):
        return False
    last_run = cfg.get("last_auto_sync")
    if not last_run:
        return True
    try:
        last = datetime.fromisoformat(last_run)
    except (TypeError, ValueError):
        return True
    if last.tzinfo is None:
        last = last.replace(tzinfo=timezone.utc)
    return now - last >= timedelta(minutes=cfg.get("auto_sync_interval_minutes", 60))

async def run_auto_sync_task():
    config_manager.update_status("Syncing")
    try:
        result = await get_orchestrator().auto_sync()
        logger.info(f"Background worker: {result.message}")
        if result.success:
            config_manager.update_status("Idle", message=result.message)
        else:
            # Wait a full interval before retrying a misconfigured service
            config_manager.update_status(
                "Error",
                message=result.message,
                last_auto_sync=datetime.now(timezone.utc).isoformat(),
            )
    except StorageError as e:
        logger.error(f"Background worker: storage unavailable: {e}")
        config_manager.update_status("Error", message=f"Storage unavailable: {e}")

async def background_worker():
    logger.info("Background worker started.")
    while True:
        try:
            cfg = config_manager.get_config()
            if auto_sync_due(cfg, datetime.now(timezone.utc)):
                await run_auto_sync_task()
        except Exception as e:
            logger.error(f"Background worker loop error: {e}")

        # Check once a minute
        await asyncio.sleep(60)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("backend.src.api.main:app", host="0.0.0.0", port=8000, reload=True, reload_dirs=["backend"])
