import json
import os
import threading
import logging
import uuid
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .paths import get_user_data_dir

load_dotenv()

CONFIG_FILE = "gaf_config.json"

DEFAULT_CONFIG: Dict[str, Any] = {
    "request_delay_seconds": 0.15,
    "request_timeout_seconds": 30,
    "fetch_max_attempts": 1,
    "retry_backoff_seconds": 1.0,
    "sync_deadline_seconds": None,
    "auto_sync_enabled": True,
    "auto_sync_interval_minutes": 60,
    "auto_sync_threshold_hours": 2,
    "default_weeks_past": 4,
    "fallback_account_id": "124462920",
    "last_auto_sync": None,
    "status": "Idle",
}

logger = logging.getLogger("ConfigManager")


class ConfigManager:
    """
    Manages runtime configuration for sync and analysis.
    Settings live in a JSON file in the user data dir; secrets stay in the environment.
    """
    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = str(data_dir) if data_dir else str(get_user_data_dir())
        self.config_path = os.path.join(self.data_dir, CONFIG_FILE)
        self._lock = threading.Lock()
        self._ensure_config()

    def _ensure_config(self):
        """Creates the config file with defaults, or back-fills keys added since it was written."""
        with self._lock:
            current = self._load_file(self.config_path)
            merged = {**DEFAULT_CONFIG, **current}
            if merged != current:
                self._save_file(self.config_path, merged)

    def _load_file(self, path: str) -> Dict[str, Any]:
        """Loads JSON content from a file safely."""
        try:
            if not os.path.exists(path):
                return {}
            with open(path, 'r', encoding='utf-8') as f:
                content = f.read().strip()
                if not content:
                    return {}
                return json.loads(content)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading config from {path}: {e}")
            return {}

    def _save_file(self, path: str, data: Dict[str, Any]):
        """Saves data to a JSON file atomically."""
        tmp_path = f"{path}.{uuid.uuid4()}.tmp"
        try:
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=4)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error(f"Error saving config to {path}: {e}")
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def get_config(self) -> Dict[str, Any]:
        """Returns the stored configuration merged over the defaults."""
        with self._lock:
            return {**DEFAULT_CONFIG, **self._load_file(self.config_path)}

    def get(self, key: str, default: Any = None) -> Any:
        value = self.get_config().get(key)
        return default if value is None else value

    def update_config(self, **kwargs):
        """Updates configuration; None values are ignored."""
        with self._lock:
            conf = self._load_file(self.config_path)
            changed = False
            for key, value in kwargs.items():
                if value is None:
                    continue
                conf[key] = value
                changed = True
            if changed:
                self._save_file(self.config_path, conf)

    def update_status(self, status: str, **kwargs):
        """Helper to update status fields such as 'message' or 'last_auto_sync'."""
        self.update_config(status=status, **kwargs)

    # --- Secrets (environment only) ---

    @staticmethod
    def service_credentials() -> Dict[str, Optional[str]]:
        """Process-wide Garmin credentials used by the scheduled auto-sync."""
        return {
            "email": os.environ.get("GARMIN_EMAIL"),
            "password": os.environ.get("GARMIN_PASSWORD"),
        }

    @staticmethod
    def database_url() -> str:
        url = os.environ.get("DATABASE_URL")
        if url:
            return url
        return f"sqlite:///{os.path.join(str(get_user_data_dir()), 'gaf_database.db')}"


config_manager = ConfigManager()
