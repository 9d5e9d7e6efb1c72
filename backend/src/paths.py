import os
from pathlib import Path

APP_NAME = "GAFSystem"


def get_user_data_dir() -> Path:
    """
    Returns the writable directory used for config, logs and the default SQLite database.
    GAF_DATA_DIR overrides the platform default.
    """
    override = os.environ.get("GAF_DATA_DIR")
    if override:
        path = Path(override)
    elif os.name == "nt":
        path = Path(os.environ.get("APPDATA", Path.home())) / APP_NAME
    else:
        path = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share")) / APP_NAME

    path.mkdir(parents=True, exist_ok=True)
    return path
