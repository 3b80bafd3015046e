# repochat/config/paths.py
import os
from pathlib import Path

def _get_app_name() -> str:
    return "RepoChat"

def get_user_data_dir() -> Path:
    """Get the per-user application directory, creating it if needed."""
    override = os.environ.get("REPOCHAT_HOME")
    if override:
        path = Path(override)
    elif os.environ.get("APPDATA"):
        # Windows
        path = Path(os.environ["APPDATA"]) / _get_app_name()
    else:
        base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
        path = Path(base) / _get_app_name().lower()

    path.mkdir(parents=True, exist_ok=True)
    return path

def get_user_config_file() -> Path:
    """Get the path to the user's config.json file."""
    return get_user_data_dir() / "config.json"

def get_user_log_dir() -> Path:
    """Get the path to the user's log directory."""
    path = get_user_data_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path
