"""XDG-compliant path management for cchud."""

from pathlib import Path

from xdg_base_dirs import xdg_config_home, xdg_data_home, xdg_runtime_dir

APP_NAME = "cchud"


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    return xdg_config_home() / APP_NAME


def get_data_dir() -> Path:
    """Get the data directory path."""
    return xdg_data_home() / APP_NAME


def get_config_file_path() -> Path:
    """Get the config.yaml file path."""
    return get_config_dir() / "config.yaml"


def get_log_file_path() -> Path:
    """Get the cchud.log file path."""
    return get_data_dir() / "cchud.log"


def get_default_transport_path() -> Path:
    """Get the default event pipe path.

    Lives in the runtime dir when the platform provides one, since the pipe
    is meaningless after logout.
    """
    runtime = xdg_runtime_dir()
    base = runtime / APP_NAME if runtime is not None else get_data_dir()
    return base / "events.fifo"


def ensure_directories() -> None:
    """Create config and data directories if they don't exist."""
    get_config_dir().mkdir(parents=True, exist_ok=True)
    get_data_dir().mkdir(parents=True, exist_ok=True)
