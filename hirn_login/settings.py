import json
import logging
from pathlib import Path
from typing import Optional

DEFAULT_CONFIG_PATH = Path("~/.config/hirn-login/settings.json").expanduser()

logger = logging.getLogger(__name__)


def load_config(path: Optional[Path] = None) -> dict:
    """Read the JSON settings file.

    Without an explicit path the default location is optional and a missing
    file yields an empty config. An explicit path must exist.
    """
    if path is None:
        path = DEFAULT_CONFIG_PATH
        if not path.is_file():
            return {}
    with path.open("r", encoding="utf-8") as f:
        config = json.load(f)
    if not isinstance(config, dict):
        raise ValueError(f"settings file {path} must contain a JSON object")
    logger.debug("Loaded settings from %s", path)
    return config


def log_dir_from(config: dict) -> Optional[Path]:
    value = config.get("log_dir") or ""
    if not value:
        return None
    return Path(value).expanduser()
