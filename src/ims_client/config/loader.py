import copy
import os
from pathlib import Path
from typing import Any, Dict

import yaml

DEFAULT_CONFIG_PATH = Path("ims.config.yaml")
CONFIG_ENV_VAR = "IMS_CONFIG"

DELAY_KEYS = (
    "listing.search_debounce_ms",
    "combobox.debounce_ms",
    "session.idle_timeout_seconds",
)

DEFAULTS: Dict[str, Dict[str, Any]] = {
    "api": {
        "base_url": "http://localhost:5001/api",
        "timeout_seconds": 20,
        "user_agent": "ims-client/0.1",
    },
    "listing": {
        "default_page_size": 10,
        "page_sizes": [10, 20, 50, 100],
        "search_debounce_ms": 500,
        "sort_by": "updatedAt",
        "sort_order": "desc",
    },
    "combobox": {
        "debounce_ms": 300,
        "limit": 10,
    },
    "session": {
        "path": ".ims/session.json",
        "idle_timeout_seconds": 600,
    },
}


def load_config(path: Path | None = None) -> Dict[str, Any]:
    """
    Load client configuration from YAML, merged over built-in defaults.

    Lookup order: explicit ``path``, then ``$IMS_CONFIG``, then
    ``ims.config.yaml`` in the working directory. Only the last one may be
    missing, in which case the defaults are returned.

    Args:
        path: Optional path to the config file

    Returns:
        Dictionary with api, listing, combobox and session sections

    Raises:
        FileNotFoundError: If an explicitly requested config file doesn't exist
        ValueError: If config structure is invalid
    """
    explicit = path or (Path(os.environ[CONFIG_ENV_VAR]) if os.environ.get(CONFIG_ENV_VAR) else None)
    cfg_path = explicit or DEFAULT_CONFIG_PATH

    raw: Dict[str, Any] = {}
    if cfg_path.exists():
        with cfg_path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    elif explicit is not None:
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    if not isinstance(raw, dict):
        raise ValueError("Config must be a dictionary")

    return validate_config(merge_defaults(raw))


def merge_defaults(raw: Dict[str, Any]) -> Dict[str, Any]:
    config = copy.deepcopy(DEFAULTS)
    for section, values in raw.items():
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ValueError(f"Config section '{section}' must be a dictionary")
        config.setdefault(section, {}).update(values)
    return config


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check cross-field constraints of a merged config.

    Raises:
        ValueError: On the first violated constraint
    """
    api = config["api"]
    if not isinstance(api.get("base_url"), str) or not api["base_url"].strip():
        raise ValueError("Config 'api.base_url' must be a non-empty string")
    api["base_url"] = api["base_url"].rstrip("/")
    if not isinstance(api.get("timeout_seconds"), (int, float)) or api["timeout_seconds"] <= 0:
        raise ValueError("Config 'api.timeout_seconds' must be a positive number")

    listing = config["listing"]
    page_sizes = listing.get("page_sizes")
    if not isinstance(page_sizes, list) or not page_sizes:
        raise ValueError("Config 'listing.page_sizes' must be a non-empty list")
    for size in page_sizes:
        if not isinstance(size, int) or size < 1:
            raise ValueError("Config 'listing.page_sizes' entries must be positive integers")
    if listing.get("default_page_size") not in page_sizes:
        raise ValueError(
            f"Config 'listing.default_page_size' ({listing.get('default_page_size')}) "
            f"must be one of {page_sizes}"
        )
    if listing.get("sort_order") not in ("asc", "desc"):
        raise ValueError("Config 'listing.sort_order' must be 'asc' or 'desc'")

    for key in DELAY_KEYS:
        section, field = key.split(".")
        value = config[section].get(field)
        if not isinstance(value, (int, float)) or value < 0:
            raise ValueError(f"Config '{key}' must be a number >= 0")

    combobox_limit = config["combobox"].get("limit")
    if not isinstance(combobox_limit, int) or combobox_limit < 1:
        raise ValueError("Config 'combobox.limit' must be a positive integer")

    return config


def get_session_path(config: Dict[str, Any]) -> Path:
    """Resolve the session file path, expanding ``~``."""
    return Path(config["session"]["path"]).expanduser()
