"""Settings for the kubecomposer command line.

Settings come from ``kubecomposer.json`` in the working directory, for
example::

    {"output": {"directory": "manifests"}, "logging": {"level": "INFO"}}

A setting missing from the file falls back to an environment variable named
after its path (``OUTPUT_DIRECTORY``, ``LOGGING_LEVEL``), then to its default.
Use the typed accessors ``output_directory`` and ``logging_level`` rather than
reading raw values.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "kubecomposer.json"

OUTPUT_DIRECTORY_KEYS = ["output", "directory"]
LOGGING_LEVEL_KEYS = ["logging", "level"]
DEFAULT_LOGGING_LEVEL = "WARNING"


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """Load the settings file.

    A missing, unreadable or non-object file reads as no settings, so every
    lookup falls through to the environment and the defaults.
    """
    path = Path(config_path)
    if not path.exists():
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Ignoring unreadable config file {path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Ignoring config file {path}: expected a JSON object")
        return {}
    return data


def get_config_value(
    keys: List[str], default: Any = None, config: Optional[Dict[str, Any]] = None
) -> Any:
    """Look up a nested setting, then its environment variable, then ``default``.

    Args:
        keys: Path into the settings, e.g. ``["output", "directory"]``
        default: Value used when neither the file nor the environment has one
        config: Settings to read (loaded from ``kubecomposer.json`` when omitted)
    """
    if config is None:
        config = load_config()

    value: Any = config
    for key in keys:
        if not isinstance(value, dict):
            value = None
            break
        value = value.get(key)
        if value is None:
            break

    if value is not None:
        return value

    env_value = os.environ.get("_".join(k.upper() for k in keys))
    if env_value is not None:
        return env_value
    return default


def output_directory(config: Optional[Dict[str, Any]] = None) -> Optional[str]:
    """Directory ``render`` writes to when ``--out`` is not given.

    None (or an empty value) means print to stdout.
    """
    value = get_config_value(OUTPUT_DIRECTORY_KEYS, config=config)
    if value is None or value == "":
        return None
    return str(value)


def logging_level(config: Optional[Dict[str, Any]] = None) -> int:
    """Log level from its name (``"debug"``, ``"INFO"``) or number.

    Unknown names fall back to WARNING.
    """
    value = get_config_value(LOGGING_LEVEL_KEYS, default=DEFAULT_LOGGING_LEVEL, config=config)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    level = getattr(logging, str(value).strip().upper(), None)
    if not isinstance(level, int):
        logger.warning(f"Unknown logging level {value!r}, using {DEFAULT_LOGGING_LEVEL}")
        return logging.WARNING
    return level
