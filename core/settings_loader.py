"""
Settings access for the Convertible Bond Analytics engine.
Reads the combined settings.yaml at the project root and hands out one section per getter.
The parsed document is kept until the file's mtime changes or reload_settings() is called.
"""

import logging
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

# settings.yaml lives next to core/, at the project root
SETTINGS_FILE = Path(__file__).resolve().parent.parent / "settings.yaml"

_cache: Dict[str, Any] = {"mtime": None, "settings": None}


def load_settings() -> Dict[str, Any]:
    """
    Returns the whole settings document, re-reading the file only when it changed.
    A missing or unreadable file yields {} so every caller falls back to its defaults.
    """
    settings_path = Path(SETTINGS_FILE)
    if not settings_path.exists():
        logger.warning(f"Settings file {settings_path} not found, using defaults")
        return {}

    try:
        mtime = settings_path.stat().st_mtime
        if _cache["settings"] is not None and _cache["mtime"] == mtime:
            return _cache["settings"]
        document = yaml.safe_load(settings_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        logger.error(f"Invalid YAML in {settings_path}: {e}", exc_info=True)
        return {}
    except OSError as e:
        logger.error(f"Could not read {settings_path}: {e}", exc_info=True)
        return {}

    if not isinstance(document, dict):
        logger.error(f"Settings file {settings_path} must hold a mapping, got {type(document).__name__}")
        return {}

    _cache["settings"], _cache["mtime"] = document, mtime
    logger.info(f"Loaded settings from {settings_path.name}")
    return document


def get_section(name: str) -> Dict[str, Any]:
    """One top-level section of settings.yaml, or {} when it is absent or not a mapping."""
    section = load_settings().get(name) or {}
    if not isinstance(section, dict):
        logger.warning(f"Settings section '{name}' is not a mapping; ignored")
        return {}
    return section


def get_app_config() -> Dict[str, Any]:
    """Folders: data_folder, log_folder."""
    return get_section("app_config")


def get_data_files() -> Dict[str, Any]:
    return get_section("data_files")


def get_classification_thresholds() -> Dict[str, Any]:
    return get_section("classification_thresholds")


def get_signal_thresholds() -> Dict[str, Any]:
    """Vega gate, situation bands and observation cut-offs."""
    return get_section("signal_thresholds")


def get_history_settings() -> Dict[str, Any]:
    return get_section("history")


def reload_settings() -> None:
    """Forget the cached document; the next access reads the file again."""
    _cache["settings"], _cache["mtime"] = None, None
    logger.debug("Settings cache cleared")
