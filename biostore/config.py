"""
Configuration Management Module

Reads config.yaml once and hands the same parsed dict to every component,
so the store, the admin CLI and the API server agree on storage paths,
sync settings and the match threshold.

Lookup order for the file:
    1. An explicit path passed to load_config()
    2. The BIOSTORE_CONFIG environment variable
    3. The nearest config.yaml above the biostore package

Usage:
    from biostore.config import get_config
    config = get_config()
    sync_config = config["sync"]
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


CONFIG_ENV_VAR = "BIOSTORE_CONFIG"

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Parsed config.yaml, filled on first get_config()
_config_instance: Optional[Dict[str, Any]] = None


def get_project_root() -> Path:
    """
    Locate the directory holding config.yaml.

    Starts next to this module and checks each parent in turn.

    Returns:
        Path: Directory containing config.yaml.

    Raises:
        FileNotFoundError: If no parent directory has a config.yaml.
    """
    directory = Path(__file__).resolve().parent

    while directory != directory.parent:
        if (directory / "config.yaml").exists():
            return directory
        directory = directory.parent

    raise FileNotFoundError(
        f"No config.yaml found above {Path(__file__).resolve().parent}. "
        f"Point {CONFIG_ENV_VAR} at a configuration file."
    )


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Parse a YAML configuration file.

    Args:
        config_path: File to read. Falls back to BIOSTORE_CONFIG, then to the
                     project's config.yaml.

    Returns:
        Parsed configuration; an empty file yields an empty dict.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    if config_path is None:
        config_path = os.environ.get(CONFIG_ENV_VAR)

    if config_path is None:
        path = get_project_root() / "config.yaml"
    else:
        path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    return config or {}


def get_config(reload: bool = False) -> Dict[str, Any]:
    """
    Return the shared configuration, loading it on first use.

    Args:
        reload: Re-read the file even if it was already loaded.

    Example:
        threshold = get_config()["matching"]["threshold"]
    """
    global _config_instance

    if _config_instance is None or reload:
        _config_instance = load_config()

    return _config_instance


def get_section(section_name: str, config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Return one top-level section of the configuration.

    Args:
        section_name: Section key, e.g. "storage", "sync" or "matching".
        config: Configuration to read. Defaults to get_config().

    Raises:
        KeyError: If the section is missing; the message lists the sections
                  that do exist.
    """
    if config is None:
        config = get_config()

    if section_name not in config:
        raise KeyError(
            f"Configuration section '{section_name}' not found. "
            f"Available sections: {list(config.keys())}"
        )

    return config[section_name]


def get_storage_config() -> Dict[str, Any]:
    """Local database settings."""
    return get_section("storage")


def get_sync_config() -> Dict[str, Any]:
    """Remote replication settings."""
    return get_section("sync")


def get_matching_config() -> Dict[str, Any]:
    """Descriptor comparison settings."""
    return get_section("matching")


def get_api_config() -> Dict[str, Any]:
    """Remote store server settings."""
    return get_section("api")


def get_logging_config() -> Dict[str, Any]:
    return get_section("logging")


def get_server_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Derive the bind address of the API server from api.base_url.

    "localhost" binds every interface; any other host is used as given.
    The port defaults to 8000 when the URL has none or it cannot be parsed.

    Returns:
        Dict with "host" and "port".
    """
    base_url = get_section("api", config).get("base_url", "http://localhost:8000")
    netloc = base_url.split("//")[-1].split("/")[0]

    host, port = "0.0.0.0", 8000
    if ":" in netloc:
        name, port_str = netloc.rsplit(":", 1)
        try:
            port = int(port_str)
        except ValueError:
            port_str = None
        if port_str is not None and name != "localhost":
            host = name

    return {"host": host, "port": port}


def configure_logging(config: Optional[Dict[str, Any]] = None) -> None:
    """
    Apply the logging section of the configuration to the root logger.

    Called once by entry points (admin CLI, API server). Library modules only
    create their own loggers.
    """
    logging_config = (config or {}).get("logging", {}) or {}
    level = str(logging_config.get("level", "INFO")).upper()

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=logging_config.get("format", DEFAULT_LOG_FORMAT),
    )
