"""
Configuration Management Module

This module provides a centralized way to load and access configuration settings
from the config.yaml file. It keeps a single configuration instance for the
whole process so the API, the matcher and the client read the same values.

The file location is resolved in this order:
    1. The FACE_ACCESS_CONFIG environment variable
    2. config.yaml in the project root (first parent directory containing it)
    3. config.yaml in the current directory or one of its parents

Usage:
    from core.config import get_config
    config = get_config()
    threshold = config["matching"]["threshold"]
"""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional


CONFIG_ENV_VAR = "FACE_ACCESS_CONFIG"

# Store the singleton instance (module-level variable)
_config_instance: Optional[Dict[str, Any]] = None
_config_path: Optional[Path] = None


def get_project_root() -> Path:
    """
    Find the project root directory.

    The project root is identified by the presence of config.yaml file.
    This function walks up the directory tree from this file's location
    until it finds config.yaml. When the package is installed outside the
    source tree (site-packages), it then walks up from the current working
    directory.

    Returns:
        Path: The absolute path to the project root directory.

    Raises:
        FileNotFoundError: If config.yaml cannot be found in any parent directory.
    """
    for start in (Path(__file__).resolve().parent, Path.cwd().resolve()):
        current_dir = start
        while True:
            if (current_dir / "config.yaml").exists():
                return current_dir
            if current_dir == current_dir.parent:
                break
            current_dir = current_dir.parent

    raise FileNotFoundError(
        "Could not find config.yaml in any parent directory. "
        f"Set {CONFIG_ENV_VAR} or run from within the project directory."
    )


def resolve_config_path(config_path: Optional[str] = None) -> Path:
    """Pick the config file: explicit path, then FACE_ACCESS_CONFIG, then project root."""
    if config_path is None:
        config_path = os.environ.get(CONFIG_ENV_VAR)

    if config_path is None:
        return get_project_root() / "config.yaml"
    return Path(config_path)


def resolve_path(path: str) -> Path:
    """
    Resolve a path taken from the configuration.

    Relative paths are interpreted against the directory holding the
    loaded config file, so storage locations do not depend on the
    current working directory.
    """
    path = Path(path)
    if path.is_absolute():
        return path

    get_config()
    return _config_path.resolve().parent / path


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Optional path to the config file. If not provided,
                     FACE_ACCESS_CONFIG is used, then config.yaml in the
                     project root.

    Returns:
        Dict containing all configuration values.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the config file contains invalid YAML.
    """
    config_path = resolve_config_path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    return config or {}


def get_config(reload: bool = False) -> Dict[str, Any]:
    """
    Get the configuration singleton.

    Args:
        reload: If True, forces reloading the configuration from disk.
                Useful for testing or if the config file has changed.

    Returns:
        Dict containing all configuration values.

    Example:
        config = get_config()
        threshold = config["matching"]["threshold"]
    """
    global _config_instance, _config_path

    if _config_instance is None or reload:
        _config_path = resolve_config_path()
        _config_instance = load_config(str(_config_path))

    return _config_instance


def get_section(section_name: str) -> Dict[str, Any]:
    """
    Get a specific section from the configuration.

    Args:
        section_name: Name of the configuration section
                      (e.g., "matching", "storage", "client")

    Returns:
        Dict containing the section's configuration values.

    Raises:
        KeyError: If the section doesn't exist in the configuration.
    """
    config = get_config()

    if section_name not in config:
        raise KeyError(
            f"Configuration section '{section_name}' not found. "
            f"Available sections: {list(config.keys())}"
        )

    return config[section_name]


# Convenience functions for commonly used configuration sections
def get_matching_config() -> Dict[str, Any]:
    """Get matching configuration."""
    return get_section("matching")


def get_storage_config() -> Dict[str, Any]:
    """Get storage configuration."""
    return get_section("storage")


def get_descriptor_config() -> Dict[str, Any]:
    """Get descriptor extraction configuration."""
    return get_section("descriptor")


def get_api_config() -> Dict[str, Any]:
    """Get API configuration."""
    return get_section("api")


def get_client_config() -> Dict[str, Any]:
    """Get client configuration."""
    return get_section("client")


def get_camera_config() -> Dict[str, Any]:
    """Get camera configuration."""
    return get_section("camera")


def get_server_config() -> Dict[str, Any]:
    """
    Get server configuration for the API.

    Returns:
        Dict with host and port for the API server.
    """
    api_config = get_api_config()
    base_url = api_config.get("base_url", "http://localhost:4000")

    # Format: http://host:port
    host = "0.0.0.0"
    port = 4000

    try:
        url_part = base_url.split("//")[-1]
        if ":" in url_part:
            host_part, port_str = url_part.rsplit(":", 1)
            port = int(port_str.rstrip("/"))
            if host_part != "localhost":
                host = host_part
    except (ValueError, IndexError):
        pass

    return {"host": host, "port": port}
