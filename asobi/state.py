"""
State management for applications.
"""

import json
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from .ids import is_valid_app_name
from .models import ResourceSet

RESOURCES_FILE = "resources.json"
APP_FILE = "app.json"


class StateStore(Protocol):
    """Durable home of one application's Resource Set."""

    def write(self, resources: ResourceSet) -> None:
        ...

    def read(self) -> ResourceSet:
        ...


def get_asobi_home() -> Path:
    """
    Get the asobi home directory.

    Returns:
        Path: asobi home directory
    """
    asobi_home = os.environ.get("ASOBI_HOME", ".asobi")
    return Path(asobi_home).resolve()


def get_app_dir(app_name: str) -> Path:
    """
    Get the directory for a specific application.

    Args:
        app_name: Application name

    Returns:
        Path: Application directory

    Raises:
        ValueError: If the application name is invalid
    """
    if not is_valid_app_name(app_name):
        raise ValueError(f"Invalid application name: {app_name}")

    return get_asobi_home() / app_name


def create_app_dir(app_name: str) -> Path:
    """
    Create application directory and return its path.

    Args:
        app_name: Application name

    Returns:
        Path: Created application directory
    """
    app_dir = get_app_dir(app_name)
    app_dir.mkdir(parents=True, exist_ok=True)
    return app_dir


def _write_json_atomic(path: Path, data: Dict[str, Any]) -> None:
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "w") as f:
        json.dump(data, f, indent=2)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, path)


def write_app_json(app_name: str, config: Dict[str, Any], run_id: str) -> None:
    """
    Write application metadata to app.json.

    Args:
        app_name: Application name
        config: Serialised AppConfig
        run_id: Unique ID of the run that owns the resources
    """
    app_dir = create_app_dir(app_name)
    existing = read_app_json(app_name) or {}
    now = datetime.now().isoformat()

    app_data = {
        "name": app_name,
        "run_id": run_id,
        "config": config,
        "created_at": existing.get("created_at", now),
        "updated_at": now,
    }

    _write_json_atomic(app_dir / APP_FILE, app_data)


def read_app_json(app_name: str) -> Optional[Dict[str, Any]]:
    """
    Read application metadata from app.json.

    Args:
        app_name: Application name

    Returns:
        Dict: Application metadata or None if not found
    """
    app_file = get_app_dir(app_name) / APP_FILE

    if not app_file.exists():
        return None

    with open(app_file, "r") as f:
        return json.load(f)


def list_apps() -> list[str]:
    """
    List all application names.

    Returns:
        Sorted list of application names
    """
    asobi_home = get_asobi_home()

    if not asobi_home.exists():
        return []

    apps = []
    for item in asobi_home.iterdir():
        if item.is_dir() and is_valid_app_name(item.name) and (item / APP_FILE).exists():
            apps.append(item.name)

    return sorted(apps)


def app_exists(app_name: str) -> bool:
    """
    Check if an application exists.

    Args:
        app_name: Application name

    Returns:
        bool: True if the application has been initialised
    """
    app_dir = get_app_dir(app_name)
    return app_dir.exists() and (app_dir / APP_FILE).exists()


def remove_app_dir(app_name: str) -> None:
    """
    Remove application directory and all its contents.

    Args:
        app_name: Application name
    """
    app_dir = get_app_dir(app_name)

    if app_dir.exists():
        shutil.rmtree(app_dir)


class JsonStateStore:
    """Resource Set persisted as resources.json in the application directory."""

    def __init__(self, app_name: str):
        self.app_name = app_name

    @property
    def path(self) -> Path:
        return get_app_dir(self.app_name) / RESOURCES_FILE

    def write(self, resources: ResourceSet) -> None:
        create_app_dir(self.app_name)
        _write_json_atomic(self.path, resources.to_dict())

    def read(self) -> ResourceSet:
        if not self.path.exists():
            return ResourceSet()

        with open(self.path, "r") as f:
            return ResourceSet.from_dict(json.load(f))
