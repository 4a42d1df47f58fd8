"""
Event logging utilities for NDJSON format.
"""

import json
from datetime import datetime
from typing import Any, Dict, Optional

from .state import create_app_dir, get_app_dir

EVENTS_FILE = "events.ndjson"


def emit_event(app_name: str, event_type: str, data: Dict[str, Any]) -> None:
    """
    Emit an event to the application's events.ndjson file.

    Args:
        app_name: Application name
        event_type: Event type (e.g., "INIT", "STAGE_DONE", "ERROR")
        data: Event data
    """
    events_file = create_app_dir(app_name) / EVENTS_FILE

    event = {
        "ts": datetime.now().isoformat(),
        "type": event_type,
        "data": data
    }

    with open(events_file, "a") as f:
        f.write(json.dumps(event, default=str) + "\n")
        f.flush()  # Ensure immediate write


def read_events(app_name: str) -> list[Dict[str, Any]]:
    """
    Read all events from an application's events.ndjson file.

    Args:
        app_name: Application name

    Returns:
        List of events
    """
    events_file = get_app_dir(app_name) / EVENTS_FILE

    if not events_file.exists():
        return []

    events = []
    with open(events_file, "r") as f:
        for line in f:
            line = line.strip()
            if line:
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    continue  # Skip malformed lines

    return events


def get_last_event(app_name: str) -> Optional[Dict[str, Any]]:
    """
    Get the last event from an application's log.

    Args:
        app_name: Application name

    Returns:
        Last event or None if no events
    """
    events = read_events(app_name)
    return events[-1] if events else None


def get_status_from_events(app_name: str) -> str:
    """
    Determine application status from events.

    Args:
        app_name: Application name

    Returns:
        Status string
    """
    last_event = get_last_event(app_name)
    if not last_event:
        return "unknown"

    status_map = {
        EventTypes.INIT: "pending",
        EventTypes.CANCELLED: "cancelled",
        EventTypes.STAGE_START: "provisioning",
        EventTypes.STAGE_DONE: "provisioning",
        EventTypes.STAGE_FAILED: "failed",
        EventTypes.ROLLBACK_START: "rolling_back",
        EventTypes.ROLLBACK_DONE: "rolled_back",
        EventTypes.DONE: "ready",
        EventTypes.ERROR: "failed",
        EventTypes.DESTROY_START: "destroying",
        EventTypes.DESTROY_STAGE_DONE: "destroying",
        EventTypes.DESTROY_STAGE_FAILED: "destroying",
        EventTypes.DESTROY_DONE: "destroyed",
    }

    return status_map.get(last_event.get("type", ""), "unknown")


# Predefined event types for consistency
class EventTypes:
    INIT = "INIT"
    CANCELLED = "CANCELLED"
    STAGE_START = "STAGE_START"
    STAGE_DONE = "STAGE_DONE"
    STAGE_FAILED = "STAGE_FAILED"
    ROLLBACK_START = "ROLLBACK_START"
    ROLLBACK_DONE = "ROLLBACK_DONE"
    DONE = "DONE"
    ERROR = "ERROR"
    DESTROY_START = "DESTROY_START"
    DESTROY_STAGE_DONE = "DESTROY_STAGE_DONE"
    DESTROY_STAGE_FAILED = "DESTROY_STAGE_FAILED"
    DESTROY_DONE = "DESTROY_DONE"
