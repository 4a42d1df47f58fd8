"""
Status report for a persisted application.
"""

import logging
from typing import Any, Dict, Optional

import requests
from botocore.exceptions import ClientError

from .clients import AwsClients
from .config import AppConfig
from .events import get_last_event, get_status_from_events
from .managers import build_managers
from .orchestrator import Orchestrator
from .prompts import NonInteractivePrompter
from .state import JsonStateStore, app_exists, read_app_json

logger = logging.getLogger(__name__)


def check_endpoint(url: str, timeout: float = 10) -> Optional[int]:
    """
    Issue one GET against the application endpoint.

    Args:
        url: Public URL
        timeout: Request timeout in seconds

    Returns:
        HTTP status code, or None when the endpoint is unreachable
    """
    try:
        response = requests.get(url, timeout=timeout)
        return response.status_code
    except requests.RequestException as e:
        logger.debug(f"Endpoint {url} unreachable: {e}")
        return None


def app_status(app_name: str, clients: Optional[AwsClients] = None) -> Dict[str, Any]:
    """
    Get application status from local state and, when clients are given, AWS.

    Args:
        app_name: Application name
        clients: boto3 clients for a live check

    Returns:
        Status dictionary
    """
    if not app_exists(app_name):
        return {"app_name": app_name, "status": "not_found"}

    app = read_app_json(app_name) or {}
    resources = JsonStateStore(app_name).read()
    last_event = get_last_event(app_name)

    result = {
        "app_name": app_name,
        "run_id": app.get("run_id"),
        "status": get_status_from_events(app_name),
        "updated_at": last_event.get("ts") if last_event else None,
        "resources": resources.to_dict(),
    }

    if clients is None or resources.is_empty():
        return result

    config = AppConfig.from_dict(app.get("config") or {"app_name": app_name})
    managers = build_managers(config, app.get("run_id", ""), clients)

    live = {}
    if resources.network_id:
        live["network"] = managers.network.exists(resources.network_id)
    if resources.instance_id:
        try:
            live["instance"] = managers.compute.instance_state(resources.instance_id)
        except ClientError as e:
            logger.warning(f"Could not describe instance {resources.instance_id}: {e}")
            live["instance"] = None
    if resources.load_balancer_arn:
        dns_name = managers.load_balancer.dns_name(resources.load_balancer_arn)
        live["load_balancer"] = dns_name is not None
        if dns_name:
            url = f"http://{dns_name}/"
            result["public_url"] = url
            result["http_status"] = check_endpoint(url)

    result["live"] = live

    run_id = app.get("run_id", "")
    if run_id:
        orchestrator = Orchestrator(config, JsonStateStore(app_name), NonInteractivePrompter(), managers, run_id)
        result["tagged"] = orchestrator.discover()

    return result
