"""
Click CLI for asobi.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from click.core import ParameterSource

from .clients import build_clients
from .config import APP_TYPES, AppConfig
from .errors import handle_error
from .events import read_events
from .ids import is_valid_app_name, new_run_id
from .keystore import KeyStore
from .managers import build_managers
from .orchestrator import Orchestrator
from .prompts import ClickPrompter, NonInteractivePrompter
from .state import JsonStateStore, app_exists, list_apps, read_app_json, remove_app_dir, write_app_json
from .status import app_status
from .tags import parse_user_tags


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not verbose:
        logging.getLogger("botocore").setLevel(logging.WARNING)
        logging.getLogger("urllib3").setLevel(logging.WARNING)


def _check_app_name(app_name: str) -> None:
    if not is_valid_app_name(app_name):
        click.echo(f"Invalid application name: {app_name}", err=True)
        sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose: bool):
    """
    Asobi - disposable AWS development environments.
    """
    _setup_logging(verbose)


@main.command("create")
@click.argument("app_name")
@click.option("--region", help="AWS region")
@click.option("--instance-type", help="EC2 instance type")
@click.option("--type", "app_type", type=click.Choice(APP_TYPES), default=APP_TYPES[0],
              help="Application type")
@click.option("--port", type=int, default=80, help="Port the application listens on")
@click.option("--path", "codebase_path", type=click.Path(exists=True, file_okay=False),
              help="Codebase to deploy; a package.json enables the health check")
@click.option("--health-check/--no-health-check", default=False,
              help="Wait for the target to be healthy (on by default when --path has a package.json)")
@click.option("--certificate-arn", help="Existing ACM certificate for an HTTPS listener")
@click.option("--tag", "tags", multiple=True, help="Tags in format 'key=value' (repeatable)")
@click.option("--yes", is_flag=True, help="Skip prompts and create a new VPC")
def create_cmd(app_name: str, region: Optional[str], instance_type: Optional[str], app_type: str, port: int,
               codebase_path: Optional[str], health_check: bool, certificate_arn: Optional[str],
               tags: tuple, yes: bool):
    """
    Create the infrastructure of an application.
    """
    _check_app_name(app_name)

    extra_tags = None
    if tags:
        try:
            extra_tags = parse_user_tags(list(tags))
        except ValueError as e:
            click.echo(str(e), err=True)
            sys.exit(1)

    explicit = click.get_current_context().get_parameter_source("health_check") != ParameterSource.DEFAULT
    if not explicit and codebase_path and (Path(codebase_path) / "package.json").exists():
        health_check = True

    try:
        config = AppConfig.from_env(
            app_name,
            region=region,
            instance_type=instance_type,
            app_type=app_type,
            port=port,
            health_check=health_check,
            certificate_arn=certificate_arn,
            extra_tags=extra_tags,
        )
    except ValueError as e:
        click.echo(f"Invalid configuration: {e}", err=True)
        sys.exit(1)

    run_id = new_run_id()
    store = JsonStateStore(app_name)
    if not app_exists(app_name) or store.read().is_empty():
        write_app_json(app_name, config.to_dict(), run_id)

    try:
        clients = build_clients(config.region)
        orchestrator = Orchestrator(
            config,
            store,
            NonInteractivePrompter() if yes else ClickPrompter(),
            build_managers(config, run_id, clients, KeyStore(config.key_dir)),
            run_id,
            sts=clients.sts,
        )
        result = orchestrator.create()
    except KeyboardInterrupt:
        click.echo("\nInfrastructure creation interrupted", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(json.dumps(handle_error(e), indent=2))
        click.echo(f"Infrastructure creation failed: {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps(result.to_dict(), indent=2))

    if result.cancelled:
        click.echo("Infrastructure creation cancelled")
        sys.exit(0)
    sys.exit(0 if result.success else 1)


@main.command("delete")
@click.argument("app_name")
@click.option("--yes", is_flag=True, help="Delete without confirmation")
@click.option("--purge", is_flag=True, help="Also remove local state and event log after a clean delete")
def delete_cmd(app_name: str, yes: bool, purge: bool):
    """
    Delete every resource recorded for an application.
    """
    _check_app_name(app_name)

    app = read_app_json(app_name)
    if app is None:
        click.echo(f"Application {app_name} not found", err=True)
        sys.exit(1)

    if not yes:
        if not click.confirm(f"Are you sure you want to delete application {app_name}?"):
            click.echo("Delete cancelled")
            return

    config = AppConfig.from_dict(app.get("config") or {"app_name": app_name})
    run_id = app.get("run_id") or new_run_id()
    try:
        clients = build_clients(config.region)
        orchestrator = Orchestrator(
            config,
            JsonStateStore(app_name),
            NonInteractivePrompter(),
            build_managers(config, run_id, clients, KeyStore(config.key_dir)),
            run_id,
            sts=clients.sts,
        )
        result = orchestrator.delete()
    except Exception as e:
        click.echo(json.dumps(handle_error(e), indent=2))
        click.echo(f"Delete failed: {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps(result.to_dict(), indent=2))
    if result.failures:
        click.echo("Warning: some resources could not be deleted:", err=True)
        for failure in result.failures:
            click.echo(f"  - {failure.resource}: {failure.error}", err=True)
    elif purge:
        remove_app_dir(app_name)
        click.echo(f"Removed local state of {app_name}")

    sys.exit(0 if result.success else 1)


@main.command("status")
@click.argument("app_name")
@click.option("--live", is_flag=True, help="Check resources and endpoint in AWS")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
def status_cmd(app_name: str, live: bool, as_json: bool):
    """
    Show the status of an application.
    """
    _check_app_name(app_name)

    clients = None
    if live:
        app = read_app_json(app_name) or {}
        region = (app.get("config") or {}).get("region") or AppConfig.from_env(app_name).region
        clients = build_clients(region)

    result = app_status(app_name, clients)
    if result["status"] == "not_found":
        click.echo(f"Application {app_name} not found", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    click.echo(f"Application: {app_name}")
    click.echo(f"Run ID: {result.get('run_id')}")
    click.echo(f"Status: {result['status'].upper()}")
    for name, value in result["resources"].items():
        if value:
            click.echo(f"  {name}: {value}")
    if result.get("public_url"):
        click.echo(f"URL: {result['public_url']} (HTTP {result.get('http_status') or 'unreachable'})")


@main.command("ls")
def list_cmd():
    """
    List all applications.
    """
    apps = list_apps()
    if not apps:
        click.echo("No applications found")
        return

    for app_name in apps:
        result = app_status(app_name)
        click.echo(f"{app_name}  {result['status']}  {result.get('run_id') or ''}")


@main.command("logs")
@click.argument("app_name")
@click.option("--json", "as_json", is_flag=True, help="Print raw events")
def logs_cmd(app_name: str, as_json: bool):
    """
    Show the event log of an application.
    """
    _check_app_name(app_name)

    for event in read_events(app_name):
        if as_json:
            click.echo(json.dumps(event))
            continue
        data = event.get("data", {})
        detail = data.get("stage") or data.get("error") or ""
        click.echo(f"[{event.get('ts', 'unknown')}] {event.get('type', 'unknown')}: {detail}")


if __name__ == "__main__":
    main()
