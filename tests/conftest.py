"""
Shared fixtures for asobi tests.
"""

import copy

import pytest
from botocore.exceptions import ClientError

from asobi.config import AppConfig
from asobi.models import ResourceSet


def client_error(code: str, operation: str = "Operation", message: str = "error") -> ClientError:
    """Build a botocore ClientError with the given error code."""
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


class MemoryStore:
    """StateStore keeping a snapshot of every write."""

    def __init__(self, resources: ResourceSet = None):
        self.current = resources or ResourceSet()
        self.writes = []

    def write(self, resources: ResourceSet) -> None:
        self.current = copy.deepcopy(resources)
        self.writes.append(copy.deepcopy(resources))

    def read(self) -> ResourceSet:
        return copy.deepcopy(self.current)


@pytest.fixture(autouse=True)
def asobi_home(tmp_path, monkeypatch):
    """Keep state and event files inside the test's temp directory."""
    home = tmp_path / "asobi-home"
    monkeypatch.setenv("ASOBI_HOME", str(home))
    return home


@pytest.fixture
def config(tmp_path):
    """Config with zero delays so polling never sleeps for real."""
    return AppConfig(
        app_name="shop",
        key_dir=str(tmp_path / "keys"),
        instance_attempts=3,
        instance_wait=0,
        health_attempts=3,
        health_wait=0,
        profile_attempts=4,
        profile_base_delay=0,
        profile_max_delay=0,
        revoke_delay=0,
        dependency_retry_delay=0,
    )


@pytest.fixture
def store():
    return MemoryStore()
