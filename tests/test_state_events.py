"""
Tests for local state and the event log.
"""

import os
import stat

import pytest

from asobi.config import AppConfig
from asobi.events import EventTypes, emit_event, get_last_event, get_status_from_events, read_events
from asobi.keystore import KeyStore
from asobi.models import ResourceSet
from asobi.state import (
    JsonStateStore,
    app_exists,
    get_app_dir,
    list_apps,
    read_app_json,
    remove_app_dir,
    write_app_json,
)


class TestJsonStateStore:
    """Test Resource Set persistence."""

    def test_read_missing_is_empty(self):
        """Test that a missing file reads as an empty Resource Set."""
        assert JsonStateStore("shop").read().is_empty()

    def test_write_then_read(self, asobi_home):
        """Test a write and read round trip through resources.json."""
        store = JsonStateStore("shop")
        resources = ResourceSet(network_id="vpc-1", subnet_ids=["subnet-1", "subnet-2"])
        resources.adopt("network_id")

        store.write(resources)

        assert store.path == asobi_home / "shop" / "resources.json"
        loaded = store.read()
        assert loaded.network_id == "vpc-1"
        assert loaded.subnet_ids == ["subnet-1", "subnet-2"]
        assert loaded.adopted == ["network_id"]
        assert not (asobi_home / "shop" / "resources.json.tmp").exists()

    def test_reset_is_persisted(self):
        """Test that a reset Resource Set is written as empty."""
        store = JsonStateStore("shop")
        resources = ResourceSet(instance_id="i-1")
        store.write(resources)

        resources.reset()
        store.write(resources)

        assert store.read().is_empty()


class TestAppJson:
    """Test application metadata files."""

    def test_write_and_read(self):
        """Test writing and reading app.json."""
        config = AppConfig(app_name="shop")
        write_app_json("shop", config.to_dict(), "ab12cd34")

        app = read_app_json("shop")
        assert app["name"] == "shop"
        assert app["run_id"] == "ab12cd34"
        assert AppConfig.from_dict(app["config"]) == config
        assert app_exists("shop")

    def test_created_at_survives_rewrite(self):
        """Test that rewriting app.json keeps the creation time."""
        write_app_json("shop", {"app_name": "shop"}, "run00001")
        created = read_app_json("shop")["created_at"]

        write_app_json("shop", {"app_name": "shop"}, "run00002")

        app = read_app_json("shop")
        assert app["created_at"] == created
        assert app["run_id"] == "run00002"

    def test_list_and_remove(self):
        """Test listing applications and removing one."""
        write_app_json("beta", {}, "run00001")
        write_app_json("alpha", {}, "run00002")

        assert list_apps() == ["alpha", "beta"]

        remove_app_dir("beta")
        assert list_apps() == ["alpha"]
        assert not app_exists("beta")

    def test_invalid_app_name(self):
        """Test that invalid names never get a directory."""
        with pytest.raises(ValueError, match="Invalid application name"):
            get_app_dir("../etc")


class TestEvents:
    """Test the NDJSON event log."""

    def test_emit_and_read(self):
        """Test appending and reading events."""
        emit_event("shop", EventTypes.INIT, {"run_id": "ab12cd34"})
        emit_event("shop", EventTypes.STAGE_START, {"stage": "Network"})

        events = read_events("shop")
        assert [e["type"] for e in events] == ["INIT", "STAGE_START"]
        assert events[1]["data"] == {"stage": "Network"}
        assert get_last_event("shop")["type"] == "STAGE_START"

    def test_malformed_lines_are_skipped(self):
        """Test that broken lines in the log are ignored."""
        emit_event("shop", EventTypes.INIT, {})
        with open(get_app_dir("shop") / "events.ndjson", "a") as f:
            f.write("not json\n")

        assert len(read_events("shop")) == 1

    def test_status_progression(self):
        """Test status derived from the last event."""
        assert get_status_from_events("shop") == "unknown"

        emit_event("shop", EventTypes.INIT, {})
        assert get_status_from_events("shop") == "pending"
        emit_event("shop", EventTypes.STAGE_DONE, {})
        assert get_status_from_events("shop") == "provisioning"
        emit_event("shop", EventTypes.ROLLBACK_DONE, {})
        assert get_status_from_events("shop") == "rolled_back"
        emit_event("shop", EventTypes.DONE, {})
        assert get_status_from_events("shop") == "ready"
        emit_event("shop", EventTypes.DESTROY_DONE, {})
        assert get_status_from_events("shop") == "destroyed"


class TestKeyStore:
    """Test private key files."""

    def test_private_key_is_owner_only(self, tmp_path):
        """Test that key files are readable by the owner only."""
        keystore = KeyStore(str(tmp_path / "keys"))

        path = keystore.write_private_key("shop-ab12cd34", "PRIVATE KEY")

        assert path.read_text() == "PRIVATE KEY"
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_delete_private_key(self, tmp_path):
        """Test that deleting a missing key file is not an error."""
        keystore = KeyStore(str(tmp_path / "keys"))
        keystore.write_private_key("shop-ab12cd34", "PRIVATE KEY")

        assert keystore.delete_private_key("shop-ab12cd34") is not None
        assert keystore.delete_private_key("shop-ab12cd34") is None
