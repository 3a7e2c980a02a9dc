"""
Tests for utils: id generation, time helpers, logging, the degraded-mode signal
and the server launcher.
"""

import json
import logging
import re
from datetime import datetime, timedelta, timezone

import pytest

from assetflow.domain.enums import AssetType
from assetflow.utils.health import DegradedModeSignal
from assetflow.utils.idgen import (
    asset_id_prefix, format_asset_id, generate_audit_entry_id,
    generate_correlation_id, generate_workflow_id
)
from assetflow.utils.logger import JsonFormatter, set_correlation_id
from assetflow.utils.time import ensure_utc, format_iso, parse_iso


class TestIdGeneration:

    def test_workflow_and_audit_ids(self):
        assert re.fullmatch(r"WF-[0-9a-f]{12}", generate_workflow_id())
        assert re.fullmatch(r"AUD-[0-9a-f]{12}", generate_audit_entry_id())

    @pytest.mark.parametrize("asset_type,prefix", [
        (AssetType.SERVER, "SRV"),
        (AssetType.NETWORK, "NET"),
        (AssetType.STORAGE, "STG"),
        (AssetType.WORKSTATION, "WS"),
    ])
    def test_asset_prefixes(self, asset_type, prefix):
        assert asset_id_prefix(asset_type) == prefix

    def test_asset_id_padding(self):
        assert format_asset_id("SRV", 1) == "SRV-001"
        assert format_asset_id("NET", 42) == "NET-042"
        assert format_asset_id("WS", 1234) == "WS-1234"

    def test_correlation_id_shape(self):
        assert re.fullmatch(r"COR-\d{14}-[0-9a-f]{8}", generate_correlation_id())


class TestTime:

    def test_naive_is_treated_as_utc(self):
        naive = datetime(2024, 5, 1, 12, 0)
        assert ensure_utc(naive) == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def test_offsets_are_normalized(self):
        plus_two = datetime(2024, 5, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_iso(plus_two) == "2024-05-01T12:00:00Z"

    def test_format_none(self):
        assert format_iso(None) is None

    def test_parse_iso(self):
        parsed = parse_iso("2024-05-01T12:00:00Z")
        assert parsed == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        assert parse_iso(format_iso(parsed)) == parsed


class TestJsonFormatter:

    def test_includes_context_fields(self):
        set_correlation_id("COR-abc")
        try:
            record = logging.LogRecord("assetflow.test", logging.INFO, __file__, 1, "hello", None, None)
            record.asset_id = "SRV-001"
            record.workflow_id = "WF-1"
            payload = json.loads(JsonFormatter().format(record))
        finally:
            set_correlation_id(None)

        assert payload["message"] == "hello"
        assert payload["level"] == "INFO"
        assert payload["correlation_id"] == "COR-abc"
        assert payload["asset_id"] == "SRV-001"
        assert payload["workflow_id"] == "WF-1"
        assert "actor_id" not in payload


class TestDegradedModeSignal:

    def test_starts_healthy(self):
        signal = DegradedModeSignal()
        assert not signal.is_degraded
        assert signal.snapshot() == {"degraded": False, "incident_count": 0, "last_incident": None}

    def test_raise_and_clear(self):
        signal = DegradedModeSignal()
        signal.raise_signal("audit_append_failed", {"audit_entry_id": "AUD-1"})

        snapshot = signal.snapshot()
        assert snapshot["degraded"]
        assert snapshot["incident_count"] == 1
        assert snapshot["last_incident"]["details"] == {"audit_entry_id": "AUD-1"}

        signal.clear()
        assert not signal.is_degraded

    def test_incident_history_is_bounded(self):
        signal = DegradedModeSignal(max_incidents=3)
        for i in range(5):
            signal.raise_signal(f"r{i}")
        assert [i["reason"] for i in signal.incidents()] == ["r2", "r3", "r4"]


class TestRunner:

    def test_bind_address_comes_from_settings(self, monkeypatch):
        import run

        calls = {}
        monkeypatch.setattr(run.settings, "api_host", "0.0.0.0")
        monkeypatch.setattr(run.settings, "api_port", 9123)
        monkeypatch.setattr(run.uvicorn, "run", lambda app, **kwargs: calls.update(app=app, **kwargs))
        monkeypatch.setattr("sys.argv", ["run.py"])

        run.main()

        assert calls["app"] == "assetflow.main:app"
        assert calls["host"] == "0.0.0.0"
        assert calls["port"] == 9123
        assert calls["workers"] == 1
        assert calls["log_level"] == run.settings.log_level.lower()
