"""
Unit tests for sync orchestration.

Uses a real state store and log tree in a temporary directory, with the
stats service client mocked.
"""

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from ccgh_stats.api.client import ApiError, Registration, StatsApiClient
from ccgh_stats.config.loader import SyncSettings
from ccgh_stats.core.sync import SyncOrchestrator, SyncOutcome
from ccgh_stats.core.usage import UsageRecord
from ccgh_stats.storage.models import SyncConfig
from ccgh_stats.storage.store import SyncStateStore

T0 = 1_704_326_400.0  # 2024-01-04T00:00:00Z


class FakeClock:
    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _event(day: str, model: str = "claude-3-5-sonnet", input_tokens: int = 10, output_tokens: int = 1) -> str:
    return json.dumps({
        "type": "assistant",
        "timestamp": f"{day}T08:30:00.000Z",
        "message": {"model": model, "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens}}
    })


class SyncTestCase:
    """Shared orchestrator fixture."""

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.settings = SyncSettings(
            storage_dir=self.temp_dir / ".claude-stats",
            logs_root=self.temp_dir / "projects",
            legacy_state_file=self.temp_dir / ".claude-stats-state"
        )
        self.clock = FakeClock(T0)
        self.store = SyncStateStore(self.settings, clock=self.clock)
        self.client = Mock(spec=StatsApiClient)
        self.client.register.return_value = Registration(
            public_id="pub-1",
            write_token="tok-1",
            widget_url="https://stats.example.com/api/w/pub-1.svg"
        )
        self.client.sync_records.return_value = {"success": True}
        self.orchestrator = SyncOrchestrator(
            settings=self.settings,
            store=self.store,
            client=self.client,
            logger=logging.getLogger("ccgh_stats.tests")
        )

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def write_log(self, relative: str, lines, mtime: float = None) -> Path:
        path = self.settings.logs_root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path

    def uploaded_records(self):
        args, _ = self.client.sync_records.call_args
        return args[2]


class TestFullSync(SyncTestCase):
    """Test the setup path."""

    def test_registers_uploads_and_stamps_cache(self):
        self.write_log("a/s1.jsonl", [_event("2024-01-01"), _event("2024-01-02", "claude-3-opus")])
        self.write_log("b/s2.jsonl", [_event("2024-01-01", input_tokens=5, output_tokens=5)])

        result = self.orchestrator.full_sync()

        assert not result.already_registered
        assert result.public_id == "pub-1"
        assert result.widget_url == "https://stats.example.com/api/w/pub-1.svg"
        assert result.record_count == 2
        self.client.sync_records.assert_called_once()
        assert self.client.sync_records.call_args[0][:2] == ("pub-1", "tok-1")
        assert self.uploaded_records() == [
            UsageRecord(date="2024-01-01", model="Sonnet", input=15, output=6),
            UsageRecord(date="2024-01-02", model="Opus", input=10, output=1),
        ]
        assert self.store.read_config() == SyncConfig(write_token="tok-1", public_id="pub-1")
        assert self.store.last_sync_time() == int(T0 * 1000)

    def test_uploads_empty_batch_when_no_logs(self):
        result = self.orchestrator.full_sync()

        assert result.record_count == 0
        assert self.uploaded_records() == []
        assert self.store.last_sync_time() == int(T0 * 1000)

    def test_already_registered_is_a_no_op(self):
        self.store.write_config(SyncConfig(write_token="existing", public_id="mine"))

        result = self.orchestrator.full_sync()

        assert result.already_registered
        assert result.public_id == "mine"
        self.client.register.assert_not_called()
        self.client.sync_records.assert_not_called()
        assert self.store.read_config() == SyncConfig(write_token="existing", public_id="mine")

    def test_registration_failure_writes_nothing(self):
        self.client.register.side_effect = ApiError("Registration failed: 500")

        with pytest.raises(ApiError):
            self.orchestrator.full_sync()

        assert not self.settings.config_file.exists()
        assert not self.settings.cache_file.exists()

    def test_upload_failure_keeps_config_without_cache(self):
        self.write_log("a/s.jsonl", [_event("2024-01-01")])
        self.client.sync_records.side_effect = ApiError("Sync failed: 502")

        with pytest.raises(ApiError):
            self.orchestrator.full_sync()

        assert self.store.read_config() == SyncConfig(write_token="tok-1", public_id="pub-1")
        assert not self.settings.cache_file.exists()


class TestIncrementalSync(SyncTestCase):
    """Test the hook path."""

    def register(self):
        self.store.write_config(SyncConfig(write_token="tok", public_id="pub"))

    def stamp(self, epoch_seconds: float):
        self.clock.now = epoch_seconds
        self.store.update_sync_time()
        self.clock.now = T0

    def test_not_due_short_circuits_before_scanning(self):
        self.register()
        self.store.update_sync_time()
        self.write_log("a/s.jsonl", [_event("2024-01-04")], mtime=T0 + 1)

        assert self.orchestrator.incremental_sync() == SyncOutcome.NOT_DUE
        self.client.sync_records.assert_not_called()

    def test_not_registered_is_silent(self):
        self.write_log("a/s.jsonl", [_event("2024-01-04")])

        assert self.orchestrator.incremental_sync() == SyncOutcome.NOT_REGISTERED
        self.client.sync_records.assert_not_called()
        assert not self.settings.cache_file.exists()

    def test_uploads_only_modified_files_and_recent_days(self):
        self.register()
        self.stamp(T0 - 3600)  # 2024-01-03T23:00Z
        self.write_log("a/old.jsonl", [_event("2024-01-03", "claude-3-haiku")], mtime=T0 - 7200)
        self.write_log("a/new.jsonl", [
            _event("2024-01-01"),
            _event("2024-01-03"),
            _event("2024-01-04", input_tokens=7, output_tokens=3),
        ], mtime=T0 - 60)

        assert self.orchestrator.incremental_sync() == SyncOutcome.SYNCED

        assert self.client.sync_records.call_args[0][:2] == ("pub", "tok")
        assert self.uploaded_records() == [
            UsageRecord(date="2024-01-03", model="Sonnet", input=10, output=1),
            UsageRecord(date="2024-01-04", model="Sonnet", input=7, output=3),
        ]
        assert self.store.last_sync_time() == int(T0 * 1000)

    def test_no_changes_still_advances_cache(self):
        self.register()
        self.stamp(T0 - 3600)
        self.write_log("a/old.jsonl", [_event("2024-01-03")], mtime=T0 - 7200)

        assert self.orchestrator.incremental_sync() == SyncOutcome.NO_CHANGES

        self.client.sync_records.assert_not_called()
        assert self.store.last_sync_time() == int(T0 * 1000)

    def test_first_sync_without_cache_scans_everything(self):
        self.register()
        self.write_log("a/s.jsonl", [_event("2020-05-05")], mtime=1_000)

        assert self.orchestrator.incremental_sync() == SyncOutcome.SYNCED
        assert [r.date for r in self.uploaded_records()] == ["2020-05-05"]

    def test_upload_failure_leaves_cutoff_unchanged(self):
        self.register()
        cutoff_seconds = T0 - 3600
        self.stamp(cutoff_seconds)
        self.write_log("a/new.jsonl", [_event("2024-01-04")], mtime=T0 - 60)
        self.client.sync_records.side_effect = ApiError("Sync failed: 503")

        assert self.orchestrator.incremental_sync() == SyncOutcome.FAILED

        assert self.store.last_sync_time() == int(cutoff_seconds * 1000)
        assert self.store.should_sync()

    def test_cache_write_failure_is_reported_and_cutoff_kept(self):
        self.register()
        cutoff_seconds = T0 - 3600
        self.stamp(cutoff_seconds)
        self.write_log("a/new.jsonl", [_event("2024-01-04")], mtime=T0 - 60)

        with patch.object(self.store, "update_sync_time", side_effect=OSError("disk full")):
            assert self.orchestrator.incremental_sync() == SyncOutcome.FAILED

        self.client.sync_records.assert_called_once()
        assert self.store.last_sync_time() == int(cutoff_seconds * 1000)

    def test_skipped_lines_are_tallied_in_sync_log(self):
        self.register()
        self.orchestrator.logger = Mock()
        self.write_log("a/s.jsonl", ["{not json", _event("2024-01-04"), '{"type": "user"}'])

        assert self.orchestrator.incremental_sync() == SyncOutcome.SYNCED

        messages = [c.args[0] for c in self.orchestrator.logger.info.call_args_list]
        assert "Parsed 1 sessions, 1 usage events, 11 tokens" in messages
        assert "Skipped lines: invalid_json=1, not_assistant=1" in messages
