"""
Sync orchestration.

Full sync runs once at setup and uploads the whole log corpus. Incremental
sync runs from the assistant's hook, re-scans only files touched since the
last sync and advances the cache only when nothing was lost.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ccgh_stats.api.client import ApiError, StatsApiClient
from ccgh_stats.config.loader import SyncSettings
from ccgh_stats.storage.models import SyncConfig
from ccgh_stats.storage.store import SyncStateStore
from .extractor import ExtractionResult, extract_all, extract_modified
from .oplog import SYNC_LOGGER_NAME
from .usage import format_tokens


class SyncOutcome(Enum):
    """Result of an incremental sync attempt."""
    NOT_DUE = "not_due"
    NOT_REGISTERED = "not_registered"
    NO_CHANGES = "no_changes"
    SYNCED = "synced"
    FAILED = "failed"


@dataclass(frozen=True)
class SetupResult:
    """Result of a full sync."""
    already_registered: bool
    public_id: str
    widget_url: Optional[str]
    record_count: int = 0
    total_tokens: int = 0


class SyncOrchestrator:
    """Coordinates extraction, upload and state updates."""

    def __init__(
        self,
        settings: SyncSettings,
        store: SyncStateStore,
        client: StatsApiClient,
        logger: Optional[logging.Logger] = None
    ):
        self.settings = settings
        self.store = store
        self.client = client
        self.logger = logger or logging.getLogger(SYNC_LOGGER_NAME)

    def full_sync(self) -> SetupResult:
        """Register and upload every record found in the session logs.

        Does nothing when already registered. If the upload fails after
        registration, the new credentials stay on disk and no cache is
        written; rerunning setup then takes the already-registered path.

        Returns:
            SetupResult describing the registration

        Raises:
            ApiError: If registration or the initial upload fails
        """
        existing = self.store.read_config()
        if existing is not None and existing.is_complete:
            return SetupResult(
                already_registered=True,
                public_id=existing.public_id,
                widget_url=self.store.widget_url()
            )

        registration = self.client.register()
        self.store.write_config(SyncConfig(
            write_token=registration.write_token,
            public_id=registration.public_id
        ))
        self.logger.info(f"Registered as {registration.public_id}")

        extraction = extract_all(self.settings)
        self._log_extraction(extraction)

        self.client.sync_records(registration.public_id, registration.write_token, extraction.records)
        self.store.update_sync_time()
        self.logger.info(f"Initial sync uploaded {len(extraction.records)} records")

        return SetupResult(
            already_registered=False,
            public_id=registration.public_id,
            widget_url=registration.widget_url or self.settings.widget_url(registration.public_id),
            record_count=len(extraction.records),
            total_tokens=extraction.total_tokens
        )

    def incremental_sync(self) -> SyncOutcome:
        """Upload usage from logs modified since the last sync.

        Silent no-op when the interval has not elapsed or the agent is not
        registered. A failed upload leaves the cache untouched so the next
        run retries from the same cutoff.
        """
        if not self.store.should_sync():
            return SyncOutcome.NOT_DUE

        config = self.store.read_config()
        if config is None or not config.is_complete:
            return SyncOutcome.NOT_REGISTERED

        start = time.monotonic()
        self.logger.info("─" * 50)
        self.logger.info("SYNC START")

        try:
            extraction = extract_modified(
                self.settings,
                since_ms=self.store.last_sync_time(),
                min_date=self.store.last_sync_date()
            )
            self._log_extraction(extraction)

            if not extraction.records:
                self.logger.info("No new records to sync")
                self.store.update_sync_time()
                self._log_complete(start)
                return SyncOutcome.NO_CHANGES

            self.logger.info(f"Found {len(extraction.records)} records to sync")
            self.client.sync_records(config.public_id, config.write_token, extraction.records)
            self.logger.info(f"Synced {len(extraction.records)} records")

            self.store.update_sync_time()
        except (ApiError, OSError) as e:
            self.logger.error(f"Sync failed - {e}")
            return SyncOutcome.FAILED

        self._log_complete(start)
        return SyncOutcome.SYNCED

    def _log_extraction(self, extraction: ExtractionResult) -> None:
        self.logger.info(
            f"Parsed {len(extraction.files)} sessions, "
            f"{extraction.events} usage events, "
            f"{format_tokens(extraction.total_tokens)} tokens"
        )
        skipped = extraction.skipped
        if skipped:
            tally = ", ".join(f"{reason.value}={count}" for reason, count in sorted(
                skipped.items(), key=lambda item: item[0].value
            ))
            self.logger.info(f"Skipped lines: {tally}")
        for failed in extraction.failed_files:
            self.logger.info(f"Skipped unreadable log {failed.path}: {failed.error}")

    def _log_complete(self, start: float) -> None:
        self.logger.info(f"SYNC COMPLETE ({time.monotonic() - start:.1f}s)")
