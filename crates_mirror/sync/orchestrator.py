#!/usr/bin/env python3

import os
import logging
from dataclasses import dataclass, asdict
from typing import Dict, Optional

from .models import (
    SyncStatus, PackageRecord, MirrorError, MetadataFetchError, CloneError,
    StateWriteError
)
from ..index.source import GitIndexSource
from ..state.store import StateStore
from ..metadata.client import MetadataClient
from ..clone.executor import CloneExecutor

logger = logging.getLogger(__name__)

@dataclass
class SyncReport:
    processed: int = 0
    skipped: int = 0
    duplicates: int = 0
    cloned: int = 0
    failed: int = 0
    no_repo: int = 0
    metadata_error: int = 0
    store_errors: int = 0

    def record(self, status: SyncStatus) -> None:
        self.processed += 1
        if status is SyncStatus.CLONED:
            self.cloned += 1
        elif status is SyncStatus.FAILED:
            self.failed += 1
        elif status is SyncStatus.NO_REPO:
            self.no_repo += 1
        elif status is SyncStatus.METADATA_ERROR:
            self.metadata_error += 1

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)

class SyncOrchestrator:
    """Drives every package in the index through the sync state machine.

    Unseen -> MetadataError | NoRepo | Pending -> Cloned | Failed

    Only Cloned (or an existing destination directory) makes a later run skip
    a package; every other terminal status is retried on the next run.
    """

    # Terminal status recorded for each per-package failure
    FAILURE_STATUS = {
        MetadataFetchError: SyncStatus.METADATA_ERROR,
        CloneError: SyncStatus.FAILED,
    }

    def __init__(self, index_source: GitIndexSource, state_store: StateStore,
                 metadata_client: MetadataClient, clone_executor: CloneExecutor,
                 output_path: str):
        self.index_source = index_source
        self.state_store = state_store
        self.metadata_client = metadata_client
        self.clone_executor = clone_executor
        self.output_path = output_path

    def destination_for(self, name: str) -> str:
        return os.path.join(self.output_path, name)

    def should_skip(self, name: str) -> bool:
        # An existing directory wins over the stored status so that mirrors
        # placed or restored by hand are respected
        if os.path.exists(self.destination_for(name)):
            return True
        return self.state_store.get_status(name) is SyncStatus.CLONED

    def run(self, refresh: bool = True, limit: Optional[int] = None) -> SyncReport:
        """Process the whole index. Raises IndexUnavailable if it cannot be read."""
        if refresh:
            self.index_source.refresh()

        report = SyncReport()
        seen = set()

        for record in self.index_source.list():
            if limit is not None and report.processed >= limit:
                logger.info(f"Reached limit of {limit} packages, stopping")
                break

            if record.name in seen:
                logger.debug(f"Ignoring duplicate index entry for {record.name}")
                report.duplicates += 1
                continue
            seen.add(record.name)

            if self.should_skip(record.name):
                logger.debug(f"Skipping {record.name}: already mirrored")
                report.skipped += 1
                continue

            report.record(self.sync_package(record, report))

        logger.info(
            f"Sync finished: {report.cloned} cloned, {report.failed} failed, "
            f"{report.no_repo} without repository, {report.metadata_error} metadata errors, "
            f"{report.skipped} skipped"
        )
        return report

    def sync_package(self, record: PackageRecord, report: Optional[SyncReport] = None) -> SyncStatus:
        """Fetch, clone and record one package. Never raises for per-package failures."""
        name = record.name

        try:
            repository = self.metadata_client.fetch(name)
            if repository is None:
                logger.info(f"No repository URL for {name}")
                self._write(report, self.state_store.set_status, name, SyncStatus.NO_REPO)
                return SyncStatus.NO_REPO

            self._write(report, self.state_store.upsert_pending, name, repository)
            self.clone_executor.clone(repository, self.destination_for(name))

        except MirrorError as e:
            status = self._status_for_error(e)
            logger.error(f"Failed to sync {name} ({status.value}): {e}")
            self._write(report, self.state_store.set_status, name, status)
            return status

        logger.info(f"Cloned {name}")
        # Carries the URL in case the Pending write above was lost
        self._write(report, self.state_store.set_status, name, SyncStatus.CLONED, repository)
        return SyncStatus.CLONED

    def _status_for_error(self, error: MirrorError) -> SyncStatus:
        for error_type, status in self.FAILURE_STATUS.items():
            if isinstance(error, error_type):
                return status
        raise error

    def _write(self, report: Optional[SyncReport], operation, *args) -> None:
        try:
            operation(*args)
        except StateWriteError as e:
            logger.error(f"State write ignored: {e}")
            if report is not None:
                report.store_errors += 1
