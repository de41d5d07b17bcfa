"""
Expiration Sweeper

Finds expired files and groups and abandoned upload sessions, and deletes
their blobs and metadata.

There is no lock and no cross-store transaction. Candidates are selected
afresh on every run and every delete is idempotent, so overlapping or
back-to-back runs are safe: a resource is counted only by the run whose
row delete actually removed the row.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sunnycloud.application.file_service import FileService
from sunnycloud.domain.file_storage.entities import utc_now
from sunnycloud.domain.file_storage.repositories import FileGroupRepository, FileRecordRepository
from sunnycloud.domain.file_storage.storage_repository import IObjectStorageRepository
from sunnycloud.domain.uploads.repositories import UploadSessionRepository

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Outcome of one sweep."""
    deleted_files: int = 0
    deleted_groups: int = 0
    reaped_uploads: int = 0
    failures: int = 0

    def to_dict(self) -> dict:
        return {
            "deletedFiles": self.deleted_files,
            "deletedGroups": self.deleted_groups,
            "reapedUploads": self.reaped_uploads,
            "failures": self.failures,
        }


class ExpirationSweeper:
    """
    Time-driven garbage collector for expired resources.

    Each candidate is handled independently: a failure is logged with its
    traceback, counted, and the sweep moves on to the next candidate.
    """

    def __init__(
        self,
        file_repository: FileRecordRepository,
        group_repository: FileGroupRepository,
        session_repository: UploadSessionRepository,
        storage_repository: IObjectStorageRepository,
        file_service: FileService,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.file_repository = file_repository
        self.group_repository = group_repository
        self.session_repository = session_repository
        self.storage_repository = storage_repository
        self.file_service = file_service
        self._clock = clock or utc_now

    def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """
        Run one sweep.

        Args:
            now: Reference time (defaults to the current UTC time)

        Returns:
            SweepReport with counts of deleted resources and failures
        """
        now = now or self._clock()
        report = SweepReport()
        logger.info(f"Starting expiration sweep at {now.isoformat()}")

        self._sweep_files(now, report)
        self._sweep_groups(now, report)
        self._reap_uploads(now, report)

        logger.info(
            f"Sweep completed - Files: {report.deleted_files}, "
            f"Groups: {report.deleted_groups}, "
            f"Uploads: {report.reaped_uploads}, "
            f"Failures: {report.failures}"
        )
        return report

    def _sweep_files(self, now: datetime, report: SweepReport) -> None:
        for record in self.file_repository.find_expired(now):
            try:
                if self.file_service.purge_file(record) > 0:
                    report.deleted_files += 1
            except Exception:
                report.failures += 1
                logger.error(
                    f"Failed to delete expired file {record.id} ({record.storage_key})",
                    exc_info=True,
                )

    def _sweep_groups(self, now: datetime, report: SweepReport) -> None:
        for group in self.group_repository.find_expired(now):
            try:
                if self.file_service.purge_group(group) > 0:
                    report.deleted_groups += 1
            except Exception:
                report.failures += 1
                logger.error(f"Failed to delete expired group {group.id}", exc_info=True)

    def _reap_uploads(self, now: datetime, report: SweepReport) -> None:
        for session in self.session_repository.find_abandoned(now):
            try:
                self.storage_repository.abort_session(session.storage_key, session.upload_id)
                if self.session_repository.delete(session.session_id):
                    report.reaped_uploads += 1
            except Exception:
                report.failures += 1
                logger.error(
                    f"Failed to reap upload session {session.session_id}", exc_info=True
                )
