import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .audit import AuditLog, Operation, Status
from .backup.archiver import BackupArchiver, new_stamp
from .backup.restore import RestoreEngine
from .cleanup.deleter import OrphanDeleter
from .config import CleanerConfig
from .exceptions import ArchiveWriteError, BackupStagingError, OrphanCleanerError
from .models import BackupResult, DeleteSummary, RestoreSummary, RunState, ScanResult
from .reporting import format_bytes, log_orphan_report, log_restore_hint, write_orphan_csv
from .scanning.detector import OrphanDetector
from .scanning.walker import DirectoryWalker


@dataclass
class CleanResult:
    scan: ScanResult
    backup: Optional[BackupResult] = None
    deletion: Optional[DeleteSummary] = None


class OrphanCleanerApp:
    """
    Runs one preview, clean or restore against a media library.

    One instance is one run: it owns the run stamp that names the audit log,
    the staging directory and the archive.
    """

    def __init__(self, cfg: CleanerConfig, stamp: Optional[str] = None):
        self.cfg = cfg
        self.stamp = stamp or new_stamp()
        self.audit = AuditLog(cfg.audit_path(self.stamp))
        self.detector = OrphanDetector(cfg, audit=self.audit)
        self.state = RunState.IDLE

    def _enter(self, state: RunState):
        logging.debug(f"State: {self.state.name} -> {state.name}")
        self.state = state

    def scan(self) -> ScanResult:
        self._enter(RunState.SCANNING)
        logging.info(f"Scanning for orphaned image size files in {self.cfg.root}")
        try:
            result = self.detector.scan(DirectoryWalker(self.cfg))
        except OrphanCleanerError:
            self._enter(RunState.FAILED)
            raise

        logging.info("Scan complete!")
        logging.info(f"   Total files scanned: {result.total_scanned}")
        logging.info(f"   Orphaned files found: {len(result.orphans)}")
        logging.info(f"   Total orphaned size: {format_bytes(result.total_size)}")
        return result

    def preview(self, report_csv: Optional[Path] = None) -> ScanResult:
        """Dry run: detect and report, change nothing under the root."""
        result = self.scan()
        if not result.orphans:
            self._finish_empty()
            return result

        self._enter(RunState.REPORTED)
        log_orphan_report(result.orphans, result.total_size, dry_run=True)
        if report_csv:
            write_orphan_csv(result.orphans, report_csv)

        self._audit(
            Operation.SCAN_COMPLETE,
            size=result.total_size,
            status=Status.SUCCESS,
            error_message=f"Dry run completed. Found {len(result.orphans)} orphaned files "
                          f"totaling {format_bytes(result.total_size)}",
        )
        self._enter(RunState.DONE)
        return result

    def clean(self) -> CleanResult:
        """
        Detect, back up, then delete.

        Deletion only starts once the archive is written and verified. A staging
        or archive failure leaves the library untouched and is re-raised.
        """
        result = CleanResult(scan=self.scan())
        if not result.scan.orphans:
            self._finish_empty()
            return result

        self._enter(RunState.REPORTED)
        log_orphan_report(result.scan.orphans, result.scan.total_size)

        self._enter(RunState.BACKING_UP)
        logging.info("Creating backup before deletion...")
        archiver = BackupArchiver(self.cfg, self.stamp, audit=self.audit)
        try:
            result.backup = archiver.create(result.scan.orphans)
        except (BackupStagingError, ArchiveWriteError) as e:
            self._enter(RunState.ABORTED)
            logging.error(f"Backup failed, nothing was deleted: {e}")
            raise

        self._enter(RunState.DELETING)
        logging.info("Deleting orphaned files...")
        deleter = OrphanDeleter(self.detector, audit=self.audit)
        result.deletion = deleter.execute(result.scan.orphans)

        self._enter(RunState.DONE)
        self._log_clean_summary(result)
        return result

    def restore(self, archive_name: Optional[str] = None) -> RestoreSummary:
        self._enter(RunState.LOCATING_ARCHIVE)
        engine = RestoreEngine(self.cfg, audit=self.audit, state_hook=self._enter)
        try:
            archive_path = engine.locate(archive_name)
            summary = engine.restore(archive_path)
        except OrphanCleanerError:
            self._enter(RunState.FAILED)
            raise
        self._enter(RunState.DONE)
        return summary

    def _audit(self, operation: Operation, **fields):
        try:
            self.audit.record(operation, **fields)
        except OrphanCleanerError:
            self._enter(RunState.FAILED)
            raise

    def _finish_empty(self):
        logging.info("No orphaned images found!")
        self._audit(
            Operation.SCAN_COMPLETE,
            status=Status.SUCCESS,
            error_message="No orphaned files found",
        )
        self._enter(RunState.DONE)

    def _log_clean_summary(self, result: CleanResult):
        deletion = result.deletion
        logging.info("CLEANUP COMPLETE!")
        logging.info(f"   Files deleted: {deletion.deleted}")
        logging.info(f"   Failed deletions: {deletion.failed}")
        if deletion.skipped:
            logging.info(f"   Skipped (parent reappeared): {deletion.skipped}")
        freed = sum(r.size for r in result.scan.orphans)
        logging.info(f"   Space freed (at most): {format_bytes(freed)}")
        logging.info(f"Backup created: {result.backup.archive_path}")
        if not result.backup.staging_removed:
            logging.info(f"Backup directory preserved: {result.backup.staging_dir}")
        logging.info(f"Log saved: {self.audit.path}")
        log_restore_hint(result.backup.archive_path)
