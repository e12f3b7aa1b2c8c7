import os
import json
import logging
import shutil
import tempfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import Callable, List, Optional, Tuple

from tqdm import tqdm

from .. import config
from ..audit import AuditLog, Operation, Status
from ..config import CleanerConfig
from ..exceptions import ArchiveExtractError, ArchiveLocateError, FileRestoreError
from ..models import BackupManifest, ManifestEntry, RestoreSummary, RunState
from .archiver import archive_stamp


class RestoreEngine:
    """
    Replays a backup archive's manifest onto the scan root.

    The manifest decides what is restored; other archive members are ignored.
    Each copy replaces its target atomically, so replaying an archive twice is harmless.
    """

    def __init__(self,
                 cfg: CleanerConfig,
                 audit: Optional[AuditLog] = None,
                 state_hook: Optional[Callable[[RunState], None]] = None):
        self.cfg = cfg
        self.root = cfg.root
        self.audit = audit
        self.state_hook = state_hook

    # --- Locating ---

    def locate(self, archive_name: Optional[str] = None) -> Path:
        """
        Resolves an explicit archive name (relative to the root, or absolute),
        or auto-detects the newest archive when no name is given.
        """
        if archive_name:
            candidate = Path(archive_name)
            path = candidate if candidate.is_absolute() else self.root / candidate
            if not path.is_file():
                raise ArchiveLocateError(f"Backup ZIP file not found: {path}")
            return path

        latest = self.find_latest_backup()
        if latest is None:
            raise ArchiveLocateError(
                f"No backup files found to restore from in {self.cfg.log_dir}. "
                f"Specify one explicitly, e.g. --restore {self.cfg.backup_prefix}-2024-01-15T10-30-00.zip"
            )
        logging.info(f"Auto-detected latest backup: {latest.name}")
        return latest

    def find_latest_backup(self) -> Optional[Path]:
        """
        Newest archive whose run log is in the log directory and whose ZIP
        is still on disk. Logs without a surviving ZIP are passed over.
        """
        try:
            names = os.listdir(self.cfg.log_dir)
        except OSError as e:
            logging.warning(f"Could not read logs directory: {e}")
            return None

        stamped: List[Tuple] = []
        for name in names:
            if not name.endswith(config.AUDIT_EXT):
                continue
            stamp = archive_stamp(name, self.cfg.backup_prefix)
            if stamp is not None:
                stamped.append((stamp, name))

        for _, name in sorted(stamped, reverse=True):
            zip_path = self.root / (name[:-len(config.AUDIT_EXT)] + config.ARCHIVE_EXT)
            if zip_path.is_file():
                return zip_path
            logging.debug(f"Log file {name} has no ZIP on disk; skipping")
        return None

    # --- Restoring ---

    def restore(self, archive_path: Path) -> RestoreSummary:
        summary = RestoreSummary(archive_path=archive_path)
        logging.info(f"Restoring from backup ZIP: {archive_path.name}")
        self._record(Operation.RESTORE_START, archive_path, message=f"Restoring from: {archive_path.name}")

        try:
            extract_dir = Path(tempfile.mkdtemp(prefix=config.RESTORE_TEMP_PREFIX, dir=self.root))
        except OSError as e:
            raise ArchiveExtractError(f"Could not create extraction directory under {self.root}: {e}") from e

        self._enter(RunState.EXTRACTING)
        try:
            manifest = self._extract(archive_path, extract_dir)
            self._enter(RunState.REPLAYING)
            for entry in tqdm(manifest.files, desc="Restoring"):
                try:
                    target = self._replay_entry(entry, extract_dir)
                except FileRestoreError as e:
                    summary.failed += 1
                    logging.error(f"Failed to restore: {entry.path} - {e}")
                    self._record(Operation.FILE_RESTORE_FAILED, self.root / entry.path, entry,
                                 status=Status.ERROR, message=str(e))
                    continue
                summary.restored += 1
                logging.debug(f"Restored: {entry.path}")
                self._record(Operation.FILE_RESTORED, target, entry)

            self._record(Operation.RESTORE_COMPLETE,
                         message=f"{summary.restored} files restored from {archive_path.name}")
            logging.info(f"Restore complete! {summary.restored} files restored, {summary.failed} failed.")
        finally:
            self._enter(RunState.CLEANUP)
            try:
                shutil.rmtree(extract_dir)
            except OSError as e:
                logging.warning(f"Could not delete temporary extraction directory {extract_dir}: {e}")

        self._finish_archive(summary)
        return summary

    def _extract(self, archive_path: Path, extract_dir: Path) -> BackupManifest:
        try:
            with zipfile.ZipFile(archive_path) as zf:
                zf.extractall(extract_dir)
        except (OSError, zipfile.BadZipFile) as e:
            raise ArchiveExtractError(f"Could not extract {archive_path}: {e}") from e

        manifest_path = extract_dir / config.MANIFEST_NAME
        try:
            data = json.loads(manifest_path.read_text(encoding="utf-8"))
            return BackupManifest.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise ArchiveExtractError(f"No usable {config.MANIFEST_NAME} in {archive_path.name}: {e}") from e

    def _replay_entry(self, entry: ManifestEntry, extract_dir: Path) -> Path:
        rel = PurePosixPath(entry.path)
        if not rel.parts or rel.is_absolute() or ".." in rel.parts:
            raise FileRestoreError(f"Refusing manifest path outside the root: {entry.path!r}")

        source = extract_dir.joinpath(*rel.parts)
        target = self.root.joinpath(*rel.parts)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            # Copy beside the target, then swap it in; the live path is never half-written
            with tempfile.NamedTemporaryFile(dir=target.parent, prefix=f".{target.name}.",
                                             suffix=".part", delete=False) as tmp:
                partial = Path(tmp.name)
        except OSError as e:
            raise FileRestoreError(str(e)) from e

        try:
            shutil.copy2(source, partial)
            os.replace(partial, target)
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise FileRestoreError(str(e)) from e
        return target

    def _finish_archive(self, summary: RestoreSummary):
        archive_path = summary.archive_path
        if not self.cfg.cleanup:
            logging.info(f"Backup ZIP preserved: {archive_path.name}")
            self._record(Operation.BACKUP_PRESERVED, archive_path,
                         message="Backup ZIP preserved (default behavior)")
            return

        if summary.failed:
            logging.warning(f"{summary.failed} file(s) failed to restore; keeping {archive_path.name}")
            self._record(Operation.BACKUP_PRESERVED, archive_path,
                         message=f"Backup ZIP kept: {summary.failed} file(s) failed to restore")
            return

        try:
            archive_path.unlink()
        except OSError as e:
            logging.warning(f"Could not delete backup ZIP: {e}")
            self._record(Operation.BACKUP_DELETE_FAILED, archive_path, status=Status.ERROR, message=str(e))
            return
        summary.archive_deleted = True
        logging.info(f"Backup ZIP deleted: {archive_path.name}")
        self._record(Operation.BACKUP_DELETED, archive_path, message="Backup ZIP deleted due to --delete flag")

    def _enter(self, state: RunState):
        if self.state_hook:
            self.state_hook(state)

    def _record(self,
                operation: Operation,
                file_path: Optional[Path] = None,
                entry: Optional[ManifestEntry] = None,
                status: Status = Status.SUCCESS,
                message: str = ""):
        if not self.audit:
            return
        self.audit.record(
            operation,
            file_path=file_path,
            size=entry.size if entry else 0,
            dimensions=entry.dimension_tag if entry else "",
            base_name=entry.base_name if entry else "",
            status=status,
            error_message=message,
        )
