import json
import logging
import shutil
import zipfile
from datetime import datetime, UTC
from pathlib import Path
from typing import List, Optional

from tqdm import tqdm

from .. import config
from ..audit import AuditLog, Operation, Status
from ..config import CleanerConfig
from ..exceptions import ArchiveWriteError, BackupStagingError
from ..models import BackupManifest, BackupResult, OrphanRecord
from ..reporting import format_bytes


class BackupArchiver:
    """
    Snapshots orphans into <root>/<prefix>-<stamp>.zip before anything is deleted.

    Stages every file into a mirrored <prefix>-<stamp>-temp tree, writes the
    manifest beside them, then compresses the tree. Any failure raises and
    leaves nothing deletable.
    """

    def __init__(self, cfg: CleanerConfig, stamp: str, audit: Optional[AuditLog] = None):
        self.cfg = cfg
        self.stamp = stamp
        self.audit = audit
        self.staging_dir = cfg.staging_dir(stamp)
        self.archive_path = cfg.root / cfg.archive_name(stamp)

    def create(self, records: List[OrphanRecord]) -> BackupResult:
        manifest = BackupManifest.from_records(records, created=datetime.now(UTC).isoformat())

        self._stage(records)
        self._write_manifest(manifest)
        self._compress()

        archive_size = self.archive_path.stat().st_size
        logging.info(f"Backup ZIP created: {format_bytes(archive_size)} - {self.archive_path.name}")

        staging_removed = False
        if self.cfg.cleanup:
            staging_removed = self._remove_staging()
        else:
            logging.info(f"Backup directory preserved: {self.staging_dir}")

        if self.audit:
            self.audit.record(
                Operation.BACKUP_CREATED,
                file_path=self.archive_path,
                size=manifest.total_size,
                status=Status.SUCCESS,
                error_message=f"Backup created with {manifest.total_files} files",
            )

        return BackupResult(
            archive_path=self.archive_path,
            staging_dir=self.staging_dir,
            manifest=manifest,
            staging_removed=staging_removed,
        )

    def _stage(self, records: List[OrphanRecord]):
        try:
            self.staging_dir.mkdir(parents=True, exist_ok=False)
        except OSError as e:
            raise BackupStagingError(f"Could not create staging directory {self.staging_dir}: {e}") from e

        for rec in tqdm(records, desc="Staging backup"):
            target = self.staging_dir / rec.relative_path
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(rec.path, target)
                copied, source = target.stat().st_size, rec.path.stat().st_size
            except OSError as e:
                self._discard_staging()
                raise BackupStagingError(f"Could not stage {rec.relative_path}: {e}") from e
            if copied != source:
                self._discard_staging()
                raise BackupStagingError(
                    f"Staged copy of {rec.relative_path} is {copied} bytes, source is {source}"
                )

    def _write_manifest(self, manifest: BackupManifest):
        manifest_path = self.staging_dir / config.MANIFEST_NAME
        try:
            manifest_path.write_text(json.dumps(manifest.to_dict(), indent=2), encoding="utf-8")
        except OSError as e:
            self._discard_staging()
            raise BackupStagingError(f"Could not write manifest {manifest_path}: {e}") from e

    def _compress(self):
        # 'x' refuses to overwrite an archive from an earlier run
        try:
            zf = zipfile.ZipFile(
                self.archive_path, "x",
                compression=zipfile.ZIP_DEFLATED,
                compresslevel=config.ZIP_COMPRESSION_LEVEL,
                strict_timestamps=False,
            )
        except OSError as e:
            raise ArchiveWriteError(f"Could not create archive {self.archive_path}: {e}") from e

        try:
            with zf:
                for path in sorted(self.staging_dir.rglob("*")):
                    if path.is_file():
                        zf.write(path, path.relative_to(self.staging_dir).as_posix())
            with zipfile.ZipFile(self.archive_path) as check:
                bad_member = check.testzip()
        except (OSError, zipfile.BadZipFile) as e:
            self._discard_archive()
            raise ArchiveWriteError(f"Could not write archive {self.archive_path}: {e}") from e

        if bad_member is not None:
            self._discard_archive()
            raise ArchiveWriteError(f"Archive {self.archive_path} failed CRC check at {bad_member}")

    def _remove_staging(self) -> bool:
        try:
            shutil.rmtree(self.staging_dir)
        except OSError as e:
            logging.warning(f"Could not delete temporary directory {self.staging_dir}: {e}")
            return False
        logging.info(f"Removed staging directory {self.staging_dir}")
        return True

    def _discard_staging(self):
        if self.staging_dir.exists() and not self._remove_staging():
            logging.warning(f"Partial staging directory left behind: {self.staging_dir}")

    def _discard_archive(self):
        try:
            self.archive_path.unlink(missing_ok=True)
        except OSError as e:
            logging.warning(f"Could not remove incomplete archive {self.archive_path}: {e}")


def new_stamp(now: Optional[datetime] = None) -> str:
    """Filesystem-safe UTC run stamp shared by the audit log, staging dir and archive."""
    return (now or datetime.now(UTC)).strftime(config.STAMP_FORMAT)


def archive_stamp(archive_name: str, prefix: str = config.BACKUP_PREFIX) -> Optional[datetime]:
    """Parses the run stamp out of '<prefix>-<stamp>.zip' or '<prefix>-<stamp>.csv'."""
    name = Path(archive_name).name
    if not name.startswith(prefix + "-"):
        return None
    stem = name[len(prefix) + 1:]
    for ext in (config.ARCHIVE_EXT, config.AUDIT_EXT):
        if stem.endswith(ext):
            stem = stem[:-len(ext)]
            break
    else:
        return None
    try:
        return datetime.strptime(stem, config.STAMP_FORMAT)
    except ValueError:
        return None
