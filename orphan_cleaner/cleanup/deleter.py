import logging
from typing import List, Optional

from tqdm import tqdm

from ..audit import AuditLog, Operation, Status
from ..exceptions import FileDeleteError
from ..models import DeleteSummary, OrphanRecord
from ..scanning.detector import OrphanDetector


class OrphanDeleter:
    def __init__(self, detector: OrphanDetector, audit: Optional[AuditLog] = None):
        self.detector = detector
        self.audit = audit

    def execute(self, records: List[OrphanRecord]) -> DeleteSummary:
        """
        Removes each orphan independently. Only call once a backup of these
        records exists.

        A failure is counted and the loop moves on; nothing already removed is
        put back. Every record is re-checked against a fresh listing first,
        since a parent may have been uploaded after the scan.
        """
        summary = DeleteSummary()

        for rec in tqdm(records, desc="Deleting"):
            if not self.detector.verify_orphan(rec):
                summary.skipped += 1
                logging.warning(f"Skipped {rec.relative_path}: parent present or unverifiable at delete time")
                self._record(Operation.FILE_DELETE_FAILED, rec, Status.ERROR,
                             "SKIPPED: parent present or unverifiable at delete time")
                continue

            try:
                self._remove(rec)
            except FileDeleteError as e:
                summary.failed += 1
                logging.error(f"Failed to delete: {rec.relative_path} - {e}")
                self._record(Operation.FILE_DELETE_FAILED, rec, Status.ERROR, str(e))
                continue

            summary.deleted += 1
            logging.debug(f"Deleted: {rec.relative_path}")
            self._record(Operation.FILE_DELETED, rec, Status.SUCCESS)

        if self.audit:
            self.audit.record(
                Operation.DELETE_SUMMARY,
                size=sum(r.size for r in records),
                status=Status.SUCCESS,
                error_message=f"{summary.deleted} deleted, {summary.failed} failed"
                              + (f", {summary.skipped} skipped" if summary.skipped else ""),
            )
        return summary

    def _remove(self, rec: OrphanRecord):
        try:
            rec.path.unlink()
        except OSError as e:
            raise FileDeleteError(str(e)) from e

    def _record(self, operation: Operation, rec: OrphanRecord, status: Status, message: str = ""):
        if not self.audit:
            return
        self.audit.record(
            operation,
            file_path=rec.path,
            size=rec.size,
            dimensions=rec.dimension_tag,
            base_name=rec.base_name,
            status=status,
            error_message=message,
        )
