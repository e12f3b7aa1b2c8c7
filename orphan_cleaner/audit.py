"""
Append-only CSV record of everything a run does.

One file per run, named <prefix>-<stamp>.csv in the log directory. The file is
created on the first record, so a run that fails before doing anything leaves
no log behind.
"""
import csv
import logging
import threading
from datetime import datetime, UTC
from enum import Enum
from pathlib import Path
from typing import Union

from .exceptions import AuditLogError
from .reporting import format_bytes

HEADERS = [
    "timestamp",
    "operation",
    "file_path",
    "file_size_bytes",
    "file_size_formatted",
    "dimensions",
    "base_name",
    "status",
    "error_message",
]


class Operation(str, Enum):
    SCAN_COMPLETE = "SCAN_COMPLETE"
    ORPHAN_FOUND = "ORPHAN_FOUND"
    BACKUP_CREATED = "BACKUP_CREATED"
    FILE_DELETED = "FILE_DELETED"
    FILE_DELETE_FAILED = "FILE_DELETE_FAILED"
    DELETE_SUMMARY = "DELETE_SUMMARY"
    RESTORE_START = "RESTORE_START"
    FILE_RESTORED = "FILE_RESTORED"
    FILE_RESTORE_FAILED = "FILE_RESTORE_FAILED"
    RESTORE_COMPLETE = "RESTORE_COMPLETE"
    BACKUP_PRESERVED = "BACKUP_PRESERVED"
    BACKUP_DELETED = "BACKUP_DELETED"
    BACKUP_DELETE_FAILED = "BACKUP_DELETE_FAILED"


class Status(str, Enum):
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    FOUND = "FOUND"


class AuditLog:
    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.Lock()
        self._initialized = False

    def record(self,
               operation: Operation,
               file_path: Union[str, Path, None] = "",
               size: int = 0,
               dimensions: str = "",
               base_name: str = "",
               status: Status = Status.SUCCESS,
               error_message: str = ""):
        row = [
            datetime.now(UTC).isoformat(),
            operation.value,
            str(file_path or ""),
            size,
            format_bytes(size) if size > 0 else "",
            dimensions,
            base_name,
            status.value,
            error_message,
        ]
        with self._lock:
            self._ensure_header()
            with self.path.open("a", newline="", encoding="utf-8") as f:
                writer = csv.writer(f, quoting=csv.QUOTE_ALL, lineterminator="\n")
                writer.writerow(row)

    def _ensure_header(self):
        if self._initialized:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # 'x' keeps a same-second run from truncating an earlier run's log
        try:
            with self.path.open("x", newline="", encoding="utf-8") as f:
                f.write(",".join(HEADERS) + "\n")
        except FileExistsError as e:
            raise AuditLogError(f"Audit log {self.path} already exists; another run used this stamp") from e
        self._initialized = True
        logging.info(f"Logging to: {self.path}")


def read_entries(path: Path) -> list:
    """Returns the rows of an audit file as dicts keyed by header."""
    with path.open("r", newline="", encoding="utf-8") as f:
        return list(csv.DictReader(f))

