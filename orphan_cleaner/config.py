"""
Configuration constants and the per-run configuration value for the orphan cleaner.
"""
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

# --- File Type Definitions ---
IMAGE_EXTS = ('jpg', 'jpeg', 'png', 'gif', 'webp')
# Extensions that may carry a secondary .webp copy (image.jpg.webp)
WEBP_SOURCE_EXTS = ('jpg', 'jpeg', 'png', 'gif')

# --- Media Library Layout ---
YEAR_DIR_PATTERN = r'^\d{4}$'
MONTH_DIR_PATTERN = r'^(0[1-9]|1[0-2])$'

DEFAULT_ROOT = Path("../wp-content/uploads")
DEFAULT_LOG_DIR = Path("./logs")

# --- Backup & Audit Naming ---
BACKUP_PREFIX = "wp-oic"
MANIFEST_NAME = "manifest.json"
STAGING_SUFFIX = "-temp"
ARCHIVE_EXT = ".zip"
AUDIT_EXT = ".csv"
RESTORE_TEMP_PREFIX = "restore-temp-"
STAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"

ZIP_COMPRESSION_LEVEL = 9

# --- Performance ---
DEFAULT_MAX_WORKERS = 3  # HDD-friendly; directories are processed as whole batches


class SiblingErrorPolicy(Enum):
    """What to conclude when a parent lookup cannot list the directory."""
    SKIP = "skip"                    # assume not orphan, warn
    ASSUME_ORPHAN = "orphan"         # legacy behaviour: treat as "no parent found"


@dataclass(frozen=True)
class CleanerConfig:
    """
    Run-wide settings, built once by the caller and handed to each component.
    """
    root: Path
    log_dir: Path
    cleanup: bool = False
    sibling_error_policy: SiblingErrorPolicy = SiblingErrorPolicy.SKIP
    max_workers: int = DEFAULT_MAX_WORKERS
    backup_prefix: str = BACKUP_PREFIX

    def archive_name(self, stamp: str) -> str:
        return f"{self.backup_prefix}-{stamp}{ARCHIVE_EXT}"

    def staging_dir(self, stamp: str) -> Path:
        return self.root / f"{self.backup_prefix}-{stamp}{STAGING_SUFFIX}"

    def audit_path(self, stamp: str) -> Path:
        return self.log_dir / f"{self.backup_prefix}-{stamp}{AUDIT_EXT}"
