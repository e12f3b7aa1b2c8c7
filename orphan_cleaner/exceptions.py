"""
Custom exception hierarchy for the orphan cleaner.

Fatal errors abort the operation in progress; the per-file ones are raised and
caught at the per-file seam so a batch can keep going.
"""


class OrphanCleanerError(Exception):
    """Base exception for all orphan cleaner errors."""
    pass


class ScanRootError(OrphanCleanerError):
    """Raised when the scan root is missing or cannot be read."""
    pass


class ScanDirectoryError(OrphanCleanerError):
    """Raised when a directory below the root cannot be read during the walk."""
    pass


class SiblingLookupError(OrphanCleanerError):
    """Raised when a directory listing fails while resolving a file's parent."""
    pass


class BackupStagingError(OrphanCleanerError):
    """Raised when a file cannot be staged for backup. Nothing may be deleted."""
    pass


class ArchiveWriteError(OrphanCleanerError):
    """Raised when the backup archive cannot be written or verified."""
    pass


class ArchiveExtractError(OrphanCleanerError):
    """Raised when a backup archive cannot be extracted or holds no usable manifest."""
    pass


class ArchiveLocateError(OrphanCleanerError):
    """Raised when no backup archive can be found for a restore."""
    pass


class FileDeleteError(OrphanCleanerError):
    """Raised when a single orphan cannot be removed."""
    pass


class FileRestoreError(OrphanCleanerError):
    """Raised when a single manifest entry cannot be restored."""
    pass


class AuditLogError(OrphanCleanerError):
    """Raised when the run's audit file cannot be created, e.g. it already exists."""
    pass
