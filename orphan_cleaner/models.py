from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List

PARENT_TAG = "parent"


class VariantKind(Enum):
    SIZE_VARIANT = "size_variant"      # image-300x200.jpg
    PARENT_VARIANT = "parent_variant"  # image-scaled.jpg, image-e1700000000.jpg


@dataclass(frozen=True)
class MediaFile:
    """
    A candidate image file yielded by the walker.
    """
    path: Path
    filename: str
    size: int
    mtime: float


@dataclass(frozen=True)
class VariantMatch:
    base_name: str
    extension: str          # may be compound, e.g. '.jpg.webp'
    dimension_tag: str      # 'WxH' or 'parent'
    kind: VariantKind

    @property
    def is_webp_copy(self) -> bool:
        """True for a .webp written alongside another image format (image.jpg.webp)."""
        return self.extension.count('.') > 1 and self.extension.lower().endswith('.webp')

    @property
    def source_extension(self) -> str:
        """Extension of the image a WebP copy was made from ('.jpg' for '.jpg.webp')."""
        if self.is_webp_copy:
            return self.extension[:-len('.webp')]
        return self.extension


@dataclass
class OrphanRecord:
    """
    A variant whose parent could not be found in its directory.
    """
    path: Path
    filename: str
    size: int
    base_name: str
    dimension_tag: str
    relative_path: str      # POSIX separators, relative to the scan root


@dataclass
class ManifestEntry:
    path: str
    size: int
    base_name: str
    dimension_tag: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'path': self.path,
            'size': self.size,
            'baseName': self.base_name,
            'dimensions': self.dimension_tag,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ManifestEntry":
        return cls(
            path=str(data['path']),
            size=int(data.get('size', 0)),
            base_name=str(data.get('baseName', '')),
            dimension_tag=str(data.get('dimensions', '')),
        )


@dataclass
class BackupManifest:
    """
    The authoritative list of files held by one backup archive.

    Serialized as manifest.json at the archive root. Restores replay this list,
    never the archive's raw member listing.
    """
    created: str
    total_files: int
    total_size: int
    files: List[ManifestEntry] = field(default_factory=list)

    @classmethod
    def from_records(cls, records: List[OrphanRecord], created: str) -> "BackupManifest":
        entries = [
            ManifestEntry(
                path=r.relative_path,
                size=r.size,
                base_name=r.base_name,
                dimension_tag=r.dimension_tag,
            )
            for r in records
        ]
        return cls(
            created=created,
            total_files=len(entries),
            total_size=sum(e.size for e in entries),
            files=entries,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'created': self.created,
            'totalFiles': self.total_files,
            'totalSize': self.total_size,
            'files': [e.to_dict() for e in self.files],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupManifest":
        files = [ManifestEntry.from_dict(item) for item in data['files']]
        return cls(
            created=str(data.get('created', '')),
            total_files=int(data.get('totalFiles', len(files))),
            total_size=int(data.get('totalSize', sum(f.size for f in files))),
            files=files,
        )


@dataclass
class ScanResult:
    orphans: List[OrphanRecord] = field(default_factory=list)
    total_scanned: int = 0
    total_size: int = 0


@dataclass
class BackupResult:
    archive_path: Path
    staging_dir: Path
    manifest: BackupManifest
    staging_removed: bool = False


@dataclass
class DeleteSummary:
    deleted: int = 0
    failed: int = 0
    skipped: int = 0        # parent reappeared before the delete


@dataclass
class RestoreSummary:
    archive_path: Path
    restored: int = 0
    failed: int = 0
    archive_deleted: bool = False


class RunState(Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    REPORTED = "reported"
    BACKING_UP = "backing_up"
    ABORTED = "aborted"
    DELETING = "deleting"
    LOCATING_ARCHIVE = "locating_archive"
    EXTRACTING = "extracting"
    REPLAYING = "replaying"
    CLEANUP = "cleanup"
    FAILED = "failed"
    DONE = "done"
