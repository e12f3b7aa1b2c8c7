import os
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from ..audit import AuditLog, Operation, Status
from ..config import CleanerConfig, SiblingErrorPolicy
from ..exceptions import SiblingLookupError
from ..matching.patterns import PatternMatcher
from ..models import MediaFile, OrphanRecord, ScanResult, VariantMatch
from .walker import DirectoryWalker


class OrphanDetector:
    """
    Decides, from filenames and sibling existence alone, which variants have
    lost their parent.
    """

    def __init__(self,
                 cfg: CleanerConfig,
                 matcher: Optional[PatternMatcher] = None,
                 audit: Optional[AuditLog] = None):
        self.cfg = cfg
        self.root = cfg.root
        self.matcher = matcher or PatternMatcher()
        self.audit = audit

    def scan(self, walker: Optional[DirectoryWalker] = None) -> ScanResult:
        """
        Walks the library and returns every orphan with running totals.

        Directory batches may be evaluated on worker threads, but the result
        is only ever accumulated here, in walker order.
        """
        walker = walker or DirectoryWalker(self.cfg)
        batches = walker.walk_by_directory()
        result = ScanResult()

        if self.cfg.max_workers <= 1:
            for directory, files in batches:
                self._accumulate(result, self._process_directory_batch(directory, files))
        else:
            logging.info(f"Parallel scan with {self.cfg.max_workers} workers")
            with ThreadPoolExecutor(max_workers=self.cfg.max_workers) as executor:
                for batch_result in executor.map(lambda b: self._process_directory_batch(*b), batches):
                    self._accumulate(result, batch_result)

        return result

    def _accumulate(self, result: ScanResult, batch_result: Tuple[int, List[OrphanRecord]]):
        scanned, orphans = batch_result
        result.total_scanned += scanned
        for record in orphans:
            result.orphans.append(record)
            result.total_size += record.size
            logging.debug(f"Orphan: {record.relative_path} ({record.dimension_tag})")
            if self.audit:
                self.audit.record(
                    Operation.ORPHAN_FOUND,
                    file_path=record.path,
                    size=record.size,
                    dimensions=record.dimension_tag,
                    base_name=record.base_name,
                    status=Status.FOUND,
                )

    def _process_directory_batch(self,
                                 directory: Path,
                                 files: List[MediaFile]) -> Tuple[int, List[OrphanRecord]]:
        """Evaluates one month directory against a single listing of it."""
        classified = []
        for media in files:
            match = self.matcher.classify(media.filename)
            if match is not None:
                classified.append((media, match))

        if not classified:
            return len(files), []

        try:
            candidates = self.parent_candidates(directory)
        except SiblingLookupError as e:
            if self.cfg.sibling_error_policy is SiblingErrorPolicy.SKIP:
                logging.warning(f"{e}; assuming {len(classified)} variant(s) in {directory} are not orphaned")
                return len(files), []
            logging.warning(f"{e}; treating variants in {directory} as having no parent")
            candidates = []

        orphans = []
        for media, match in classified:
            if not self.has_parent(match, candidates):
                orphans.append(self._make_record(media, match))
        return len(files), orphans

    def parent_candidates(self, directory: Path) -> List[str]:
        """Names in directory that are not themselves variants."""
        try:
            names = os.listdir(directory)
        except OSError as e:
            raise SiblingLookupError(f"Could not list {directory}: {e}") from e
        return sorted(n for n in names if not self.matcher.is_variant(n))

    def has_parent(self, match: VariantMatch, candidates: Iterable[str]) -> bool:
        base = match.base_name
        if match.is_webp_copy:
            # image-300x200.jpg.webp belongs to image.jpg or image.jpg.webp
            accepted = {base + match.source_extension, base + match.extension}
            return any(name in accepted for name in candidates)
        return any(
            name.startswith(base) and name.endswith(match.extension)
            for name in candidates
        )

    def verify_orphan(self, record: OrphanRecord) -> bool:
        """
        Re-checks a record against a fresh listing right before it is removed.
        Anything short of a confirmed missing parent returns False.
        """
        match = self.matcher.classify(record.filename)
        if match is None:
            return False
        try:
            candidates = self.parent_candidates(record.path.parent)
        except SiblingLookupError as e:
            logging.warning(f"Re-verification failed for {record.relative_path}: {e}")
            return False
        return not self.has_parent(match, candidates)

    def _make_record(self, media: MediaFile, match: VariantMatch) -> OrphanRecord:
        return OrphanRecord(
            path=media.path,
            filename=media.filename,
            size=media.size,
            base_name=match.base_name,
            dimension_tag=match.dimension_tag,
            relative_path=media.path.relative_to(self.root).as_posix(),
        )
