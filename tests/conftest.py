import pytest
from pathlib import Path

from orphan_cleaner.audit import AuditLog
from orphan_cleaner.config import CleanerConfig


@pytest.fixture
def library(tmp_path):
    """Returns an empty media library root (year/month layout goes inside)."""
    root = tmp_path / "uploads"
    root.mkdir()
    return root


@pytest.fixture
def make_file(library):
    """Creates a file under the library root with distinct content per path."""
    def _make(rel: str, content: bytes = None) -> Path:
        p = library / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(content if content is not None else f"pixels of {rel}".encode() * 7)
        return p
    return _make


@pytest.fixture
def cfg(library, tmp_path):
    return CleanerConfig(root=library, log_dir=tmp_path / "logs", max_workers=1)


@pytest.fixture
def audit(tmp_path):
    return AuditLog(tmp_path / "logs" / "wp-oic-2024-01-15T10-30-00.csv")


def snapshot(root: Path) -> dict:
    """Relative path -> bytes for every file under root."""
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*")) if p.is_file()
    }
