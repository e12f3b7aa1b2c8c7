import dataclasses
import os

import pytest

from orphan_cleaner.audit import read_entries
from orphan_cleaner.config import SiblingErrorPolicy
from orphan_cleaner.scanning import detector as detector_module
from orphan_cleaner.scanning.detector import OrphanDetector


def _orphan_paths(result):
    return [r.relative_path for r in result.orphans]


def test_variant_with_parent_is_kept(cfg, make_file):
    make_file("2023/01/photo.jpg")
    make_file("2023/01/photo-300x200.jpg")
    result = OrphanDetector(cfg).scan()
    assert result.orphans == []
    assert result.total_scanned == 2


def test_variant_without_parent_is_orphaned(cfg, make_file):
    p = make_file("2023/01/photo-300x200.jpg")
    result = OrphanDetector(cfg).scan()

    [rec] = result.orphans
    assert rec.path == p
    assert rec.filename == "photo-300x200.jpg"
    assert rec.dimension_tag == "300x200"
    assert rec.base_name == "photo"
    assert rec.relative_path == "2023/01/photo-300x200.jpg"
    assert rec.size == p.stat().st_size
    assert result.total_size == p.stat().st_size


def test_scaled_parent_needs_original(cfg, make_file):
    make_file("2023/01/photo-scaled.jpg")
    [rec] = OrphanDetector(cfg).scan().orphans
    assert rec.dimension_tag == "parent"

    make_file("2023/01/photo.jpg")
    assert OrphanDetector(cfg).scan().orphans == []


@pytest.mark.parametrize("parent", ["photo.jpg", "photo.jpg.webp"])
def test_webp_copy_accepts_either_parent(cfg, make_file, parent):
    make_file("2023/01/photo-300x200.jpg.webp")
    make_file(f"2023/01/{parent}")
    assert OrphanDetector(cfg).scan().orphans == []


def test_webp_copy_without_parent_is_orphaned(cfg, make_file):
    make_file("2023/01/photo-300x200.jpg.webp")
    # neither photo.jpg nor photo.jpg.webp; a longer name sharing the prefix doesn't count
    make_file("2023/01/photograph.jpg")
    result = OrphanDetector(cfg).scan()
    assert _orphan_paths(result) == ["2023/01/photo-300x200.jpg.webp"]


def test_parent_must_share_extension(cfg, make_file):
    make_file("2023/01/photo.png")
    make_file("2023/01/photo-300x200.jpg")
    result = OrphanDetector(cfg).scan()
    assert _orphan_paths(result) == ["2023/01/photo-300x200.jpg"]


def test_variant_siblings_are_not_parents(cfg, make_file):
    # photo-scaled.jpg starts with 'photo' and ends '.jpg' but is itself a variant
    make_file("2023/01/photo-scaled.jpg")
    make_file("2023/01/photo-scaled-300x200.jpg")
    make_file("2023/01/photo-1024x768.jpg")
    result = OrphanDetector(cfg).scan()
    assert sorted(_orphan_paths(result)) == [
        "2023/01/photo-1024x768.jpg",
        "2023/01/photo-scaled-300x200.jpg",
        "2023/01/photo-scaled.jpg",
    ]
    assert {r.dimension_tag for r in result.orphans} == {"1024x768", "300x200", "parent"}


def test_parent_in_other_directory_does_not_count(cfg, make_file):
    make_file("2023/01/photo.jpg")
    make_file("2023/02/photo-300x200.jpg")
    result = OrphanDetector(cfg).scan()
    assert _orphan_paths(result) == ["2023/02/photo-300x200.jpg"]


def test_unclassified_files_are_never_orphans(cfg, make_file):
    make_file("2023/01/lonely.jpg")
    make_file("2023/01/other.jpg.webp")
    result = OrphanDetector(cfg).scan()
    assert result.orphans == []
    assert result.total_scanned == 2


def _mixed_library(make_file):
    for month in ("01", "02", "03", "04"):
        make_file(f"2022/{month}/keep.jpg")
        make_file(f"2022/{month}/keep-150x150.jpg")
        make_file(f"2022/{month}/gone-150x150.jpg")
        make_file(f"2022/{month}/gone-300x300.png.webp")
        make_file(f"2022/{month}/gone-scaled.jpg")


def test_scan_is_deterministic(cfg, make_file):
    _mixed_library(make_file)
    first = OrphanDetector(cfg).scan()
    second = OrphanDetector(cfg).scan()
    assert first == second
    assert len(first.orphans) == 12
    assert first.total_size == sum(r.size for r in first.orphans)


def test_parallel_scan_matches_sequential(cfg, make_file):
    _mixed_library(make_file)
    sequential = OrphanDetector(cfg).scan()
    parallel = OrphanDetector(dataclasses.replace(cfg, max_workers=4)).scan()
    assert parallel == sequential


def _fail_listing(monkeypatch, directory):
    real_listdir = os.listdir

    def fake_listdir(path):
        if os.fspath(path) == os.fspath(directory):
            raise PermissionError("denied")
        return real_listdir(path)

    monkeypatch.setattr(detector_module.os, "listdir", fake_listdir)


def test_sibling_lookup_failure_skips_by_default(cfg, library, make_file, monkeypatch):
    make_file("2023/01/photo-300x200.jpg")
    make_file("2023/02/other-300x200.jpg")
    _fail_listing(monkeypatch, library / "2023" / "01")

    result = OrphanDetector(cfg).scan()
    assert _orphan_paths(result) == ["2023/02/other-300x200.jpg"]
    assert result.total_scanned == 2


def test_sibling_lookup_failure_legacy_policy(cfg, library, make_file, monkeypatch):
    make_file("2023/01/photo.jpg")
    make_file("2023/01/photo-300x200.jpg")
    _fail_listing(monkeypatch, library / "2023" / "01")

    legacy = dataclasses.replace(cfg, sibling_error_policy=SiblingErrorPolicy.ASSUME_ORPHAN)
    result = OrphanDetector(legacy).scan()
    assert _orphan_paths(result) == ["2023/01/photo-300x200.jpg"]


def test_verify_orphan_sees_new_parent(cfg, make_file):
    make_file("2023/01/photo-300x200.jpg")
    detector = OrphanDetector(cfg)
    [rec] = detector.scan().orphans
    assert detector.verify_orphan(rec)

    make_file("2023/01/photo.jpg")
    assert not detector.verify_orphan(rec)


def test_orphans_are_audited(cfg, make_file, audit):
    make_file("2023/01/photo-300x200.jpg")
    OrphanDetector(cfg, audit=audit).scan()

    [row] = read_entries(audit.path)
    assert row["operation"] == "ORPHAN_FOUND"
    assert row["status"] == "FOUND"
    assert row["dimensions"] == "300x200"
    assert row["base_name"] == "photo"
    assert row["file_path"].endswith("photo-300x200.jpg")
