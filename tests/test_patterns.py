import pytest

from orphan_cleaner.matching.patterns import PatternMatcher, RULES
from orphan_cleaner.models import VariantKind

SIZE = VariantKind.SIZE_VARIANT
PARENT = VariantKind.PARENT_VARIANT


@pytest.fixture
def matcher():
    return PatternMatcher()


@pytest.mark.parametrize(
    "filename,base,ext,tag,kind",
    [
        ("photo-300x200.jpg", "photo", ".jpg", "300x200", SIZE),
        ("my-photo-1024x768.jpeg", "my-photo", ".jpeg", "1024x768", SIZE),
        ("photo-300x200.webp", "photo", ".webp", "300x200", SIZE),
        ("photo-300x200.jpg.webp", "photo", ".jpg.webp", "300x200", SIZE),
        ("photo-scaled-300x200.gif", "photo", ".gif", "300x200", SIZE),
        ("photo-e1700000000-150x150.png", "photo", ".png", "150x150", SIZE),
        ("photo-scaled-e1700000000-300x200.jpg", "photo", ".jpg", "300x200", SIZE),
        ("photo-scaled-e1700000000-300x200.png.webp", "photo", ".png.webp", "300x200", SIZE),
        ("photo-scaled.jpg", "photo", ".jpg", "parent", PARENT),
        ("photo-scaled.jpg.webp", "photo", ".jpg.webp", "parent", PARENT),
        ("photo-e1700000000.jpeg", "photo", ".jpeg", "parent", PARENT),
        ("photo-scaled-e1700000000.png", "photo", ".png", "parent", PARENT),
        ("Photo-300X200.JPG", "Photo", ".JPG", "300x200", SIZE),
    ],
)
def test_classify_variants(matcher, filename, base, ext, tag, kind):
    m = matcher.classify(filename)
    assert m is not None
    assert m.base_name == base
    assert m.extension == ext
    assert m.dimension_tag == tag
    assert m.kind is kind


@pytest.mark.parametrize(
    "filename",
    [
        "photo.jpg",
        "photo.jpg.webp",
        "photo.webp",
        "holiday-2023.png",
        "photo-300x200.bmp",
        "photo-300x200.tiff.webp",
        "notes.txt",
        "photo-scaled.txt",
    ],
)
def test_unclassified_names(matcher, filename):
    assert matcher.classify(filename) is None
    assert not matcher.is_variant(filename)


def test_most_specific_rule_wins(matcher):
    # A plain -WxH rule evaluated first would report 'photo-scaled' as the base
    assert matcher.classify("photo-scaled-300x200.jpg").base_name == "photo"
    assert matcher.classify("photo-e1700000000-300x200.jpg").base_name == "photo"


def test_rule_table_order():
    names = [r.name for r in RULES]
    assert names == [
        "scaled-edited-size-webp",
        "scaled-edited-size",
        "scaled-size-webp",
        "scaled-size",
        "edited-size-webp",
        "edited-size",
        "plain-size-webp",
        "plain-size",
        "scaled-edited-parent-webp",
        "scaled-edited-parent",
        "scaled-parent-webp",
        "scaled-parent",
        "edited-parent-webp",
        "edited-parent",
    ]
    # every size rule precedes every parent rule
    kinds = [r.kind for r in RULES]
    assert kinds.index(PARENT) == kinds.count(SIZE)


@pytest.mark.parametrize(
    "filename",
    [
        "photo-300x200.jpg",
        "photo-300x200.jpg.webp",
        "photo-scaled.jpg",
        "photo-scaled-e1700000000-300x200.jpg",
        "photo-e1700000000.png.webp",
        "banner-300x200-150x150.jpg",
        "shot-e1-scaled.jpg",
    ],
)
def test_base_extraction_is_idempotent(matcher, filename):
    m = matcher.classify(filename)
    assert m is not None
    assert matcher.classify(m.base_name + m.extension) is None


def test_stacked_markers_reduce_to_root_name(matcher):
    m = matcher.classify("banner-300x200-150x150.jpg")
    assert m.base_name == "banner"
    assert m.dimension_tag == "150x150"


def test_webp_copy_flags(matcher):
    copy = matcher.classify("photo-300x200.jpg.webp")
    assert copy.is_webp_copy
    assert copy.source_extension == ".jpg"

    native = matcher.classify("photo-300x200.webp")
    assert not native.is_webp_copy
    assert native.source_extension == ".webp"
