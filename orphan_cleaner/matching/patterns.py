"""
Filename classification for generated image derivatives.

The rule table is ordered most-specific first. A looser rule evaluated earlier
would claim the filename with a longer, wrong base name:
'image-scaled-300x200.jpg' must resolve to base 'image', not 'image-scaled'.
"""
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .. import config
from ..models import PARENT_TAG, VariantKind, VariantMatch

_IMG = '|'.join(config.IMAGE_EXTS)
_WEBP_SRC = '|'.join(config.WEBP_SOURCE_EXTS)

EXT_SIMPLE = rf'(?P<ext>\.(?:{_IMG}))'
EXT_WEBP_COPY = rf'(?P<ext>\.(?:{_WEBP_SRC})\.webp)'
DIMS = r'(?P<w>\d+)x(?P<h>\d+)'


@dataclass(frozen=True)
class Rule:
    name: str
    pattern: re.Pattern
    kind: VariantKind

    def apply(self, filename: str) -> Optional[VariantMatch]:
        m = self.pattern.fullmatch(filename)
        if not m:
            return None
        if self.kind is VariantKind.SIZE_VARIANT:
            tag = f"{m.group('w')}x{m.group('h')}"
        else:
            tag = PARENT_TAG
        return VariantMatch(
            base_name=m.group('base'),
            extension=m.group('ext'),
            dimension_tag=tag,
            kind=self.kind,
        )


def _rule(name: str, marker: str, ext: str, kind: VariantKind) -> Rule:
    return Rule(name, re.compile(rf'^(?P<base>.+){marker}{ext}$', re.IGNORECASE), kind)


# (name, marker) pairs, most specific first
_SIZE_MARKERS: List[Tuple[str, str]] = [
    ('scaled-edited', rf'-scaled-e\d+-{DIMS}'),
    ('scaled', rf'-scaled-{DIMS}'),
    ('edited', rf'-e\d+-{DIMS}'),
    ('plain', rf'-{DIMS}'),
]
_PARENT_MARKERS: List[Tuple[str, str]] = [
    ('scaled-edited', r'-scaled-e\d+'),
    ('scaled', r'-scaled'),
    ('edited', r'-e\d+'),
]


def build_rule_table() -> List[Rule]:
    """Size variants before parent variants; within each, WebP copies first."""
    rules = []
    for name, marker in _SIZE_MARKERS:
        rules.append(_rule(f"{name}-size-webp", marker, EXT_WEBP_COPY, VariantKind.SIZE_VARIANT))
        rules.append(_rule(f"{name}-size", marker, EXT_SIMPLE, VariantKind.SIZE_VARIANT))
    for name, marker in _PARENT_MARKERS:
        rules.append(_rule(f"{name}-parent-webp", marker, EXT_WEBP_COPY, VariantKind.PARENT_VARIANT))
        rules.append(_rule(f"{name}-parent", marker, EXT_SIMPLE, VariantKind.PARENT_VARIANT))
    return rules


RULES = build_rule_table()


class PatternMatcher:
    def __init__(self, rules: Optional[List[Rule]] = None):
        self.rules = rules if rules is not None else RULES

    def classify(self, filename: str) -> Optional[VariantMatch]:
        """
        Returns the VariantMatch of the first rule that matches, or None for a
        plain (parent candidate) file.

        The base name is reduced until base + extension classifies as nothing,
        so a stacked name like 'a-300x200-150x150.jpg' points at 'a.jpg'.
        """
        match = self._first_match(filename)
        if match is None:
            return None

        base = match.base_name
        while (inner := self._first_match(base + match.extension)) is not None:
            base = inner.base_name

        if base == match.base_name:
            return match
        return VariantMatch(
            base_name=base,
            extension=match.extension,
            dimension_tag=match.dimension_tag,
            kind=match.kind,
        )

    def is_variant(self, filename: str) -> bool:
        return self._first_match(filename) is not None

    def _first_match(self, filename: str) -> Optional[VariantMatch]:
        for rule in self.rules:
            result = rule.apply(filename)
            if result is not None:
                return result
        return None
