"""
Match rules for fingerprint signatures.

Each rule is a small immutable variant with a single `matches(value)` test.
Catalog data names the variant by kind: exact, contains, regex,
starts_with, ends_with.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Pattern

from probe.core import logger


@lru_cache(maxsize=256)
def _compile(pattern: str, ignore_case: bool) -> Optional[Pattern]:
    """Compiled pattern, or None if it is malformed (logged once per pattern)."""
    try:
        return re.compile(pattern, re.IGNORECASE if ignore_case else 0)
    except re.error as e:
        logger.warning(f"[MATCH] Malformed fingerprint pattern {pattern!r}: {e}. Treated as no-match.")
        return None


@dataclass(frozen=True)
class ExactMatch:
    value: str

    def matches(self, observed: str) -> bool:
        return observed == self.value

    def describe(self) -> str:
        return f"exact:{self.value}"


@dataclass(frozen=True)
class SubstringMatch:
    """Case-insensitive containment."""
    value: str

    def matches(self, observed: str) -> bool:
        return self.value.lower() in observed.lower()

    def describe(self) -> str:
        return f"contains:{self.value}"


@dataclass(frozen=True)
class RegexMatch:
    pattern: str
    ignore_case: bool = True

    def matches(self, observed: str) -> bool:
        compiled = _compile(self.pattern, self.ignore_case)
        if compiled is None:
            return False
        return compiled.search(observed) is not None

    def describe(self) -> str:
        flags = "/i" if self.ignore_case else "/"
        return f"regex:/{self.pattern}{flags}"


@dataclass(frozen=True)
class PrefixMatch:
    value: str

    def matches(self, observed: str) -> bool:
        return observed.lower().startswith(self.value.lower())

    def describe(self) -> str:
        return f"starts_with:{self.value}"


@dataclass(frozen=True)
class SuffixMatch:
    value: str

    def matches(self, observed: str) -> bool:
        return observed.lower().endswith(self.value.lower())

    def describe(self) -> str:
        return f"ends_with:{self.value}"


MATCH_KINDS = {
    "exact": ExactMatch,
    "contains": SubstringMatch,
    "regex": RegexMatch,
    "starts_with": PrefixMatch,
    "ends_with": SuffixMatch,
}


def parse_match_rule(kind: str, value: str, ignore_case: bool = True):
    """
    Build a rule from its textual kind.
    Raises ValueError for an unknown kind; a malformed regex is NOT an error
    here, it simply never matches.
    """
    rule_cls = MATCH_KINDS.get((kind or "").strip().lower())
    if rule_cls is None:
        raise ValueError(f"Unknown match kind {kind!r}; expected one of {sorted(MATCH_KINDS)}")
    if rule_cls is RegexMatch:
        return RegexMatch(value, ignore_case=ignore_case)
    return rule_cls(value)
