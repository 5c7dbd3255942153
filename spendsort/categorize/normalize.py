"""Description normalization.

Bank descriptions arrive in mixed case with punctuation, card masks and
irregular spacing.  Everything downstream (fingerprints, rule matching)
works on the canonical form produced here: uppercase, only A-Z, 0-9 and
single spaces, no leading or trailing space.
"""

from __future__ import annotations

import re

_WHITESPACE_RE = re.compile(r"\s+")
_NON_ALNUM_RE = re.compile(r"[^A-Z0-9 ]")


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_description(raw: str | None) -> str:
    """Return the canonical form of a raw bank description.

    Idempotent: normalize_description(normalize_description(x)) equals
    normalize_description(x) for every string.
    """
    if not raw:
        return ""
    text = _WHITESPACE_RE.sub(" ", raw.upper())
    text = _NON_ALNUM_RE.sub("", text)
    # Dropping punctuation can leave two spaces side by side ("A - B")
    return collapse_whitespace(text)
