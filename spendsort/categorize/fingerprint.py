"""Learning-key extraction: a short merchant fingerprint per description.

Two card payments at the same merchant rarely share a description: the bank
appends the purchase date, an authorization code, a terminal number.  The
learning key strips that noise so both collapse to the same token, e.g.

    "PAGO EN GLOVO01JAN BC6L1KTB"  -> "GLOVO"
    "COMPRA EN ALBERT HEIJN1234"   -> "ALBERT"
    "NETFLIXCOM"                   -> "NETFLIXCOM"

Steps (each operates on the previous output):
  1. Strip the first matching boilerplate prefix (COMMON_PREFIXES order).
  2. Remove noise: day+month stamps, full dates, digits, 1-2 letter tokens.
  3. If fewer than 3 characters survive, fall back to the prefix-stripped
     text without noise removal.
  4. Keep the first word, or the first two words if the first is shorter
     than 3 characters.
  5. Truncate to MAX_KEY_LENGTH.

Only the first word of a multi-word merchant is kept ("ALBERT HEIJN" gives
"ALBERT").  Rules created from earlier keys depend on this, so changing it
would orphan them.
"""

from __future__ import annotations

import re

from spendsort.categorize.normalize import collapse_whitespace, normalize_description

MAX_KEY_LENGTH = 16
MIN_CLEANED_LENGTH = 3

# Order is priority: the first prefix that matches wins.
COMMON_PREFIXES = (
    "PAGO EN ",
    "PAGO ",
    "PAYMENT ",
    "PAYMENT TO ",
    "TRANSFER ",
    "TRANSFER TO ",
    "COMPRA EN ",
    "COMPRA ",
)

# No word boundary: "GLOVO01JAN" must lose "01JAN"
_DAY_MONTH_RE = re.compile(
    r"\d{1,2}(?:JAN|FEB|MAR|APR|MAY|JUN|JUL|AUG|SEP|OCT|NOV|DEC)",
    re.IGNORECASE,
)
_DATE_RES = (
    re.compile(r"\d{4}[-/]?\d{2}[-/]?\d{2}"),  # YYYYMMDD, YYYY-MM-DD, YYYY/MM/DD
    re.compile(r"\d{2}[-/]\d{2}[-/]\d{4}"),    # DD-MM-YYYY, DD/MM/YYYY
)
_DIGIT_RE = re.compile(r"\d")
_SHORT_TOKEN_RE = re.compile(r"(?<!\S)[A-Za-z]{1,2}(?!\S)")


def strip_prefix(text: str) -> str:
    """Remove the first matching boilerplate prefix, if any."""
    for prefix in COMMON_PREFIXES:
        if text.startswith(prefix):
            return text[len(prefix):].strip()
    return text


def clean_noise(text: str) -> str:
    """Remove dates, digits and leftover reference-code fragments."""
    cleaned = _DAY_MONTH_RE.sub(" ", text)
    for date_re in _DATE_RES:
        cleaned = date_re.sub(" ", cleaned)
    cleaned = _DIGIT_RE.sub("", cleaned)
    cleaned = _SHORT_TOKEN_RE.sub(" ", cleaned)
    return collapse_whitespace(cleaned)


def extract_learning_key(normalized: str) -> str:
    """Derive the learning key from a normalized description.

    Returns at most MAX_KEY_LENGTH characters; empty only for empty input.
    """
    stripped = strip_prefix(normalized)

    working = clean_noise(stripped)
    if len(working) < MIN_CLEANED_LENGTH:
        working = stripped

    words = working.split()
    if not words:
        return ""
    if len(words[0]) >= MIN_CLEANED_LENGTH:
        key = words[0]
    else:
        key = " ".join(words[:2])

    return key[:MAX_KEY_LENGTH].rstrip()


def learning_key_for(raw: str | None) -> str:
    """Learning key straight from a raw bank description."""
    return extract_learning_key(normalize_description(raw))
