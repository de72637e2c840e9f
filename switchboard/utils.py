"""Shared text and phone-number helpers used across the switchboard."""

import re
from typing import Iterable, Optional

_FORMATTED_PHONE = re.compile(
    r"(\+?1?[-.\s]?)?\(?([0-9]{3})\)?[-.\s]?([0-9]{3})[-.\s]?([0-9]{4})"
)


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("(503) 555-0199")
        '5035550199'
        >>> normalize_phone("+1 503 555 0199")
        '+15035550199'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def format_us_phone(value: str) -> Optional[str]:
    """Render a North American number as ``(NPA) NXX-XXXX``.

    A formatted-number pattern is tried first; otherwise the text is reduced
    to digits and accepted only with exactly 10 digits, or 11 with a
    leading country code of 1.

    Examples:
        >>> format_us_phone("call me at 503-555-0199")
        '(503) 555-0199'
        >>> format_us_phone("15035550199")
        '(503) 555-0199'
        >>> format_us_phone("12345") is None
        True
    """
    match = _FORMATTED_PHONE.search(value)
    if match:
        return f"({match.group(2)}) {match.group(3)}-{match.group(4)}"

    digits = re.sub(r"[^\d]", "", value)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return None


def to_e164(value: str) -> str:
    """Convert a US number in any common spelling to E.164, leaving others untouched."""
    cleaned = normalize_phone(value)
    if cleaned.startswith("+"):
        return cleaned
    if len(cleaned) == 10:
        return "+1" + cleaned
    if len(cleaned) == 11 and cleaned.startswith("1"):
        return "+" + cleaned
    return cleaned


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    """Case-insensitive substring check against a keyword list."""
    lower = text.lower()
    return any(kw in lower for kw in keywords)


def contains_word(text: str, words: Iterable[str]) -> bool:
    """Case-insensitive whole-word (or whole-phrase) check.

    Used for short cue words like "no" or "ok" where plain substring
    matching would fire on "know" or "book".
    """
    lower = text.lower()
    return any(re.search(rf"\b{re.escape(w)}\b", lower) for w in words)
