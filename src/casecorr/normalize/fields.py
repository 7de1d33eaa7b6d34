# src/casecorr/normalize/fields.py

"""
Per-field normalization and comparison rules.

Every comparison is symmetric and tolerant: a side that is missing, empty or
not a string never matches and never raises.
"""

import re
from typing import Any, List, Optional

_NON_DIGITS = re.compile(r"\D")


def is_present(value: Any) -> bool:
    """Check that a field value is a non-blank string."""
    return isinstance(value, str) and bool(value.strip())


def normalize_phone(value: Any) -> str:
    """Strip every non-digit character from a phone number."""
    if not isinstance(value, str):
        return ""
    return _NON_DIGITS.sub("", value)


def normalize_email(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.lower()


def normalize_username(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.lower()


def normalize_address(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.lower().strip()


def emails_match(a: Any, b: Any) -> bool:
    if not (is_present(a) and is_present(b)):
        return False
    return a.lower() == b.lower()


def phones_match(a: Any, b: Any, min_digits: int = 8) -> bool:
    """Digits-only equality; numbers shorter than min_digits never match."""
    if not (is_present(a) and is_present(b)):
        return False
    digits_a = normalize_phone(a)
    digits_b = normalize_phone(b)
    return len(digits_a) >= min_digits and digits_a == digits_b


def usernames_match(a: Any, b: Any) -> bool:
    if not (is_present(a) and is_present(b)):
        return False
    return a.lower() == b.lower()


def names_match_exact(a: Any, b: Any) -> bool:
    if not (is_present(a) and is_present(b)):
        return False
    return a.strip().lower() == b.strip().lower()


def names_match_partial(a: Any, b: Any) -> bool:
    """
    True if any whitespace token of either name occurs inside the other name.

    Examples:
        >>> names_match_partial("John Doe", "johnny")
        True
        >>> names_match_partial("Jane Smith", "John Doe")
        False
    """
    if not (is_present(a) and is_present(b)):
        return False
    lower_a = a.lower()
    lower_b = b.lower()
    if any(token in lower_b for token in lower_a.split()):
        return True
    return any(token in lower_a for token in lower_b.split())


def ips_match(a: Any, b: Any) -> bool:
    if not (is_present(a) and is_present(b)):
        return False
    return a == b


def addresses_match_exact(a: Any, b: Any) -> bool:
    if not (is_present(a) and is_present(b)):
        return False
    return a.lower() == b.lower()


def _address_segments(address: str) -> List[str]:
    segments = [segment.strip() for segment in address.lower().split(",")]
    # Empty segments would be a substring of everything
    return [segment for segment in segments if segment]


def addresses_match_partial(a: Any, b: Any) -> bool:
    """True if a comma-separated segment of one address occurs in a segment of the other."""
    if not (is_present(a) and is_present(b)):
        return False
    segments_a = _address_segments(a)
    segments_b = _address_segments(b)
    for seg_a in segments_a:
        for seg_b in segments_b:
            if seg_a in seg_b or seg_b in seg_a:
                return True
    return False


def distinct_normalized(values: Optional[List[Any]], normalizer) -> List[str]:
    """
    Normalize a list of raw values, dropping empties and repeats.

    Order of first occurrence is preserved.
    """
    seen = set()
    result = []
    for value in values or []:
        normalized = normalizer(value)
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        result.append(normalized)
    return result


def identity(value: Any) -> str:
    """Exact-match normalizer (IPs)."""
    return value if isinstance(value, str) else ""
