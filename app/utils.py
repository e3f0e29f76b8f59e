"""Utility helpers for the Owlist service."""

from __future__ import annotations

import re
from datetime import date
from typing import Any, Iterable


LINE_BREAK_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
TAG_RE = re.compile(r"<[^>]*>")
LEADING_YEAR_RE = re.compile(r"^\s*(\d{4})(?!\d)")


def strip_html(value: Any) -> str:
    """Return plain text with ``<br>`` turned into newlines and tags removed."""

    if not isinstance(value, str) or not value:
        return ""
    # Line breaks must be converted before tags are stripped or they are lost.
    text = LINE_BREAK_RE.sub("\n", value)
    return TAG_RE.sub("", text)


def parse_year(value: Any) -> int | None:
    """Extract the year of a ``YYYY-MM-DD`` date or a bare ``YYYY`` string."""

    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip()[:10]).year
    except ValueError:
        pass
    match = LEADING_YEAR_RE.match(value)
    if match is None:
        return None
    year = int(match.group(1))
    return year if year > 0 else None


def round_rating(value: Any, *, scale: float = 1.0) -> float | None:
    """Rescale a source rating onto 0-10 with one decimal place.

    Missing and zero scores are reported as unrated.
    """

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value <= 0:
        return None
    rating = round(value / scale, 1)
    return min(rating, 10.0)


def build_image_url(path: Any, base_url: str) -> str | None:
    if not isinstance(path, str) or not path:
        return None
    if path.startswith("http"):
        return path
    return f"{base_url}{path}"


def unique_ordered(values: Iterable[str]) -> list[str]:
    """Return the values de-duplicated, keeping first-seen order."""

    seen: list[str] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def positive_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return None
    return value
