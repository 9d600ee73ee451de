"""Canonical forms for the free-text fields carried on order rows."""

from __future__ import annotations

import math
from typing import Iterable


def normalize_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def normalize_item_code(value) -> str:
    return normalize_text(value).upper()


def parse_number(value, default: float = 0.0) -> float:
    """Parse ``value`` as a float, returning ``default`` when it is not numeric.

    Plate counts arrive as free text and may hold a note instead of a number,
    so anything unparsable (or NaN/inf) collapses to ``default``.
    """

    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = normalize_text(value).replace(",", "")
        if not text:
            return default
        try:
            number = float(text)
        except ValueError:
            return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def format_number(value: float) -> str:
    """Render ``150.0`` as ``150`` and ``2.5`` as ``2.5``."""

    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


def contains_any(text: str | None, keywords: Iterable[str]) -> bool:
    haystack = normalize_text(text).casefold()
    if not haystack:
        return False
    return any(keyword.casefold() in haystack for keyword in keywords if keyword)
