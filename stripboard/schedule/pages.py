"""
Page counts and shoot dates for day segments.

Page counts follow the screenplay eighths convention ("3/8", "1 2/8") and are
kept as exact Fractions. Dates are plain calendar dates: the shoot date of a
day is the start date plus its index in days, with no time-of-day or zone.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta
from fractions import Fraction
from typing import Iterable, Optional, Union

from .models import DaySegment

PageCount = Union[Fraction, int, float]


_DECIMAL_TOKEN = re.compile(r"^\d+(?:\.\d+)?$")
_FRACTION_TOKEN = re.compile(r"^(\d+)/(\d+)$")


def _parse_token(token: str) -> Fraction:
    # Only plain digits: exponents, signs and words count as 0.
    try:
        fraction = _FRACTION_TOKEN.match(token)
        if fraction:
            num, denom = int(fraction.group(1)), int(fraction.group(2))
            return Fraction(num, denom) if denom else Fraction(0)
        if _DECIMAL_TOKEN.match(token):
            return Fraction(token)
    except ValueError:
        # Digit strings past the int conversion limit.
        return Fraction(0)
    return Fraction(0)


def parse_page_count(text: Optional[str]) -> Fraction:
    """Sum whitespace-separated integer and n/d tokens; malformed tokens count as 0."""
    if not text:
        return Fraction(0)
    return sum((_parse_token(tok) for tok in text.split()), Fraction(0))


def format_page_count(pages: PageCount) -> str:
    """Render pages as "whole n/8", rounding the remainder to the nearest eighth."""
    value = Fraction(pages) if not isinstance(pages, float) else Fraction(pages).limit_denominator(1 << 20)
    whole = math.floor(value)
    # Round half up, as page totals on printed schedules do.
    eighths = math.floor((value - whole) * 8 + Fraction(1, 2))
    if eighths == 8:
        whole, eighths = whole + 1, 0
    if eighths == 0:
        return str(whole)
    if whole == 0:
        return f"{eighths}/8"
    return f"{whole} {eighths}/8"


def total_pages(page_counts: Iterable[Optional[str]]) -> Fraction:
    return sum((parse_page_count(p) for p in page_counts), Fraction(0))


def pages_for_segment(segment: DaySegment) -> Fraction:
    return total_pages(scene.page_count for scene in segment.scenes)


def parse_local_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """
    Coerce a stored or submitted start date to a calendar date.

    ISO timestamps ("2026-02-03T00:00:00.000Z") keep only their date part so a
    UTC suffix can never move the day.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    date_part = str(value).strip().split("T")[0]
    return date.fromisoformat(date_part)


def shoot_date_for_segment(segment_index: int, start_date: Optional[date]) -> Optional[date]:
    if start_date is None:
        return None
    return start_date + timedelta(days=int(segment_index))


def format_shoot_date(d: Optional[date]) -> Optional[str]:
    if d is None:
        return None
    return f"{d.strftime('%a')}, {d.strftime('%b')} {d.day}"
