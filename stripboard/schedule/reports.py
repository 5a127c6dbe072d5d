from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from .dood import DoodReport, build_dood
from .models import (
    LEGACY_DEPARTMENT_FIELDS,
    Banner,
    DayNight,
    DaySegment,
    ElementCategory,
    IntExt,
    Scene,
    ScheduleSnapshot,
    Strip,
)
from .pages import format_page_count, format_shoot_date, pages_for_segment, parse_page_count, shoot_date_for_segment
from .partitioner import compute_day_segments


class DayType(str, Enum):
    SHOOT = "shoot"


# Strip colours by (I/E, D/N), as printed on a physical strip board.
STRIP_COLORS: Dict[Tuple[Optional[IntExt], str], str] = {
    (IntExt.INT, "day"): "white",
    (IntExt.EXT, "day"): "yellow",
    (IntExt.INT, "night"): "green",
    (IntExt.EXT, "night"): "blue",
}

DAY_NIGHT_GROUP: Dict[DayNight, str] = {
    DayNight.DAY: "day",
    DayNight.DAWN: "day",
    DayNight.DUSK: "day",
    DayNight.NIGHT: "night",
    DayNight.DAY_FOR_NIGHT: "night",
}

# Element breakdown report section order.
REPORT_CATEGORY_ORDER: Tuple[ElementCategory, ...] = (
    ElementCategory.PROPS,
    ElementCategory.WARDROBE,
    ElementCategory.VEHICLES,
    ElementCategory.ANIMALS,
    ElementCategory.SPECIAL_EQUIP,
    ElementCategory.MECHANICAL_FX,
    ElementCategory.VISUAL_FX,
    ElementCategory.SET_DRESSING,
    ElementCategory.ART_DEPT,
    ElementCategory.SPECIAL_PERSONNEL,
    ElementCategory.CAMERA,
    ElementCategory.SOUND_MUSIC,
    ElementCategory.OTHER,
)


def strip_color(int_ext: Optional[IntExt], day_night: Optional[DayNight]) -> str:
    group = DAY_NIGHT_GROUP.get(day_night) if day_night else None
    if group is None:
        return "gray"
    # Unset I/E is treated as INT.
    return STRIP_COLORS[(int_ext or IntExt.INT, group)]


@dataclass
class ShootDay:
    day_number: int
    shoot_date: Optional[date]
    shoot_date_label: Optional[str]
    pages: str
    strips: List[Strip] = field(default_factory=list)


@dataclass
class OneLineRow:
    day_number: int
    position: int
    scene_numbers: str
    int_ext: Optional[str]
    day_night: Optional[str]
    location: str
    pages: str


@dataclass
class StripBoardRow:
    kind: str  # "strip", "banner" or "day_break"
    position: int
    strip: Optional[Strip] = None
    color: Optional[str] = None
    banner: Optional[Banner] = None
    day_number: Optional[int] = None
    pages: Optional[str] = None


@dataclass
class CalendarDay:
    date: date
    type: DayType
    shoot_day_number: Optional[int] = None
    label: Optional[str] = None


def day_segments(snapshot: ScheduleSnapshot) -> List[DaySegment]:
    return compute_day_segments(snapshot.strips, snapshot.day_breaks)


def shooting_schedule(snapshot: ScheduleSnapshot) -> List[ShootDay]:
    days = []
    for segment in day_segments(snapshot):
        shoot_date = shoot_date_for_segment(segment.index, snapshot.start_date)
        days.append(
            ShootDay(
                day_number=segment.index + 1,
                shoot_date=shoot_date,
                shoot_date_label=format_shoot_date(shoot_date),
                pages=format_page_count(pages_for_segment(segment)),
                strips=list(segment.strips),
            )
        )
    return days


def _location_line(scene: Scene) -> str:
    parts = [p for p in (scene.location, scene.description) if p]
    return " - ".join(parts)


def one_line_schedule(snapshot: ScheduleSnapshot) -> List[OneLineRow]:
    rows = []
    for segment in day_segments(snapshot):
        for strip in segment.strips:
            scene = strip.scene
            if scene is None:
                continue
            rows.append(
                OneLineRow(
                    day_number=segment.index + 1,
                    position=strip.position,
                    scene_numbers=scene.scene_numbers,
                    int_ext=scene.int_ext.value if scene.int_ext else None,
                    day_night=scene.day_night.value if scene.day_night else None,
                    location=_location_line(scene),
                    pages=scene.page_count or "",
                )
            )
    return rows


def strip_board(snapshot: ScheduleSnapshot) -> List[StripBoardRow]:
    """
    Strips in shoot order with banners and day-break rows interleaved.

    A day-break row follows the strip it is attached to and carries the page
    total of the day it closes.
    """
    breaks = {b.after_position: b for b in snapshot.day_breaks}
    banners: Dict[int, List[Banner]] = {}
    for banner in snapshot.banners:
        banners.setdefault(banner.after_position, []).append(banner)

    rows: List[StripBoardRow] = [
        StripBoardRow(kind="banner", position=0, banner=b) for b in banners.get(0, [])
    ]
    day_pages = parse_page_count(None)
    days_closed = 0
    for strip in sorted(snapshot.strips, key=lambda s: s.position):
        scene = strip.scene
        rows.append(
            StripBoardRow(
                kind="strip",
                position=strip.position,
                strip=strip,
                color=strip_color(scene.int_ext, scene.day_night) if scene else "gray",
            )
        )
        day_pages += parse_page_count(scene.page_count if scene else None)
        day_break = breaks.get(strip.position)
        if day_break is not None:
            days_closed += 1
            rows.append(
                StripBoardRow(
                    kind="day_break",
                    position=strip.position,
                    day_number=days_closed,
                    pages=format_page_count(day_pages),
                )
            )
            day_pages = parse_page_count(None)
        for banner in banners.get(strip.position, []):
            rows.append(StripBoardRow(kind="banner", position=strip.position, banner=banner))
    return rows


def _split_items(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return [item.strip() for item in re.split(r"[,\n]", text) if item.strip()]


def element_breakdowns(scenes: Sequence[Scene]) -> Dict[ElementCategory, Dict[str, List[str]]]:
    """
    Category -> item -> scene labels, from the element library and the free-text department fields.

    Categories without items are left out; items are sorted by name.
    """
    collected: Dict[ElementCategory, Dict[str, List[str]]] = {c: {} for c in ElementCategory}
    for scene in scenes:
        for element in scene.elements:
            collected[element.category].setdefault(element.name, []).append(scene.scene_numbers)
        for field_name, category in LEGACY_DEPARTMENT_FIELDS.items():
            for item in _split_items(scene.departments.get(field_name)):
                labels = collected[category].setdefault(item, [])
                if scene.scene_numbers not in labels:
                    labels.append(scene.scene_numbers)

    return {
        category: dict(sorted(collected[category].items(), key=lambda kv: kv[0].lower()))
        for category in REPORT_CATEGORY_ORDER
        if collected[category]
    }


def production_calendar(snapshot: ScheduleSnapshot) -> Dict[date, CalendarDay]:
    """Calendar date -> shoot day, one consecutive date per day segment."""
    calendar: Dict[date, CalendarDay] = {}
    if snapshot.start_date is None:
        return calendar
    for segment in day_segments(snapshot):
        d = shoot_date_for_segment(segment.index, snapshot.start_date)
        calendar[d] = CalendarDay(date=d, type=DayType.SHOOT, shoot_day_number=segment.index + 1)
    return calendar


def dood_report(snapshot: ScheduleSnapshot) -> DoodReport:
    return build_dood(snapshot.characters, day_segments(snapshot))


def format_shooting_schedule(project_id: str, days: Sequence[ShootDay]) -> str:
    lines: List[str] = []
    lines.append("SHOOTING_SCHEDULE")
    lines.append(f"project_id: {project_id}")
    if not days:
        lines.append("(no scenes scheduled)")
        return "\n".join(lines)

    for day in days:
        when = f" ({day.shoot_date_label})" if day.shoot_date_label else ""
        lines.append(f"Day {day.day_number}{when} - {day.pages} pages")
        for strip in day.strips:
            scene = strip.scene
            if scene is None:
                continue
            ie = scene.int_ext.value if scene.int_ext else "-"
            dn = scene.day_night.value if scene.day_night else "-"
            cast = ", ".join(f"{c.number}. {c.name}" for c in scene.cast)
            lines.append(
                f"- #{strip.position} sc={scene.scene_numbers} {ie}/{dn} {_location_line(scene) or '-'} pgs={scene.page_count or '-'}"
            )
            if cast:
                lines.append(f"  cast: {cast}")
    return "\n".join(lines)
