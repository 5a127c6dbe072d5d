from __future__ import annotations

import logging
import sqlite3
from typing import Any, Dict, List, Sequence

from .errors import ConflictOnConcurrentWrite, InvalidArgument, NotFound, require_int
from .models import DayBreak, DaySegment, Strip
from .store import ProjectScheduleStore

logger = logging.getLogger(__name__)


def compute_day_segments(strips: Sequence[Strip], day_breaks: Sequence[DayBreak]) -> List[DaySegment]:
    """
    Group strips into shoot days.

    Strips are walked in position order; a strip whose position carries a day
    break closes the current day. Whatever remains after the last break is an
    implicit trailing day. Breaks that match no strip close nothing. Days are
    numbered by rank, whatever day_number the stored breaks carry.
    """
    by_position = {b.after_position: b for b in day_breaks}
    segments: List[DaySegment] = []
    current: List[Strip] = []
    for strip in sorted(strips, key=lambda s: s.position):
        current.append(strip)
        day_break = by_position.get(strip.position)
        if day_break is None:
            continue
        segments.append(
            DaySegment(
                index=len(segments),
                day_number=len(segments) + 1,
                strips=current,
                day_break=day_break,
            )
        )
        current = []

    if current:
        segments.append(DaySegment(index=len(segments), day_number=len(segments) + 1, strips=current))
    return segments


class DayPartitioner:
    """Day-break markers over a schedule's strip positions."""

    def __init__(self, store: ProjectScheduleStore):
        self.store = store

    def toggle_day_break(self, after_position: int, renumber: bool = False) -> Dict[str, Any]:
        """
        Remove the break at after_position if there is one, else add it.

        A new break takes MAX(day_number)+1 regardless of where it sits;
        callers restore position order with renumber_day_breaks(), or pass
        renumber=True to do both in one transaction.
        """
        after_position = require_int("after_position", after_position)
        if after_position < 0:
            raise InvalidArgument(f"after_position must be non-negative, got {after_position}")

        with self.store.transaction():
            existing = self.store.get_day_break_at(after_position)
            if existing:
                self.store.delete_day_break(existing["day_break_id"])
                result = {"action": "deleted", "day_break": existing}
            else:
                if after_position > self.store.max_position():
                    logger.warning("day break after position %s is past the last strip", after_position)
                try:
                    created = self.store.insert_day_break(after_position, self.store.max_day_number() + 1)
                except sqlite3.IntegrityError as e:
                    raise ConflictOnConcurrentWrite(f"day break after position {after_position} already exists") from e
                result = {"action": "created", "day_break": created}
            if renumber:
                self.renumber_day_breaks()
                if result["action"] == "created":
                    result["day_break"] = self.store.get_day_break(result["day_break"]["day_break_id"])
            self.store.bump_version()

        logger.info("day break %s after position %s", result["action"], after_position)
        return result

    def renumber_day_breaks(self) -> List[Dict[str, Any]]:
        with self.store.transaction():
            day_breaks = self.store.list_day_breaks()
            for rank, row in enumerate(day_breaks, start=1):
                if row["day_number"] != rank:
                    self.store.set_day_number(row["day_break_id"], rank)
            self.store.bump_version()
            return self.store.list_day_breaks()

    def delete_day_break(self, day_break_id: str) -> Dict[str, Any]:
        with self.store.transaction():
            existing = self.store.get_day_break(day_break_id)
            if not existing:
                raise NotFound(f"day break {day_break_id} not found")
            self.store.delete_day_break(day_break_id)
            self.store.bump_version()
        return existing

    def day_breaks(self) -> List[DayBreak]:
        return [DayBreak.from_row(r) for r in self.store.list_day_breaks()]
