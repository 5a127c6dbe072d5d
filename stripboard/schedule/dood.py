"""
Day Out of Days: per-character work status across shoot days.

SW  = start/work (first day)      W  = work
H   = hold (between working days) WF = work/finish (last day)
SWF = start, work and finish on a single day
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence

from .models import Character, DaySegment, WorkStatus


@dataclass
class DoodRow:
    character: Character
    statuses: List[WorkStatus] = field(default_factory=list)
    work_days: int = 0


@dataclass
class DoodReport:
    day_numbers: List[int] = field(default_factory=list)
    rows: List[DoodRow] = field(default_factory=list)


def work_statuses(character_id: str, segments: Sequence[DaySegment]) -> List[WorkStatus]:
    statuses: List[WorkStatus] = []
    has_started = False
    last_work_index = -1

    for index, segment in enumerate(segments):
        if segment.features(character_id):
            statuses.append(WorkStatus.WORK if has_started else WorkStatus.START_WORK)
            has_started = True
            last_work_index = index
        elif has_started:
            statuses.append(WorkStatus.HOLD)
        else:
            statuses.append(WorkStatus.NONE)

    if last_work_index >= 0:
        if statuses[last_work_index] is WorkStatus.START_WORK:
            statuses[last_work_index] = WorkStatus.START_WORK_FINISH
        else:
            statuses[last_work_index] = WorkStatus.WORK_FINISH
        # Holds only fall between first and last working day.
        for index in range(last_work_index + 1, len(statuses)):
            statuses[index] = WorkStatus.NONE

    return statuses


def working_days(statuses: Sequence[WorkStatus]) -> int:
    return sum(1 for s in statuses if s.is_working)


def build_dood(characters: Sequence[Character], segments: Sequence[DaySegment]) -> DoodReport:
    rows = []
    for character in sorted(characters, key=lambda c: c.number):
        statuses = work_statuses(character.character_id, segments)
        rows.append(DoodRow(character=character, statuses=statuses, work_days=working_days(statuses)))
    return DoodReport(day_numbers=[s.index + 1 for s in segments], rows=rows)
