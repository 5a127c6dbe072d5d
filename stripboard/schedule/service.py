from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from stripboard.utils.logging_setup import log_context

from .access import ProjectAccess, require_edit
from .dood import DoodReport
from .errors import InvalidArgument, NotFound, require_int
from .models import (
    Banner,
    BannerType,
    Character,
    DayBreak,
    DayNight,
    DaySegment,
    ElementCategory,
    IntExt,
    ProductionElement,
    Scene,
    ScheduleSnapshot,
    Strip,
    TEXT_FIELDS,
)
from .pages import parse_local_date
from .partitioner import DayPartitioner
from .reports import (
    day_segments,
    dood_report,
    element_breakdowns,
    one_line_schedule,
    production_calendar,
    shooting_schedule,
    strip_board,
)
from .sequencer import StripSequencer
from .store import ProjectScheduleStore, default_project_db_path

logger = logging.getLogger(__name__)


REPORT_KINDS = (
    "shooting_schedule",
    "one_line_schedule",
    "strip_board",
    "element_breakdowns",
    "day_out_of_days",
    "production_calendar",
)


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _scene_fields(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validate breakdown fields submitted by a caller and map them to column values."""
    fields: Dict[str, Any] = {}

    if "scene_numbers" in data or not partial:
        scene_numbers = _clean_text(data.get("scene_numbers"))
        if not scene_numbers:
            raise InvalidArgument("scene_numbers is required")
        fields["scene_numbers"] = scene_numbers

    if "int_ext" in data:
        try:
            fields["int_ext"] = IntExt(data["int_ext"]).value if data["int_ext"] else None
        except ValueError as e:
            raise InvalidArgument(f"unknown int_ext {data['int_ext']!r}") from e

    if "day_night" in data:
        try:
            fields["day_night"] = DayNight(data["day_night"]).value if data["day_night"] else None
        except ValueError as e:
            raise InvalidArgument(f"unknown day_night {data['day_night']!r}") from e

    if "story_day" in data:
        story_day = data["story_day"]
        fields["story_day"] = None if story_day is None else require_int("story_day", story_day)

    if "is_flashback" in data:
        fields["is_flashback"] = 1 if data["is_flashback"] else 0

    for key in TEXT_FIELDS:
        if key in data:
            fields[key] = _clean_text(data[key])
    return fields


@dataclass
class ScheduleService:
    """
    Strip-board schedule of one project.

    Mutations go through the sequencer and the partitioner, each in a single
    transaction, and return the schedule as it stands afterwards. Reports are
    computed from a fresh snapshot on every call.
    """

    project_id: str
    store: ProjectScheduleStore
    sequencer: StripSequencer = field(init=False, repr=False)
    partitioner: DayPartitioner = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.sequencer = StripSequencer(self.store)
        self.partitioner = DayPartitioner(self.store)

    @classmethod
    def open(cls, project_id: str, db_path: Optional[Path] = None) -> "ScheduleService":
        store = ProjectScheduleStore.open(project_id=project_id, db_path=db_path)
        return cls(project_id=store.project_id, store=store)

    @property
    def db_path(self) -> Path:
        return self.store.db_path

    def close(self) -> None:
        self.store.close()

    @contextmanager
    def _editing(self, access: Optional[ProjectAccess], operation: str) -> Iterator[ProjectAccess]:
        with log_context(project_id=self.project_id, operation=operation):
            access = require_edit(access)
            with log_context(user_id=access.user_id):
                yield access

    # --- reads ---
    def _scenes(self, breakdown_rows: List[Dict[str, Any]]) -> Dict[str, Scene]:
        ids = [r["breakdown_id"] for r in breakdown_rows]
        cast = self.store.get_cast_for_breakdowns(ids)
        elements = self.store.get_elements_for_breakdowns(ids)
        return {
            row["breakdown_id"]: Scene.from_row(
                row,
                cast=[Character.from_row(c) for c in cast.get(row["breakdown_id"], [])],
                elements=[ProductionElement.from_row(e) for e in elements.get(row["breakdown_id"], [])],
            )
            for row in breakdown_rows
        }

    def get_schedule(self) -> ScheduleSnapshot:
        with self.store.transaction(immediate=False):
            schedule = self.store.get_schedule()
            scenes = self._scenes(self.store.list_breakdowns())
            strips = [
                Strip(
                    strip_id=r["strip_id"],
                    schedule_id=r["schedule_id"],
                    breakdown_id=r["breakdown_id"],
                    position=int(r["position"]),
                    scene=scenes.get(r["breakdown_id"]),
                )
                for r in self.store.list_strips()
            ]
            day_breaks = [DayBreak.from_row(r) for r in self.store.list_day_breaks()]
            banners = [Banner.from_row(r) for r in self.store.list_banners()]
            characters = [Character.from_row(r) for r in self.store.list_characters()]

        return ScheduleSnapshot(
            schedule_id=schedule["schedule_id"],
            project_id=self.project_id,
            start_date=parse_local_date(schedule["start_date"]),
            version=int(schedule["version"]),
            strips=strips,
            day_breaks=day_breaks,
            banners=banners,
            characters=characters,
        )

    def get_day_segments(self) -> List[DaySegment]:
        return day_segments(self.get_schedule())

    def get_dood(self) -> DoodReport:
        return dood_report(self.get_schedule())

    def get_calendar(self) -> Dict[date, Any]:
        return production_calendar(self.get_schedule())

    def get_report(self, kind: str) -> Any:
        snapshot = self.get_schedule()
        if kind == "shooting_schedule":
            return shooting_schedule(snapshot)
        if kind == "one_line_schedule":
            return one_line_schedule(snapshot)
        if kind == "strip_board":
            return strip_board(snapshot)
        if kind == "element_breakdowns":
            return element_breakdowns([s.scene for s in snapshot.strips if s.scene is not None])
        if kind == "day_out_of_days":
            return dood_report(snapshot)
        if kind == "production_calendar":
            return production_calendar(snapshot)
        raise InvalidArgument(f"unknown report {kind!r}, expected one of {', '.join(REPORT_KINDS)}")

    # --- schedule mutations ---
    def set_start_date(self, start_date: Union[str, date, None], access: Optional[ProjectAccess]) -> ScheduleSnapshot:
        with self._editing(access, "set_start_date"):
            try:
                parsed = parse_local_date(start_date)
            except ValueError as e:
                raise InvalidArgument(f"start_date must be YYYY-MM-DD, got {start_date!r}") from e
            with self.store.transaction():
                self.store.set_start_date(parsed.isoformat() if parsed else None)
                self.store.bump_version()
            logger.info("start date set to %s", parsed)
        return self.get_schedule()

    def reorder_strip(self, strip_id: str, new_position: int, access: Optional[ProjectAccess]) -> ScheduleSnapshot:
        with self._editing(access, "reorder_strip"):
            self.sequencer.reorder(strip_id, new_position)
        return self.get_schedule()

    def toggle_day_break(
        self,
        after_position: int,
        access: Optional[ProjectAccess],
        renumber: bool = False,
    ) -> Dict[str, Any]:
        with self._editing(access, "toggle_day_break"):
            result = self.partitioner.toggle_day_break(after_position, renumber=renumber)
        return {
            "action": result["action"],
            "day_break": DayBreak.from_row(result["day_break"]),
            "schedule": self.get_schedule(),
        }

    def renumber_day_breaks(self, access: Optional[ProjectAccess]) -> ScheduleSnapshot:
        with self._editing(access, "renumber_day_breaks"):
            self.partitioner.renumber_day_breaks()
        return self.get_schedule()

    def delete_day_break(self, day_break_id: str, access: Optional[ProjectAccess]) -> ScheduleSnapshot:
        with self._editing(access, "delete_day_break"):
            self.partitioner.delete_day_break(day_break_id)
            logger.info("deleted day break %s", day_break_id)
        return self.get_schedule()

    def create_banner(
        self,
        after_position: int,
        label: str,
        banner_type: Union[str, BannerType],
        access: Optional[ProjectAccess],
    ) -> Banner:
        with self._editing(access, "create_banner"):
            after_position = require_int("after_position", after_position)
            if after_position < 0:
                raise InvalidArgument(f"after_position must be non-negative, got {after_position}")
            label = _clean_text(label)
            if not label:
                raise InvalidArgument("banner label is required")
            try:
                banner_type = BannerType(banner_type)
            except ValueError as e:
                raise InvalidArgument(f"unknown banner type {banner_type!r}") from e

            with self.store.transaction():
                row = self.store.insert_banner(after_position, label, banner_type.value)
                self.store.bump_version()
            logger.info("banner %s (%s) after position %s", row["banner_id"], banner_type.value, after_position)
        return Banner.from_row(row)

    def delete_banner(self, banner_id: str, access: Optional[ProjectAccess]) -> ScheduleSnapshot:
        with self._editing(access, "delete_banner"):
            with self.store.transaction():
                if not self.store.delete_banner(banner_id):
                    raise NotFound(f"banner {banner_id} not found")
                self.store.bump_version()
        return self.get_schedule()

    # --- breakdown registry ---
    def add_character(
        self,
        name: str,
        access: Optional[ProjectAccess],
        number: Optional[int] = None,
        actor: Optional[str] = None,
    ) -> Character:
        with self._editing(access, "add_character"):
            name = _clean_text(name)
            if not name:
                raise InvalidArgument("character name is required")
            if number is not None:
                number = require_int("number", number)
            try:
                with self.store.transaction():
                    row = self.store.add_character(name, number=number, actor=_clean_text(actor))
            except sqlite3.IntegrityError as e:
                raise InvalidArgument(f"character number {number} is already taken") from e
        return Character.from_row(row)

    def list_characters(self) -> List[Character]:
        with self.store.transaction(immediate=False):
            rows = self.store.list_characters()
        return [Character.from_row(r) for r in rows]

    def add_element(
        self,
        category: Union[str, ElementCategory],
        name: str,
        access: Optional[ProjectAccess],
        notes: Optional[str] = None,
    ) -> ProductionElement:
        with self._editing(access, "add_element"):
            try:
                category = ElementCategory(category)
            except ValueError as e:
                raise InvalidArgument(f"unknown element category {category!r}") from e
            name = _clean_text(name)
            if not name:
                raise InvalidArgument("element name is required")
            try:
                with self.store.transaction():
                    row = self.store.add_element(category.value, name, notes=_clean_text(notes))
            except sqlite3.IntegrityError as e:
                raise InvalidArgument(f"{category.value} element {name!r} already exists") from e
        return ProductionElement.from_row(row)

    def list_elements(self) -> List[ProductionElement]:
        with self.store.transaction(immediate=False):
            rows = self.store.list_elements()
        return [ProductionElement.from_row(r) for r in rows]

    def _link(self, breakdown_id: str, cast_ids: Optional[Iterable[str]], element_ids: Optional[Iterable[str]]) -> None:
        # Unknown ids are dropped rather than rejected.
        if cast_ids is not None:
            self.store.set_breakdown_cast(breakdown_id, self.store.valid_character_ids(cast_ids))
        if element_ids is not None:
            self.store.set_breakdown_elements(breakdown_id, self.store.valid_element_ids(element_ids))

    def add_scene(
        self,
        data: Dict[str, Any],
        access: Optional[ProjectAccess],
        cast_ids: Optional[Iterable[str]] = None,
        element_ids: Optional[Iterable[str]] = None,
    ) -> Scene:
        """Register a scene and append its strip at the end of the board."""
        with self._editing(access, "add_scene"):
            fields = _scene_fields(data)
            with self.store.transaction():
                breakdown_id = self.store.insert_breakdown(fields)
                self._link(breakdown_id, cast_ids, element_ids)
                strip = self.sequencer.append(breakdown_id)
            logger.info("added scene %s as strip %s at %s", fields["scene_numbers"], strip["strip_id"], strip["position"])
        return self.get_scene(breakdown_id)

    def update_scene(
        self,
        breakdown_id: str,
        data: Dict[str, Any],
        access: Optional[ProjectAccess],
        cast_ids: Optional[Iterable[str]] = None,
        element_ids: Optional[Iterable[str]] = None,
    ) -> Scene:
        with self._editing(access, "update_scene"):
            fields = _scene_fields(data, partial=True)
            with self.store.transaction():
                if not self.store.get_breakdown(breakdown_id):
                    raise NotFound(f"scene {breakdown_id} not found")
                self.store.update_breakdown(breakdown_id, fields)
                self._link(breakdown_id, cast_ids, element_ids)
                self.store.bump_version()
        return self.get_scene(breakdown_id)

    def delete_scene(self, breakdown_id: str, access: Optional[ProjectAccess]) -> ScheduleSnapshot:
        """Delete a scene; its strip leaves the board and later strips move up."""
        with self._editing(access, "delete_scene"):
            with self.store.transaction():
                if not self.store.get_breakdown(breakdown_id):
                    raise NotFound(f"scene {breakdown_id} not found")
                strip = self.store.get_strip_for_breakdown(breakdown_id)
                if strip:
                    self.sequencer.remove(strip["strip_id"])
                self.store.delete_breakdown(breakdown_id)
                self.store.bump_version()
            logger.info("deleted scene %s", breakdown_id)
        return self.get_schedule()

    def get_scene(self, breakdown_id: str) -> Scene:
        with self.store.transaction(immediate=False):
            row = self.store.get_breakdown(breakdown_id)
            if not row:
                raise NotFound(f"scene {breakdown_id} not found")
            return self._scenes([row])[breakdown_id]

    def list_scenes(self) -> List[Scene]:
        with self.store.transaction(immediate=False):
            rows = self.store.list_breakdowns()
            scenes = self._scenes(rows)
        return [scenes[r["breakdown_id"]] for r in rows]


def init_project_schedule(project_id: str, db_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Create a project's schedule database (and its empty schedule) if missing.
    """
    db_path = db_path or default_project_db_path(project_id)
    svc = ScheduleService.open(project_id=project_id, db_path=db_path)
    canonical = svc.project_id
    schedule_id = svc.store.schedule_id
    svc.close()
    return {"project_id": canonical, "schedule_id": schedule_id, "db_path": str(db_path)}
