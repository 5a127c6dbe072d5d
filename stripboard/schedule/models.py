from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional


class IntExt(str, Enum):
    INT = "INT"
    EXT = "EXT"


class DayNight(str, Enum):
    DAY = "DAY"
    NIGHT = "NIGHT"
    DUSK = "DUSK"
    DAWN = "DAWN"
    DAY_FOR_NIGHT = "DAY_FOR_NIGHT"


class BannerType(str, Enum):
    TRAVEL = "TRAVEL"
    MOVE = "MOVE"
    HOLIDAY = "HOLIDAY"
    PRERIG = "PRERIG"
    INFO = "INFO"


class ElementCategory(str, Enum):
    WARDROBE = "WARDROBE"
    PROPS = "PROPS"
    SET_DRESSING = "SET_DRESSING"
    ART_DEPT = "ART_DEPT"
    SPECIAL_PERSONNEL = "SPECIAL_PERSONNEL"
    VEHICLES = "VEHICLES"
    CAMERA = "CAMERA"
    MECHANICAL_FX = "MECHANICAL_FX"
    VISUAL_FX = "VISUAL_FX"
    SPECIAL_EQUIP = "SPECIAL_EQUIP"
    ANIMALS = "ANIMALS"
    SOUND_MUSIC = "SOUND_MUSIC"
    OTHER = "OTHER"


# Free-text department fields on a breakdown sheet and the category each feeds.
LEGACY_DEPARTMENT_FIELDS: Dict[str, ElementCategory] = {
    "props": ElementCategory.PROPS,
    "wardrobe": ElementCategory.WARDROBE,
    "vehicles": ElementCategory.VEHICLES,
    "animals": ElementCategory.ANIMALS,
    "special_equip": ElementCategory.SPECIAL_EQUIP,
    "mechanical_fx": ElementCategory.MECHANICAL_FX,
    "visual_fx": ElementCategory.VISUAL_FX,
    "set_dressing": ElementCategory.SET_DRESSING,
    "art_dept": ElementCategory.ART_DEPT,
    "special_personnel": ElementCategory.SPECIAL_PERSONNEL,
    "camera": ElementCategory.CAMERA,
    "sound_music": ElementCategory.SOUND_MUSIC,
    "other": ElementCategory.OTHER,
}

# Free-text breakdown columns.
TEXT_FIELDS = (
    "location",
    "page_count",
    "description",
    "stunts",
    "extras",
    "dqs",
) + tuple(LEGACY_DEPARTMENT_FIELDS)


class WorkStatus(str, Enum):
    NONE = ""
    START_WORK = "SW"
    WORK = "W"
    HOLD = "H"
    WORK_FINISH = "WF"
    START_WORK_FINISH = "SWF"

    @property
    def is_working(self) -> bool:
        return self in WORKING_STATUSES


WORKING_STATUSES = frozenset(
    {WorkStatus.START_WORK, WorkStatus.WORK, WorkStatus.WORK_FINISH, WorkStatus.START_WORK_FINISH}
)


def _enum_or_none(enum_cls, value):
    if value is None or value == "":
        return None
    return enum_cls(value)


@dataclass
class Character:
    character_id: str
    number: int
    name: str
    actor: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Character":
        return cls(
            character_id=row["character_id"],
            number=int(row["number"]),
            name=row["name"],
            actor=row.get("actor"),
        )


@dataclass
class ProductionElement:
    element_id: str
    category: ElementCategory
    name: str
    notes: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ProductionElement":
        return cls(
            element_id=row["element_id"],
            category=ElementCategory(row["category"]),
            name=row["name"],
            notes=row.get("notes"),
        )


@dataclass
class Scene:
    breakdown_id: str
    scene_numbers: str
    int_ext: Optional[IntExt] = None
    day_night: Optional[DayNight] = None
    location: Optional[str] = None
    page_count: Optional[str] = None
    description: Optional[str] = None
    story_day: Optional[int] = None
    is_flashback: bool = False
    sort_order: int = 0
    cast: List[Character] = field(default_factory=list)
    elements: List[ProductionElement] = field(default_factory=list)
    departments: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def cast_ids(self) -> List[str]:
        return [c.character_id for c in self.cast]

    @classmethod
    def from_row(
        cls,
        row: Dict[str, Any],
        cast: Optional[List[Character]] = None,
        elements: Optional[List[ProductionElement]] = None,
    ) -> "Scene":
        departments = {
            key: row.get(key)
            for key in TEXT_FIELDS
            if key not in ("location", "page_count", "description")
        }
        return cls(
            breakdown_id=row["breakdown_id"],
            scene_numbers=row["scene_numbers"],
            int_ext=_enum_or_none(IntExt, row.get("int_ext")),
            day_night=_enum_or_none(DayNight, row.get("day_night")),
            location=row.get("location"),
            page_count=row.get("page_count"),
            description=row.get("description"),
            story_day=row.get("story_day"),
            is_flashback=bool(row.get("is_flashback")),
            sort_order=int(row.get("sort_order") or 0),
            cast=list(cast or []),
            elements=list(elements or []),
            departments=departments,
        )


@dataclass
class Strip:
    strip_id: str
    schedule_id: str
    breakdown_id: str
    position: int
    scene: Optional[Scene] = None


@dataclass
class DayBreak:
    day_break_id: str
    schedule_id: str
    after_position: int
    day_number: int
    notes: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "DayBreak":
        return cls(
            day_break_id=row["day_break_id"],
            schedule_id=row["schedule_id"],
            after_position=int(row["after_position"]),
            day_number=int(row["day_number"]),
            notes=row.get("notes"),
        )


@dataclass
class Banner:
    banner_id: str
    schedule_id: str
    after_position: int
    label: str
    banner_type: BannerType

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Banner":
        return cls(
            banner_id=row["banner_id"],
            schedule_id=row["schedule_id"],
            after_position=int(row["after_position"]),
            label=row["label"],
            banner_type=BannerType(row["banner_type"]),
        )


@dataclass
class DaySegment:
    """One shoot day: a run of consecutive strips between day breaks."""

    index: int
    day_number: int
    strips: List[Strip] = field(default_factory=list)
    day_break: Optional[DayBreak] = None

    @property
    def scenes(self) -> List[Scene]:
        return [s.scene for s in self.strips if s.scene is not None]

    def features(self, character_id: str) -> bool:
        return any(character_id in scene.cast_ids for scene in self.scenes)


@dataclass
class ScheduleSnapshot:
    schedule_id: str
    project_id: str
    start_date: Optional[date]
    version: int
    strips: List[Strip] = field(default_factory=list)
    day_breaks: List[DayBreak] = field(default_factory=list)
    banners: List[Banner] = field(default_factory=list)
    characters: List[Character] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return _plain(asdict(self))


def _plain(obj: Any) -> Any:
    # asdict keeps Enum members and dates; JSON callers want plain values.
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {_plain(k): _plain(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_plain(v) for v in obj]
    return obj


def to_plain(obj: Any) -> Any:
    """Convert model dataclasses (bare, or in lists and dicts) into JSON-ready data."""
    if isinstance(obj, list):
        return [to_plain(o) for o in obj]
    if isinstance(obj, dict):
        return {_plain(k): to_plain(v) for k, v in obj.items()}
    if hasattr(obj, "__dataclass_fields__"):
        return _plain(asdict(obj))
    return _plain(obj)
