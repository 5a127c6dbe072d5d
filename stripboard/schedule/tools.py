from __future__ import annotations

from typing import Any, Dict, List, Optional

from .access import ProjectAccess
from .models import to_plain
from .service import ScheduleService, init_project_schedule


_services: Dict[str, ScheduleService] = {}


def _svc(project_id: str) -> ScheduleService:
    """
    Keep a per-process cache of open services. This makes repeated calls fast.
    """
    if project_id not in _services:
        _services[project_id] = ScheduleService.open(project_id=project_id)
    return _services[project_id]


def close_all() -> None:
    """Close every cached service (server shutdown, tests)."""
    while _services:
        _, svc = _services.popitem()
        svc.close()


def _access(role: Optional[str], user_id: Optional[str]) -> Optional[ProjectAccess]:
    return ProjectAccess.parse(role, user_id=user_id)


def schedule_init_project(project_id: str) -> Dict[str, Any]:
    """
    Initialize a project's schedule DB (creates schema and an empty schedule if missing).
    """
    return init_project_schedule(project_id=project_id)


def schedule_get(project_id: str) -> Dict[str, Any]:
    return _svc(project_id).get_schedule().to_dict()


def schedule_set_start_date(project_id: str, start_date: Optional[str], role: str = "", user_id: str = "") -> Dict[str, Any]:
    """
    Set (or clear, with None) the first shoot date.
    """
    svc = _svc(project_id)
    return svc.set_start_date(start_date, _access(role, user_id or None)).to_dict()


def schedule_reorder_strip(project_id: str, strip_id: str, new_position: int, role: str = "", user_id: str = "") -> Dict[str, Any]:
    """
    Move a strip to a 1-based position; the strips in between shift by one.
    """
    svc = _svc(project_id)
    return svc.reorder_strip(strip_id, new_position, _access(role, user_id or None)).to_dict()


def schedule_toggle_day_break(
    project_id: str,
    after_position: int,
    role: str = "",
    user_id: str = "",
    renumber: bool = False,
) -> Dict[str, Any]:
    """
    Add a day break after a position, or remove the one already there.
    """
    result = _svc(project_id).toggle_day_break(after_position, _access(role, user_id or None), renumber=renumber)
    return {
        "action": result["action"],
        "day_break": to_plain(result["day_break"]),
        "schedule": result["schedule"].to_dict(),
    }


def schedule_renumber_day_breaks(project_id: str, role: str = "", user_id: str = "") -> Dict[str, Any]:
    return _svc(project_id).renumber_day_breaks(_access(role, user_id or None)).to_dict()


def schedule_delete_day_break(project_id: str, day_break_id: str, role: str = "", user_id: str = "") -> Dict[str, Any]:
    return _svc(project_id).delete_day_break(day_break_id, _access(role, user_id or None)).to_dict()


def schedule_create_banner(
    project_id: str,
    after_position: int,
    label: str,
    banner_type: str = "INFO",
    role: str = "",
    user_id: str = "",
) -> Dict[str, Any]:
    banner = _svc(project_id).create_banner(after_position, label, banner_type, _access(role, user_id or None))
    return {"project_id": project_id, "banner": to_plain(banner)}


def schedule_delete_banner(project_id: str, banner_id: str, role: str = "", user_id: str = "") -> Dict[str, Any]:
    return _svc(project_id).delete_banner(banner_id, _access(role, user_id or None)).to_dict()


def schedule_add_character(
    project_id: str,
    name: str,
    number: Optional[int] = None,
    actor: str = "",
    role: str = "",
    user_id: str = "",
) -> Dict[str, Any]:
    character = _svc(project_id).add_character(name, _access(role, user_id or None), number=number, actor=actor or None)
    return {"project_id": project_id, "character": to_plain(character)}


def schedule_list_characters(project_id: str) -> Dict[str, Any]:
    return {"project_id": project_id, "characters": to_plain(_svc(project_id).list_characters())}


def schedule_add_element(
    project_id: str,
    category: str,
    name: str,
    notes: str = "",
    role: str = "",
    user_id: str = "",
) -> Dict[str, Any]:
    element = _svc(project_id).add_element(category, name, _access(role, user_id or None), notes=notes or None)
    return {"project_id": project_id, "element": to_plain(element)}


def schedule_list_elements(project_id: str) -> Dict[str, Any]:
    return {"project_id": project_id, "elements": to_plain(_svc(project_id).list_elements())}


def schedule_add_scene(
    project_id: str,
    scene: Dict[str, Any],
    cast_ids: Optional[List[str]] = None,
    element_ids: Optional[List[str]] = None,
    role: str = "",
    user_id: str = "",
) -> Dict[str, Any]:
    """
    Register a scene; its strip is appended at the end of the board.
    """
    created = _svc(project_id).add_scene(scene, _access(role, user_id or None), cast_ids=cast_ids, element_ids=element_ids)
    return {"project_id": project_id, "scene": to_plain(created)}


def schedule_update_scene(
    project_id: str,
    breakdown_id: str,
    scene: Dict[str, Any],
    cast_ids: Optional[List[str]] = None,
    element_ids: Optional[List[str]] = None,
    role: str = "",
    user_id: str = "",
) -> Dict[str, Any]:
    updated = _svc(project_id).update_scene(
        breakdown_id,
        scene,
        _access(role, user_id or None),
        cast_ids=cast_ids,
        element_ids=element_ids,
    )
    return {"project_id": project_id, "scene": to_plain(updated)}


def schedule_delete_scene(project_id: str, breakdown_id: str, role: str = "", user_id: str = "") -> Dict[str, Any]:
    return _svc(project_id).delete_scene(breakdown_id, _access(role, user_id or None)).to_dict()


def schedule_get_scene(project_id: str, breakdown_id: str) -> Dict[str, Any]:
    return {"project_id": project_id, "scene": to_plain(_svc(project_id).get_scene(breakdown_id))}


def schedule_list_scenes(project_id: str) -> Dict[str, Any]:
    return {"project_id": project_id, "scenes": to_plain(_svc(project_id).list_scenes())}


def schedule_get_report(project_id: str, kind: str) -> Dict[str, Any]:
    """
    Compute a report from the current schedule: shooting_schedule, one_line_schedule,
    strip_board, element_breakdowns, day_out_of_days or production_calendar.
    """
    return {"project_id": project_id, "kind": kind, "report": to_plain(_svc(project_id).get_report(kind))}
