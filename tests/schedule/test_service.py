import json
from datetime import date

import pytest

from stripboard.schedule.access import AccessLevel, ProjectAccess
from stripboard.schedule.errors import InvalidArgument, NotFound, PermissionDenied
from stripboard.schedule.models import DayBreak
from stripboard.schedule.service import ScheduleService, init_project_schedule


EDITOR = ProjectAccess(level=AccessLevel.EDITOR, user_id="u1")
VIEWER = ProjectAccess(level=AccessLevel.VIEWER, user_id="u2")


def _svc(tmp_path):
    return ScheduleService.open("test", db_path=tmp_path / "schedule.db")


def _scenes(svc, n, **extra):
    return [svc.add_scene({"scene_numbers": str(i + 1), **extra}, EDITOR) for i in range(n)]


def _strip_ids(svc):
    return [s.strip_id for s in svc.get_schedule().strips]


def test_add_scene_appends_strip(tmp_path):
    svc = _svc(tmp_path)
    scenes = _scenes(svc, 3, int_ext="INT", day_night="DAY", page_count="1 2/8")
    snapshot = svc.get_schedule()
    assert [s.position for s in snapshot.strips] == [1, 2, 3]
    assert [s.scene.scene_numbers for s in snapshot.strips] == ["1", "2", "3"]
    assert snapshot.strips[0].scene.breakdown_id == scenes[0].breakdown_id
    assert scenes[0].int_ext.value == "INT"


def test_add_scene_validation(tmp_path):
    svc = _svc(tmp_path)
    with pytest.raises(InvalidArgument):
        svc.add_scene({"scene_numbers": "  "}, EDITOR)
    with pytest.raises(InvalidArgument):
        svc.add_scene({"scene_numbers": "1", "int_ext": "OUTSIDE"}, EDITOR)
    with pytest.raises(InvalidArgument):
        svc.add_scene({"scene_numbers": "1", "day_night": "NOON"}, EDITOR)
    assert svc.list_scenes() == []
    assert svc.get_schedule().strips == []


def test_add_scene_drops_unknown_cast_and_elements(tmp_path):
    svc = _svc(tmp_path)
    alice = svc.add_character("ALICE", EDITOR)
    gun = svc.add_element("PROPS", "Gun", EDITOR)
    scene = svc.add_scene(
        {"scene_numbers": "4"},
        EDITOR,
        cast_ids=[alice.character_id, "ghost"],
        element_ids=[gun.element_id, "ghost"],
    )
    assert scene.cast_ids == [alice.character_id]
    assert [e.name for e in scene.elements] == ["Gun"]


def test_writes_require_edit_access(tmp_path):
    svc = _svc(tmp_path)
    _scenes(svc, 2)
    strip_id = _strip_ids(svc)[0]
    with pytest.raises(PermissionDenied):
        svc.reorder_strip(strip_id, 2, VIEWER)
    with pytest.raises(PermissionDenied):
        svc.toggle_day_break(1, None)
    with pytest.raises(PermissionDenied):
        svc.add_scene({"scene_numbers": "9"}, VIEWER)
    with pytest.raises(PermissionDenied):
        svc.set_start_date("2026-02-03", VIEWER)
    assert svc.get_schedule().day_breaks == []


def test_owner_and_admin_can_edit(tmp_path):
    svc = _svc(tmp_path)
    for level in (AccessLevel.OWNER, AccessLevel.ADMIN):
        svc.add_scene({"scene_numbers": level.value}, ProjectAccess(level=level))
    assert len(svc.list_scenes()) == 2


def test_reorder_strip_returns_updated_schedule(tmp_path):
    svc = _svc(tmp_path)
    _scenes(svc, 3)
    a, b, c = _strip_ids(svc)
    snapshot = svc.reorder_strip(c, 1, EDITOR)
    assert [s.strip_id for s in snapshot.strips] == [c, a, b]
    assert [s.position for s in snapshot.strips] == [1, 2, 3]


def test_delete_scene_closes_the_gap(tmp_path):
    svc = _svc(tmp_path)
    scenes = _scenes(svc, 4)
    snapshot = svc.delete_scene(scenes[1].breakdown_id, EDITOR)
    assert [s.position for s in snapshot.strips] == [1, 2, 3]
    assert [s.scene.scene_numbers for s in snapshot.strips] == ["1", "3", "4"]
    with pytest.raises(NotFound):
        svc.get_scene(scenes[1].breakdown_id)
    with pytest.raises(NotFound):
        svc.delete_scene(scenes[1].breakdown_id, EDITOR)


def test_update_scene(tmp_path):
    svc = _svc(tmp_path)
    (scene,) = _scenes(svc, 1, location="Diner")
    updated = svc.update_scene(scene.breakdown_id, {"page_count": "2 3/8", "props": "Mug"}, EDITOR)
    assert updated.page_count == "2 3/8"
    assert updated.location == "Diner"
    assert updated.departments["props"] == "Mug"
    with pytest.raises(InvalidArgument):
        svc.update_scene(scene.breakdown_id, {"scene_numbers": ""}, EDITOR)
    with pytest.raises(NotFound):
        svc.update_scene("missing", {"page_count": "1"}, EDITOR)


def test_set_start_date(tmp_path):
    svc = _svc(tmp_path)
    snapshot = svc.set_start_date("2026-02-03T00:00:00.000Z", EDITOR)
    assert snapshot.start_date == date(2026, 2, 3)
    assert svc.set_start_date(None, EDITOR).start_date is None
    with pytest.raises(InvalidArgument):
        svc.set_start_date("next tuesday", EDITOR)


def test_toggle_day_break_result(tmp_path):
    svc = _svc(tmp_path)
    _scenes(svc, 5)
    result = svc.toggle_day_break(2, EDITOR)
    assert result["action"] == "created"
    assert isinstance(result["day_break"], DayBreak)
    assert result["day_break"].day_number == 1
    assert [b.after_position for b in result["schedule"].day_breaks] == [2]

    result = svc.toggle_day_break(2, EDITOR)
    assert result["action"] == "deleted"
    assert result["schedule"].day_breaks == []


def test_day_segments_and_shoot_dates(tmp_path):
    svc = _svc(tmp_path)
    _scenes(svc, 5)
    svc.toggle_day_break(2, EDITOR)
    svc.toggle_day_break(4, EDITOR)
    svc.set_start_date("2026-02-03", EDITOR)

    assert [len(s.strips) for s in svc.get_day_segments()] == [2, 2, 1]
    calendar = svc.get_calendar()
    assert sorted(calendar) == [date(2026, 2, 3), date(2026, 2, 4), date(2026, 2, 5)]
    assert calendar[date(2026, 2, 5)].shoot_day_number == 3


def test_renumber_and_delete_day_break(tmp_path):
    svc = _svc(tmp_path)
    _scenes(svc, 5)
    svc.toggle_day_break(4, EDITOR)
    svc.toggle_day_break(2, EDITOR)
    snapshot = svc.renumber_day_breaks(EDITOR)
    assert [(b.after_position, b.day_number) for b in snapshot.day_breaks] == [(2, 1), (4, 2)]

    snapshot = svc.delete_day_break(snapshot.day_breaks[0].day_break_id, EDITOR)
    assert [b.after_position for b in snapshot.day_breaks] == [4]
    with pytest.raises(NotFound):
        svc.delete_day_break("missing", EDITOR)


def test_dood_through_service(tmp_path):
    svc = _svc(tmp_path)
    alice = svc.add_character("ALICE", EDITOR)
    bob = svc.add_character("BOB", EDITOR)
    svc.add_scene({"scene_numbers": "1"}, EDITOR, cast_ids=[alice.character_id])
    svc.add_scene({"scene_numbers": "2"}, EDITOR, cast_ids=[bob.character_id])
    svc.add_scene({"scene_numbers": "3"}, EDITOR, cast_ids=[alice.character_id])
    svc.toggle_day_break(1, EDITOR)
    svc.toggle_day_break(2, EDITOR)

    report = svc.get_dood()
    assert report.day_numbers == [1, 2, 3]
    rows = {row.character.name: row for row in report.rows}
    assert rows["ALICE"].statuses == ["SW", "H", "WF"]
    assert rows["ALICE"].work_days == 2
    assert rows["BOB"].statuses == ["", "SWF", ""]
    assert rows["BOB"].work_days == 1


def test_banners(tmp_path):
    svc = _svc(tmp_path)
    _scenes(svc, 2)
    banner = svc.create_banner(1, "Company move to the docks", "MOVE", EDITOR)
    assert banner.banner_type.value == "MOVE"
    assert [b.banner_id for b in svc.get_schedule().banners] == [banner.banner_id]

    with pytest.raises(InvalidArgument):
        svc.create_banner(1, "Lunch", "LUNCH", EDITOR)
    with pytest.raises(InvalidArgument):
        svc.create_banner(1, "  ", "INFO", EDITOR)

    assert svc.delete_banner(banner.banner_id, EDITOR).banners == []
    with pytest.raises(NotFound):
        svc.delete_banner(banner.banner_id, EDITOR)



def test_duplicate_character_number_or_element_is_rejected(tmp_path):
    svc = _svc(tmp_path)
    svc.add_character("ALICE", EDITOR, number=1)
    svc.add_element("PROPS", "Gun", EDITOR)

    with pytest.raises(InvalidArgument) as exc_info:
        svc.add_character("BOB", EDITOR, number=1)
    assert not exc_info.value.retryable
    with pytest.raises(InvalidArgument):
        svc.add_element("PROPS", "Gun", EDITOR)
    assert [c.name for c in svc.list_characters()] == ["ALICE"]
    assert [e.name for e in svc.list_elements()] == ["Gun"]


def test_character_and_element_lists_see_committed_rows(tmp_path):
    svc = _svc(tmp_path)
    other = _svc(tmp_path)
    svc.add_character("BOB", EDITOR, number=2)
    svc.add_character("ALICE", EDITOR, number=1)
    with svc.store.transaction():
        svc.store.add_character("CAROL", number=3)
        svc.store.add_element("VEHICLES", "Taxi")
        assert [c.name for c in other.list_characters()] == ["ALICE", "BOB"]
        assert other.list_elements() == []
    assert [c.number for c in other.list_characters()] == [1, 2, 3]
    assert [e.name for e in other.list_elements()] == ["Taxi"]
    other.close()

def test_get_report_kinds(tmp_path):
    svc = _svc(tmp_path)
    _scenes(svc, 2, page_count="3/8", props="Mug")
    assert len(svc.get_report("shooting_schedule")) == 1
    assert len(svc.get_report("one_line_schedule")) == 2
    assert [r.kind for r in svc.get_report("strip_board")] == ["strip", "strip"]
    assert list(svc.get_report("element_breakdowns")) != []
    assert svc.get_report("production_calendar") == {}
    with pytest.raises(InvalidArgument):
        svc.get_report("cast_list")


def test_version_increases_on_every_change(tmp_path):
    svc = _svc(tmp_path)
    versions = [svc.get_schedule().version]
    _scenes(svc, 2)
    versions.append(svc.get_schedule().version)
    versions.append(svc.toggle_day_break(1, EDITOR)["schedule"].version)
    versions.append(svc.reorder_strip(_strip_ids(svc)[0], 2, EDITOR).version)
    assert versions == sorted(set(versions))


def test_snapshot_to_dict_is_json_ready(tmp_path):
    svc = _svc(tmp_path)
    _scenes(svc, 1, int_ext="EXT", day_night="NIGHT")
    data = svc.set_start_date("2026-02-03", EDITOR).to_dict()
    json.dumps(data)
    assert data["start_date"] == "2026-02-03"
    assert data["strips"][0]["scene"]["int_ext"] == "EXT"


def test_init_project_schedule(tmp_path):
    out = init_project_schedule("my project", db_path=tmp_path / "p.db")
    assert out["project_id"] == "my_project"
    assert out["schedule_id"]
    assert (tmp_path / "p.db").exists()
