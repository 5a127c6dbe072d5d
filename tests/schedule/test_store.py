import sqlite3

import pytest

from stripboard.config.config import config
from stripboard.schedule.errors import ConflictOnConcurrentWrite
from stripboard.schedule.store import ProjectScheduleStore, default_project_db_path


def _store(tmp_path, **kwargs):
    return ProjectScheduleStore.open("test", db_path=tmp_path / "schedule.db", **kwargs)


def test_open_creates_one_empty_schedule(tmp_path):
    store = _store(tmp_path)
    schedule = store.get_schedule()
    assert schedule["start_date"] is None
    assert schedule["version"] == 0
    store.close()

    reopened = _store(tmp_path)
    assert reopened.schedule_id == schedule["schedule_id"]
    assert reopened.conn.execute("SELECT COUNT(*) AS n FROM schedules").fetchone()["n"] == 1


def test_default_db_path_is_filename_safe(monkeypatch, tmp_path):
    monkeypatch.setitem(config, "data_dir", str(tmp_path))
    assert default_project_db_path("my film/2026") == tmp_path / "my_film_2026" / "schedule.db"
    with pytest.raises(ValueError):
        default_project_db_path("  ")


def test_shift_positions_never_collides(tmp_path):
    store = _store(tmp_path)
    for i in range(1, 5):
        store.insert_strip(store.insert_breakdown({"scene_numbers": str(i)}), i)

    store.shift_positions(2, 4, +1)
    assert [s["position"] for s in store.list_strips()] == [1, 3, 4, 5]
    store.shift_positions(3, 5, -1)
    assert [s["position"] for s in store.list_strips()] == [1, 2, 3, 4]
    assert store.shift_positions(5, 4, -1) == 0


def test_position_is_unique_per_schedule(tmp_path):
    store = _store(tmp_path)
    store.insert_strip(store.insert_breakdown({"scene_numbers": "1"}), 1)
    with pytest.raises(sqlite3.IntegrityError):
        store.insert_strip(store.insert_breakdown({"scene_numbers": "2"}), 1)


def test_blank_scene_numbers_rejected_by_schema(tmp_path):
    store = _store(tmp_path)
    with pytest.raises(sqlite3.IntegrityError):
        store.insert_breakdown({"scene_numbers": "   "})


def test_transaction_rolls_back_on_error(tmp_path):
    store = _store(tmp_path)
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.insert_strip(store.insert_breakdown({"scene_numbers": "1"}), 1)
            raise RuntimeError("boom")
    assert store.list_strips() == []
    assert store.list_breakdowns() == []


def test_nested_transaction_joins_outer(tmp_path):
    store = _store(tmp_path)
    with pytest.raises(RuntimeError):
        with store.transaction():
            with store.transaction():
                store.set_start_date("2026-02-03")
            raise RuntimeError("boom")
    assert store.get_schedule()["start_date"] is None


def test_concurrent_writer_gets_conflict(tmp_path):
    first = _store(tmp_path, busy_timeout_sec=0)
    second = _store(tmp_path, busy_timeout_sec=0)
    with first.transaction():
        first.set_start_date("2026-02-03")
        with pytest.raises(ConflictOnConcurrentWrite) as exc_info:
            with second.transaction():
                second.set_start_date("2026-03-01")
        assert exc_info.value.retryable
    assert second.get_schedule()["start_date"] == "2026-02-03"


def test_cast_and_elements_join(tmp_path):
    store = _store(tmp_path)
    alice = store.add_character("ALICE")
    bob = store.add_character("BOB")
    assert (alice["number"], bob["number"]) == (1, 2)
    gun = store.add_element("PROPS", "Gun")
    bid = store.insert_breakdown({"scene_numbers": "12A"})
    store.set_breakdown_cast(bid, [bob["character_id"], alice["character_id"]])
    store.set_breakdown_elements(bid, [gun["element_id"]])

    cast = store.get_cast_for_breakdowns([bid])[bid]
    assert [c["name"] for c in cast] == ["ALICE", "BOB"]
    assert [e["name"] for e in store.get_elements_for_breakdowns([bid])[bid]] == ["Gun"]
    assert store.valid_character_ids([alice["character_id"], "nope"]) == [alice["character_id"]]
