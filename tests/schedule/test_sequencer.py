import random

import pytest

from stripboard.schedule.errors import InvalidArgument, NotFound
from stripboard.schedule.sequencer import StripSequencer
from stripboard.schedule.store import ProjectScheduleStore


def _board(tmp_path, n=5):
    store = ProjectScheduleStore.open("test", db_path=tmp_path / "schedule.db")
    seq = StripSequencer(store)
    ids = []
    for i in range(n):
        strip = seq.append(store.insert_breakdown({"scene_numbers": str(i + 1)}))
        ids.append(strip["strip_id"])
    return store, seq, ids


def _order(seq):
    return [strip_id for strip_id, _ in seq.positions()]


def test_append_assigns_next_position(tmp_path):
    store, seq, ids = _board(tmp_path, 3)
    assert [p for _, p in seq.positions()] == [1, 2, 3]
    assert _order(seq) == ids


def test_move_down_shifts_strips_up(tmp_path):
    store, seq, ids = _board(tmp_path)
    a, b, c, d, e = ids
    moved = seq.reorder(a, 4)
    assert moved["position"] == 4
    assert _order(seq) == [b, c, d, a, e]
    assert [p for _, p in seq.positions()] == [1, 2, 3, 4, 5]


def test_move_up_shifts_strips_down(tmp_path):
    store, seq, ids = _board(tmp_path)
    a, b, c, d, e = ids
    seq.reorder(e, 2)
    assert _order(seq) == [a, e, b, c, d]


def test_move_to_ends(tmp_path):
    store, seq, ids = _board(tmp_path)
    a, b, c, d, e = ids
    seq.reorder(a, 5)
    seq.reorder(d, 1)
    assert _order(seq) == [d, b, c, e, a]


def test_same_position_is_a_noop(tmp_path):
    store, seq, ids = _board(tmp_path)
    version = store.get_schedule()["version"]
    seq.reorder(ids[2], 3)
    assert _order(seq) == ids
    assert store.get_schedule()["version"] == version


def test_reorder_validation_leaves_board_untouched(tmp_path):
    store, seq, ids = _board(tmp_path)
    for bad in (0, 6, -1):
        with pytest.raises(InvalidArgument):
            seq.reorder(ids[0], bad)
    with pytest.raises(InvalidArgument):
        seq.reorder(ids[0], 2.5)
    with pytest.raises(InvalidArgument):
        seq.reorder(ids[0], True)
    with pytest.raises(NotFound):
        seq.reorder("missing", 1)
    assert _order(seq) == ids


def test_positions_stay_dense_over_many_moves(tmp_path):
    store, seq, ids = _board(tmp_path, 8)
    rng = random.Random(7)
    for _ in range(40):
        seq.reorder(rng.choice(ids), rng.randint(1, 8))
        positions = [p for _, p in seq.positions()]
        assert positions == list(range(1, 9))
    assert sorted(_order(seq)) == sorted(ids)


def test_remove_redensifies(tmp_path):
    store, seq, ids = _board(tmp_path)
    a, b, c, d, e = ids
    seq.remove(c)
    assert [p for _, p in seq.positions()] == [1, 2, 3, 4]
    assert _order(seq) == [a, b, d, e]

    seq.remove(e)
    seq.remove(a)
    assert seq.positions() == [(b, 1), (d, 2)]
    with pytest.raises(NotFound):
        seq.remove(c)


def test_remove_does_not_touch_day_breaks(tmp_path):
    store, seq, ids = _board(tmp_path)
    store.insert_day_break(4, 1)
    seq.remove(ids[0])
    assert [b["after_position"] for b in store.list_day_breaks()] == [4]
