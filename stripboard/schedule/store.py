import os
import re
import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional
from uuid import uuid4

from stripboard.config.config import config

from .errors import ConflictOnConcurrentWrite
from .models import TEXT_FIELDS


def _safe_project_id(project_id: str) -> str:
    project_id = (project_id or "").strip()
    if not project_id:
        raise ValueError("project_id must be non-empty")
    # Keep it filename-safe.
    return re.sub(r"[^a-zA-Z0-9._-]+", "_", project_id)


def default_project_db_path(project_id: str) -> Path:
    pid = _safe_project_id(project_id)
    return Path(config["data_dir"]) / pid / "schedule.db"


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS meta (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schedules (
  schedule_id TEXT PRIMARY KEY,
  project_id TEXT NOT NULL UNIQUE,
  start_date TEXT,                   -- YYYY-MM-DD, a calendar date without time or zone
  version INTEGER NOT NULL DEFAULT 0,
  created_at REAL NOT NULL,
  updated_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS characters (
  character_id TEXT PRIMARY KEY,
  project_id TEXT NOT NULL,
  number INTEGER NOT NULL,
  name TEXT NOT NULL,
  actor TEXT,
  created_at REAL NOT NULL,
  UNIQUE(project_id, number)
);

CREATE TABLE IF NOT EXISTS elements (
  element_id TEXT PRIMARY KEY,
  project_id TEXT NOT NULL,
  category TEXT NOT NULL,            -- ElementCategory value
  name TEXT NOT NULL,
  notes TEXT,
  created_at REAL NOT NULL,
  UNIQUE(project_id, category, name)
);

CREATE TABLE IF NOT EXISTS breakdowns (
  breakdown_id TEXT PRIMARY KEY,
  project_id TEXT NOT NULL,
  scene_numbers TEXT NOT NULL CHECK (length(trim(scene_numbers)) > 0),
  int_ext TEXT,
  day_night TEXT,
  location TEXT,
  page_count TEXT,                   -- free text, e.g. "1 2/8"
  description TEXT,
  story_day INTEGER,
  is_flashback INTEGER NOT NULL DEFAULT 0,
  sort_order INTEGER NOT NULL DEFAULT 0,
  stunts TEXT,
  extras TEXT,
  wardrobe TEXT,
  props TEXT,
  set_dressing TEXT,
  art_dept TEXT,
  special_personnel TEXT,
  vehicles TEXT,
  camera TEXT,
  mechanical_fx TEXT,
  visual_fx TEXT,
  special_equip TEXT,
  animals TEXT,
  sound_music TEXT,
  other TEXT,
  dqs TEXT,
  created_at REAL NOT NULL,
  updated_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_breakdowns_sort ON breakdowns(project_id, sort_order);

CREATE TABLE IF NOT EXISTS breakdown_cast (
  breakdown_id TEXT NOT NULL,
  character_id TEXT NOT NULL,
  PRIMARY KEY(breakdown_id, character_id),
  FOREIGN KEY(breakdown_id) REFERENCES breakdowns(breakdown_id) ON DELETE CASCADE,
  FOREIGN KEY(character_id) REFERENCES characters(character_id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS breakdown_elements (
  breakdown_id TEXT NOT NULL,
  element_id TEXT NOT NULL,
  PRIMARY KEY(breakdown_id, element_id),
  FOREIGN KEY(breakdown_id) REFERENCES breakdowns(breakdown_id) ON DELETE CASCADE,
  FOREIGN KEY(element_id) REFERENCES elements(element_id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS strip_slots (
  strip_id TEXT PRIMARY KEY,
  schedule_id TEXT NOT NULL,
  breakdown_id TEXT NOT NULL UNIQUE, -- one strip per scene
  position INTEGER NOT NULL,         -- dense 1..N
  UNIQUE(schedule_id, position),
  FOREIGN KEY(schedule_id) REFERENCES schedules(schedule_id) ON DELETE CASCADE,
  FOREIGN KEY(breakdown_id) REFERENCES breakdowns(breakdown_id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS day_breaks (
  day_break_id TEXT PRIMARY KEY,
  schedule_id TEXT NOT NULL,
  after_position INTEGER NOT NULL,   -- position of the last strip of the day
  day_number INTEGER NOT NULL,
  notes TEXT,
  UNIQUE(schedule_id, after_position),
  FOREIGN KEY(schedule_id) REFERENCES schedules(schedule_id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS banners (
  banner_id TEXT PRIMARY KEY,
  schedule_id TEXT NOT NULL,
  after_position INTEGER NOT NULL,
  label TEXT NOT NULL,
  banner_type TEXT NOT NULL,         -- TRAVEL/MOVE/HOLIDAY/PRERIG/INFO
  created_at REAL NOT NULL,
  FOREIGN KEY(schedule_id) REFERENCES schedules(schedule_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_banners_position ON banners(schedule_id, after_position);
"""

BREAKDOWN_COLUMNS = (
    "scene_numbers",
    "int_ext",
    "day_night",
    "story_day",
    "is_flashback",
) + TEXT_FIELDS


def _is_busy(exc: sqlite3.OperationalError) -> bool:
    msg = str(exc).lower()
    return "locked" in msg or "busy" in msg


@dataclass
class ProjectScheduleStore:
    project_id: str
    db_path: Path
    conn: sqlite3.Connection
    schedule_id: str = ""
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    _depth: int = field(default=0, repr=False)

    @classmethod
    def open(
        cls,
        project_id: str,
        db_path: Optional[os.PathLike] = None,
        busy_timeout_sec: Optional[float] = None,
    ) -> "ProjectScheduleStore":
        pid = _safe_project_id(project_id)
        path = Path(db_path) if db_path is not None else default_project_db_path(pid)
        path.parent.mkdir(parents=True, exist_ok=True)
        timeout = float(busy_timeout_sec if busy_timeout_sec is not None else config["busy_timeout_sec"])

        # Autocommit mode; multi-statement writes go through transaction().
        conn = sqlite3.connect(str(path), isolation_level=None, check_same_thread=False, timeout=timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA foreign_keys=ON;")

        store = cls(project_id=pid, db_path=path, conn=conn)
        store._ensure_schema()
        store.conn.execute(
            "INSERT OR IGNORE INTO meta(key, value) VALUES(?, ?)",
            ("display_project_id", str(project_id)),
        )
        store.schedule_id = store._ensure_schedule()
        return store

    def close(self) -> None:
        self.conn.close()

    def _ensure_schema(self) -> None:
        self.conn.executescript(SCHEMA_SQL)
        self.conn.execute("INSERT OR IGNORE INTO meta(key, value) VALUES(?, ?)", ("schema_version", "1"))

    def _ensure_schedule(self) -> str:
        # A project's schedule is created empty alongside it.
        ts = self._now()
        self.conn.execute(
            "INSERT OR IGNORE INTO schedules(schedule_id, project_id, start_date, version, created_at, updated_at) VALUES(?, ?, NULL, 0, ?, ?)",
            (str(uuid4()), self.project_id, ts, ts),
        )
        row = self.conn.execute("SELECT schedule_id FROM schedules WHERE project_id=?", (self.project_id,)).fetchone()
        return row["schedule_id"]

    def _now(self) -> float:
        return time.time()

    @contextmanager
    def transaction(self, immediate: bool = True) -> Iterator[sqlite3.Connection]:
        """
        Run a block as one transaction.

        BEGIN IMMEDIATE takes the database write lock up front so concurrent
        writers on the same schedule serialize instead of interleaving.
        Reads pass immediate=False to see one committed state without the
        write lock. Nested use joins the outer transaction.
        """
        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield self.conn
                finally:
                    self._depth -= 1
                return

            try:
                self.conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            except sqlite3.OperationalError as e:
                if _is_busy(e):
                    raise ConflictOnConcurrentWrite(f"schedule for project {self.project_id} is being modified") from e
                raise
            self._depth = 1
            try:
                yield self.conn
            except BaseException:
                self.conn.execute("ROLLBACK")
                raise
            else:
                try:
                    self.conn.execute("COMMIT")
                except sqlite3.OperationalError as e:
                    self.conn.execute("ROLLBACK")
                    if _is_busy(e):
                        raise ConflictOnConcurrentWrite(f"commit on project {self.project_id} lost to a concurrent write") from e
                    raise
            finally:
                self._depth = 0

    # --- schedule ---
    def get_schedule(self) -> Dict[str, Any]:
        cur = self.conn.execute("SELECT * FROM schedules WHERE schedule_id=?", (self.schedule_id,))
        return dict(cur.fetchone())

    def set_start_date(self, start_date: Optional[str]) -> None:
        self.conn.execute(
            "UPDATE schedules SET start_date=?, updated_at=? WHERE schedule_id=?",
            (start_date, self._now(), self.schedule_id),
        )

    def bump_version(self) -> int:
        self.conn.execute(
            "UPDATE schedules SET version=version+1, updated_at=? WHERE schedule_id=?",
            (self._now(), self.schedule_id),
        )
        return int(self.get_schedule()["version"])

    # --- characters ---
    def add_character(self, name: str, number: Optional[int] = None, actor: Optional[str] = None) -> Dict[str, Any]:
        if number is None:
            cur = self.conn.execute(
                "SELECT COALESCE(MAX(number), 0) AS mx FROM characters WHERE project_id=?",
                (self.project_id,),
            )
            number = int(cur.fetchone()["mx"]) + 1
        cid = str(uuid4())
        self.conn.execute(
            "INSERT INTO characters(character_id, project_id, number, name, actor, created_at) VALUES(?, ?, ?, ?, ?, ?)",
            (cid, self.project_id, int(number), name, actor, self._now()),
        )
        return {"character_id": cid, "project_id": self.project_id, "number": int(number), "name": name, "actor": actor}

    def list_characters(self) -> List[Dict[str, Any]]:
        cur = self.conn.execute(
            "SELECT * FROM characters WHERE project_id=? ORDER BY number ASC",
            (self.project_id,),
        )
        return [dict(r) for r in cur.fetchall()]

    def valid_character_ids(self, character_ids: Iterable[str]) -> List[str]:
        ids = list(character_ids)
        if not ids:
            return []
        qmarks = ",".join(["?"] * len(ids))
        cur = self.conn.execute(
            f"SELECT character_id FROM characters WHERE project_id=? AND character_id IN ({qmarks})",
            [self.project_id, *ids],
        )
        return [r["character_id"] for r in cur.fetchall()]

    # --- elements ---
    def add_element(self, category: str, name: str, notes: Optional[str] = None) -> Dict[str, Any]:
        eid = str(uuid4())
        self.conn.execute(
            "INSERT INTO elements(element_id, project_id, category, name, notes, created_at) VALUES(?, ?, ?, ?, ?, ?)",
            (eid, self.project_id, category, name, notes, self._now()),
        )
        return {"element_id": eid, "project_id": self.project_id, "category": category, "name": name, "notes": notes}

    def list_elements(self) -> List[Dict[str, Any]]:
        cur = self.conn.execute(
            "SELECT * FROM elements WHERE project_id=? ORDER BY category ASC, name ASC",
            (self.project_id,),
        )
        return [dict(r) for r in cur.fetchall()]

    def valid_element_ids(self, element_ids: Iterable[str]) -> List[str]:
        ids = list(element_ids)
        if not ids:
            return []
        qmarks = ",".join(["?"] * len(ids))
        cur = self.conn.execute(
            f"SELECT element_id FROM elements WHERE project_id=? AND element_id IN ({qmarks})",
            [self.project_id, *ids],
        )
        return [r["element_id"] for r in cur.fetchall()]

    # --- breakdowns ---
    def insert_breakdown(self, fields: Dict[str, Any]) -> str:
        cur = self.conn.execute(
            "SELECT COALESCE(MAX(sort_order), 0) AS mx FROM breakdowns WHERE project_id=?",
            (self.project_id,),
        )
        sort_order = int(cur.fetchone()["mx"]) + 1
        bid = str(uuid4())
        ts = self._now()
        columns = [c for c in BREAKDOWN_COLUMNS if c in fields]
        names = ", ".join(["breakdown_id", "project_id", "sort_order", "created_at", "updated_at", *columns])
        qmarks = ", ".join(["?"] * (5 + len(columns)))
        self.conn.execute(
            f"INSERT INTO breakdowns({names}) VALUES({qmarks})",
            [bid, self.project_id, sort_order, ts, ts, *[fields[c] for c in columns]],
        )
        return bid

    def update_breakdown(self, breakdown_id: str, fields: Dict[str, Any]) -> bool:
        columns = [c for c in BREAKDOWN_COLUMNS if c in fields]
        if not columns:
            return self.get_breakdown(breakdown_id) is not None
        assignments = ", ".join(f"{c}=?" for c in columns)
        cur = self.conn.execute(
            f"UPDATE breakdowns SET {assignments}, updated_at=? WHERE project_id=? AND breakdown_id=?",
            [*[fields[c] for c in columns], self._now(), self.project_id, breakdown_id],
        )
        return cur.rowcount > 0

    def get_breakdown(self, breakdown_id: str) -> Optional[Dict[str, Any]]:
        cur = self.conn.execute(
            "SELECT * FROM breakdowns WHERE project_id=? AND breakdown_id=?",
            (self.project_id, breakdown_id),
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def list_breakdowns(self) -> List[Dict[str, Any]]:
        cur = self.conn.execute(
            "SELECT * FROM breakdowns WHERE project_id=? ORDER BY sort_order ASC",
            (self.project_id,),
        )
        return [dict(r) for r in cur.fetchall()]

    def delete_breakdown(self, breakdown_id: str) -> bool:
        cur = self.conn.execute(
            "DELETE FROM breakdowns WHERE project_id=? AND breakdown_id=?",
            (self.project_id, breakdown_id),
        )
        return cur.rowcount > 0

    def set_breakdown_cast(self, breakdown_id: str, character_ids: Iterable[str]) -> None:
        self.conn.execute("DELETE FROM breakdown_cast WHERE breakdown_id=?", (breakdown_id,))
        self.conn.executemany(
            "INSERT OR IGNORE INTO breakdown_cast(breakdown_id, character_id) VALUES(?, ?)",
            [(breakdown_id, cid) for cid in character_ids],
        )

    def set_breakdown_elements(self, breakdown_id: str, element_ids: Iterable[str]) -> None:
        self.conn.execute("DELETE FROM breakdown_elements WHERE breakdown_id=?", (breakdown_id,))
        self.conn.executemany(
            "INSERT OR IGNORE INTO breakdown_elements(breakdown_id, element_id) VALUES(?, ?)",
            [(breakdown_id, eid) for eid in element_ids],
        )

    def get_cast_for_breakdowns(self, breakdown_ids: Iterable[str]) -> Dict[str, List[Dict[str, Any]]]:
        ids = list(breakdown_ids)
        if not ids:
            return {}
        qmarks = ",".join(["?"] * len(ids))
        cur = self.conn.execute(
            f"""
            SELECT bc.breakdown_id, c.* FROM breakdown_cast bc
            JOIN characters c ON c.character_id = bc.character_id
            WHERE bc.breakdown_id IN ({qmarks})
            ORDER BY c.number ASC
            """,
            ids,
        )
        out: Dict[str, List[Dict[str, Any]]] = {bid: [] for bid in ids}
        for r in cur.fetchall():
            d = dict(r)
            out.setdefault(d.pop("breakdown_id"), []).append(d)
        return out

    def get_elements_for_breakdowns(self, breakdown_ids: Iterable[str]) -> Dict[str, List[Dict[str, Any]]]:
        ids = list(breakdown_ids)
        if not ids:
            return {}
        qmarks = ",".join(["?"] * len(ids))
        cur = self.conn.execute(
            f"""
            SELECT be.breakdown_id, e.* FROM breakdown_elements be
            JOIN elements e ON e.element_id = be.element_id
            WHERE be.breakdown_id IN ({qmarks})
            ORDER BY e.name ASC
            """,
            ids,
        )
        out: Dict[str, List[Dict[str, Any]]] = {bid: [] for bid in ids}
        for r in cur.fetchall():
            d = dict(r)
            out.setdefault(d.pop("breakdown_id"), []).append(d)
        return out

    # --- strips ---
    def count_strips(self) -> int:
        cur = self.conn.execute("SELECT COUNT(*) AS n FROM strip_slots WHERE schedule_id=?", (self.schedule_id,))
        return int(cur.fetchone()["n"])

    def max_position(self) -> int:
        cur = self.conn.execute(
            "SELECT COALESCE(MAX(position), 0) AS mx FROM strip_slots WHERE schedule_id=?",
            (self.schedule_id,),
        )
        return int(cur.fetchone()["mx"])

    def get_strip(self, strip_id: str) -> Optional[Dict[str, Any]]:
        cur = self.conn.execute(
            "SELECT * FROM strip_slots WHERE schedule_id=? AND strip_id=?",
            (self.schedule_id, strip_id),
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def get_strip_for_breakdown(self, breakdown_id: str) -> Optional[Dict[str, Any]]:
        cur = self.conn.execute(
            "SELECT * FROM strip_slots WHERE schedule_id=? AND breakdown_id=?",
            (self.schedule_id, breakdown_id),
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def list_strips(self) -> List[Dict[str, Any]]:
        cur = self.conn.execute(
            "SELECT * FROM strip_slots WHERE schedule_id=? ORDER BY position ASC",
            (self.schedule_id,),
        )
        return [dict(r) for r in cur.fetchall()]

    def insert_strip(self, breakdown_id: str, position: int) -> Dict[str, Any]:
        sid = str(uuid4())
        self.conn.execute(
            "INSERT INTO strip_slots(strip_id, schedule_id, breakdown_id, position) VALUES(?, ?, ?, ?)",
            (sid, self.schedule_id, breakdown_id, int(position)),
        )
        return {"strip_id": sid, "schedule_id": self.schedule_id, "breakdown_id": breakdown_id, "position": int(position)}

    def set_strip_position(self, strip_id: str, position: int) -> None:
        self.conn.execute(
            "UPDATE strip_slots SET position=? WHERE schedule_id=? AND strip_id=?",
            (int(position), self.schedule_id, strip_id),
        )

    def shift_positions(self, lo: int, hi: int, delta: int) -> int:
        """
        Add delta to every position in [lo, hi].

        SQLite checks UNIQUE(schedule_id, position) row by row, so a single
        "position = position + 1" can collide mid-statement. Rows pass through
        negated values instead, which are distinct and never clash with 1..N.
        """
        if hi < lo:
            return 0
        cur = self.conn.execute(
            "UPDATE strip_slots SET position = -(position + ?) WHERE schedule_id=? AND position BETWEEN ? AND ?",
            (int(delta), self.schedule_id, int(lo), int(hi)),
        )
        self.conn.execute(
            "UPDATE strip_slots SET position = -position WHERE schedule_id=? AND position < 0",
            (self.schedule_id,),
        )
        return cur.rowcount

    def delete_strip(self, strip_id: str) -> bool:
        cur = self.conn.execute(
            "DELETE FROM strip_slots WHERE schedule_id=? AND strip_id=?",
            (self.schedule_id, strip_id),
        )
        return cur.rowcount > 0

    # --- day breaks ---
    def get_day_break(self, day_break_id: str) -> Optional[Dict[str, Any]]:
        cur = self.conn.execute(
            "SELECT * FROM day_breaks WHERE schedule_id=? AND day_break_id=?",
            (self.schedule_id, day_break_id),
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def get_day_break_at(self, after_position: int) -> Optional[Dict[str, Any]]:
        cur = self.conn.execute(
            "SELECT * FROM day_breaks WHERE schedule_id=? AND after_position=?",
            (self.schedule_id, int(after_position)),
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def list_day_breaks(self) -> List[Dict[str, Any]]:
        cur = self.conn.execute(
            "SELECT * FROM day_breaks WHERE schedule_id=? ORDER BY after_position ASC",
            (self.schedule_id,),
        )
        return [dict(r) for r in cur.fetchall()]

    def max_day_number(self) -> int:
        cur = self.conn.execute(
            "SELECT COALESCE(MAX(day_number), 0) AS mx FROM day_breaks WHERE schedule_id=?",
            (self.schedule_id,),
        )
        return int(cur.fetchone()["mx"])

    def insert_day_break(self, after_position: int, day_number: int, notes: Optional[str] = None) -> Dict[str, Any]:
        dbid = str(uuid4())
        self.conn.execute(
            "INSERT INTO day_breaks(day_break_id, schedule_id, after_position, day_number, notes) VALUES(?, ?, ?, ?, ?)",
            (dbid, self.schedule_id, int(after_position), int(day_number), notes),
        )
        return {
            "day_break_id": dbid,
            "schedule_id": self.schedule_id,
            "after_position": int(after_position),
            "day_number": int(day_number),
            "notes": notes,
        }

    def set_day_number(self, day_break_id: str, day_number: int) -> None:
        self.conn.execute(
            "UPDATE day_breaks SET day_number=? WHERE schedule_id=? AND day_break_id=?",
            (int(day_number), self.schedule_id, day_break_id),
        )

    def delete_day_break(self, day_break_id: str) -> bool:
        cur = self.conn.execute(
            "DELETE FROM day_breaks WHERE schedule_id=? AND day_break_id=?",
            (self.schedule_id, day_break_id),
        )
        return cur.rowcount > 0

    # --- banners ---
    def insert_banner(self, after_position: int, label: str, banner_type: str) -> Dict[str, Any]:
        bid = str(uuid4())
        self.conn.execute(
            "INSERT INTO banners(banner_id, schedule_id, after_position, label, banner_type, created_at) VALUES(?, ?, ?, ?, ?, ?)",
            (bid, self.schedule_id, int(after_position), label, banner_type, self._now()),
        )
        return {
            "banner_id": bid,
            "schedule_id": self.schedule_id,
            "after_position": int(after_position),
            "label": label,
            "banner_type": banner_type,
        }

    def list_banners(self) -> List[Dict[str, Any]]:
        cur = self.conn.execute(
            "SELECT * FROM banners WHERE schedule_id=? ORDER BY after_position ASC, created_at ASC",
            (self.schedule_id,),
        )
        return [dict(r) for r in cur.fetchall()]

    def delete_banner(self, banner_id: str) -> bool:
        cur = self.conn.execute(
            "DELETE FROM banners WHERE schedule_id=? AND banner_id=?",
            (self.schedule_id, banner_id),
        )
        return cur.rowcount > 0
