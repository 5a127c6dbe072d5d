from __future__ import annotations

import logging
import sqlite3
from typing import Any, Dict, List, Tuple

from .errors import ConflictOnConcurrentWrite, InvalidArgument, NotFound, require_int
from .store import ProjectScheduleStore

logger = logging.getLogger(__name__)


class StripSequencer:
    """
    Dense shoot order of strips.

    Positions of N strips are always exactly 1..N. Every method that moves a
    strip shifts its neighbours in the same transaction as the move itself.
    """

    def __init__(self, store: ProjectScheduleStore):
        self.store = store

    def reorder(self, strip_id: str, new_position: int) -> Dict[str, Any]:
        new_position = require_int("new_position", new_position)

        with self.store.transaction():
            strip = self.store.get_strip(strip_id)
            if not strip:
                raise NotFound(f"strip {strip_id} not found")
            count = self.store.count_strips()
            if not 1 <= new_position <= count:
                raise InvalidArgument(f"new_position must be within [1, {count}], got {new_position}")

            old_position = int(strip["position"])
            if new_position == old_position:
                return strip

            # Park the moved strip outside 1..N while its neighbours shift.
            self.store.set_strip_position(strip_id, 0)
            if new_position > old_position:
                self.store.shift_positions(old_position + 1, new_position, -1)
            else:
                self.store.shift_positions(new_position, old_position - 1, +1)
            self.store.set_strip_position(strip_id, new_position)
            self.store.bump_version()

        logger.info("moved strip %s from %s to %s", strip_id, old_position, new_position)
        return {**strip, "position": new_position}

    def append(self, breakdown_id: str) -> Dict[str, Any]:
        with self.store.transaction():
            try:
                strip = self.store.insert_strip(breakdown_id, self.store.max_position() + 1)
            except sqlite3.IntegrityError as e:
                raise ConflictOnConcurrentWrite(f"could not append strip for scene {breakdown_id}") from e
            self.store.bump_version()
        return strip

    def remove(self, strip_id: str) -> Dict[str, Any]:
        with self.store.transaction():
            strip = self.store.get_strip(strip_id)
            if not strip:
                raise NotFound(f"strip {strip_id} not found")
            position = int(strip["position"])
            self.store.delete_strip(strip_id)
            self.store.shift_positions(position + 1, self.store.max_position(), -1)
            self.store.bump_version()
        logger.info("removed strip %s at position %s", strip_id, position)
        return strip

    def positions(self) -> List[Tuple[str, int]]:
        return [(r["strip_id"], int(r["position"])) for r in self.store.list_strips()]
