"""
Strip-board scheduling for film production projects.

- SQLite is the source of truth (one DB per project)
- Shoot days, page totals, dates and Day Out of Days are derived on read
"""

from .service import ScheduleService

__all__ = ["ScheduleService"]
