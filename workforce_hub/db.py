from __future__ import annotations

import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path

from .models import BreakType, WorkSessionState
from .timeutil import parse_iso_utc

SESSION_ROW_ID = 1


class SessionStore:
    """Thin SQLite persistence for the single work-session record."""

    def __init__(self, db_path: str | Path) -> None:
        self._conn = sqlite3.connect(str(db_path))
        self._conn.row_factory = sqlite3.Row
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._conn.close()
        self._closed = True

    def initialize(self) -> None:
        # work_session: one row holding the whole tracker state, replaced atomically on save.
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS work_session (
              id INTEGER PRIMARY KEY CHECK (id = 1),
              is_clocked_in INTEGER NOT NULL DEFAULT 0,
              clock_in_at_utc TEXT,
              clock_in_display TEXT,
              attendance_record_id TEXT,
              accumulated_break_ms INTEGER NOT NULL DEFAULT 0,
              active_break TEXT,
              break_started_at_utc TEXT,
              current_time_display TEXT NOT NULL DEFAULT '00:00:00',
              hours_worked_display TEXT NOT NULL DEFAULT '00:00:00',
              break_time_display TEXT NOT NULL DEFAULT '00:00:00',
              breaks_taken TEXT NOT NULL DEFAULT '',
              clock_in_date TEXT
            );
            """
        )
        self._conn.commit()

    def load(self) -> WorkSessionState:
        row = self._conn.execute(
            "SELECT * FROM work_session WHERE id = ?",
            (SESSION_ROW_ID,),
        ).fetchone()
        if row is None:
            return WorkSessionState()

        state = WorkSessionState(
            is_clocked_in=bool(row["is_clocked_in"]),
            clock_in_at=parse_iso_utc(row["clock_in_at_utc"]),
            clock_in_display=row["clock_in_display"],
            attendance_record_id=row["attendance_record_id"],
            accumulated_break_ms=max(0, int(row["accumulated_break_ms"])),
            active_break=BreakType(row["active_break"]) if row["active_break"] else None,
            break_started_at=parse_iso_utc(row["break_started_at_utc"]),
            current_time=row["current_time_display"],
            hours_worked=row["hours_worked_display"],
            break_time=row["break_time_display"],
            breaks_taken=_decode_breaks(row["breaks_taken"]),
            clock_in_date=date.fromisoformat(row["clock_in_date"]) if row["clock_in_date"] else None,
        )

        # A break only exists inside a session, and needs both its type and start.
        if not state.is_clocked_in or state.active_break is None or state.break_started_at is None:
            state.clear_break()
        return state

    def save(self, state: WorkSessionState) -> None:
        self._conn.execute(
            """
            INSERT INTO work_session (
              id, is_clocked_in, clock_in_at_utc, clock_in_display, attendance_record_id,
              accumulated_break_ms, active_break, break_started_at_utc,
              current_time_display, hours_worked_display, break_time_display,
              breaks_taken, clock_in_date
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id)
            DO UPDATE SET
              is_clocked_in=excluded.is_clocked_in,
              clock_in_at_utc=excluded.clock_in_at_utc,
              clock_in_display=excluded.clock_in_display,
              attendance_record_id=excluded.attendance_record_id,
              accumulated_break_ms=excluded.accumulated_break_ms,
              active_break=excluded.active_break,
              break_started_at_utc=excluded.break_started_at_utc,
              current_time_display=excluded.current_time_display,
              hours_worked_display=excluded.hours_worked_display,
              break_time_display=excluded.break_time_display,
              breaks_taken=excluded.breaks_taken,
              clock_in_date=excluded.clock_in_date
            """,
            (
                SESSION_ROW_ID,
                int(state.is_clocked_in),
                _to_utc_text(state.clock_in_at),
                state.clock_in_display,
                state.attendance_record_id,
                int(state.accumulated_break_ms),
                state.active_break.value if state.active_break else None,
                _to_utc_text(state.break_started_at),
                state.current_time,
                state.hours_worked,
                state.break_time,
                _encode_breaks(state.breaks_taken),
                state.clock_in_date.isoformat() if state.clock_in_date else None,
            ),
        )
        self._conn.commit()

    def clear(self) -> None:
        self._conn.execute("DELETE FROM work_session")
        self._conn.commit()


def _to_utc_text(value: datetime | None) -> str | None:
    """Normalize a timezone-aware datetime to UTC ISO text for storage."""
    if value is None:
        return None
    if value.tzinfo is None:
        raise ValueError("Datetime must be timezone-aware")
    return value.astimezone(timezone.utc).isoformat()


def _encode_breaks(breaks: set[BreakType]) -> str:
    return ",".join(sorted(item.name for item in breaks))


def _decode_breaks(value: str | None) -> set[BreakType]:
    if not value:
        return set()
    return {BreakType[name] for name in value.split(",") if name in BreakType.__members__}
