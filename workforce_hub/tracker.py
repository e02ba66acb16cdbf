from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable
from zoneinfo import ZoneInfo

import httpx

from .api import AttendanceApiError, AttendanceService
from .db import SessionStore
from .models import (
    AttendanceRecord,
    BreakType,
    ClockRequest,
    Notification,
    NotificationSeverity,
    TrackerState,
    WorkSessionState,
)
from .timers import TimerFactory, TimerHandle, loop_timer
from .timeutil import (
    format_duration_ms,
    format_hours,
    local_clock_display,
    millis_between,
    resolve_clock_in_instant,
    utc_now,
)

ALREADY_CLOCKED_IN = "already clocked in"
ZERO_DISPLAY = "00:00:00"

REMOTE_ERRORS = (AttendanceApiError, httpx.HTTPError)

Listener = Callable[["WorkSessionTracker"], None]


class WorkSessionTracker:
    """Clock-in, break and worked-time bookkeeping for one employee.

    All durations shown to the user are re-derived from the persisted
    absolute timestamps on every tick, so a restart or a late tick never
    introduces drift. Remote failures end up in ``error``; nothing raised by
    the attendance service escapes the public coroutines.
    """

    def __init__(
        self,
        service: AttendanceService,
        store: SessionStore,
        tz: ZoneInfo,
        *,
        clock: Callable[[], datetime] = utc_now,
        timer_factory: TimerFactory = loop_timer,
        logger: logging.Logger | None = None,
    ) -> None:
        self.service = service
        self.store = store
        self.tz = tz
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self._timer_factory = timer_factory

        self.is_loading = False
        self.error: str | None = None
        self.notification: Notification | None = None
        self.show_notification = False
        self.attendance_record: AttendanceRecord | None = None

        self._work_timer: TimerHandle | None = None
        self._break_timer: TimerHandle | None = None
        self._listeners: list[Listener] = []

        self.state = store.load()
        if self.state.breaks_taken and self.state.clock_in_date != self._today():
            # Fixed breaks are allowed once per day.
            self.state.breaks_taken.clear()
            self.store.save(self.state)

    # -- observable surface -------------------------------------------------

    @property
    def tracker_state(self) -> TrackerState:
        if not self.state.is_clocked_in:
            return TrackerState.NOT_CLOCKED_IN
        if self.state.active_break is not None:
            return TrackerState.ON_BREAK
        return TrackerState.WORKING

    @property
    def is_clocked_in(self) -> bool:
        return self.state.is_clocked_in

    @property
    def active_break(self) -> BreakType | None:
        return self.state.active_break

    @property
    def accumulated_break_ms(self) -> int:
        return self.state.accumulated_break_ms

    @property
    def attendance_record_id(self) -> str | None:
        return self.state.attendance_record_id

    @property
    def hours_worked(self) -> str:
        return self.state.hours_worked

    @property
    def break_time(self) -> str:
        return self.state.break_time

    @property
    def current_time(self) -> str:
        return self.state.current_time

    @property
    def clock_in_display(self) -> str | None:
        return self.state.clock_in_display

    @property
    def breaks_taken(self) -> frozenset[BreakType]:
        return frozenset(self.state.breaks_taken)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def elapsed_work_ms(self, now: datetime | None = None) -> int:
        """Net worked time: time since clock-in minus completed breaks."""
        if not self.state.is_clocked_in or self.state.clock_in_at is None:
            return 0
        current = now or self.clock()
        elapsed = millis_between(self.state.clock_in_at, current) - self.state.accumulated_break_ms
        return max(0, elapsed)

    def dismiss_notification(self) -> None:
        self.show_notification = False
        self._publish()

    # -- lifecycle ----------------------------------------------------------

    def resume(self) -> None:
        """Restart whichever timer the persisted state implies."""
        state = self.tracker_state
        if state is TrackerState.ON_BREAK:
            self._start_break_timer()
        elif state is TrackerState.WORKING and self.state.clock_in_at is not None:
            self._start_work_timer()

        if state is not TrackerState.NOT_CLOCKED_IN:
            self.logger.info("Resumed session in state %s", state.value)

    async def start(self) -> None:
        self.resume()
        await self.check_today_attendance()

    def close(self) -> None:
        self._cancel_timers()

    def clear_state(self) -> None:
        """Forget the local session entirely (used on logout)."""
        self._cancel_timers()
        self.state = WorkSessionState()
        self.attendance_record = None
        self.error = None
        self._changed()
        self.logger.info("Cleared local work session")

    # -- remote operations --------------------------------------------------

    async def check_today_attendance(self) -> None:
        self._begin_remote()
        try:
            record = await self.service.get_today_attendance()
        except REMOTE_ERRORS as exc:
            self._set_error(f"Failed to check attendance: {exc}")
            return
        except Exception as exc:
            self.logger.exception("Unexpected failure while checking attendance")
            self._set_error(f"Failed to check attendance: {exc}")
            return
        finally:
            self._end_remote()

        self.attendance_record = record
        if record is None:
            self._adopt_no_record()
        elif record.is_open:
            self._adopt_open_record(record)
        else:
            self._adopt_closed_record(record)
        self._changed()

    async def clock_in(self) -> None:
        self._begin_remote()
        try:
            employee_id = await self._employee_id()
            if employee_id is None:
                return

            try:
                record = await self.service.clock_in(ClockRequest(employee_id=employee_id))
            except Exception as exc:
                if _is_already_clocked_in(exc):
                    self._notify(
                        "Already Clocked In",
                        "You have already clocked in today. Please clock out first before clocking in again.",
                        NotificationSeverity.WARNING,
                    )
                    self.logger.info("Clock-in rejected: already clocked in")
                    return
                if not isinstance(exc, REMOTE_ERRORS):
                    self.logger.exception("Unexpected failure while clocking in")
                self._set_error(f"Failed to clock in: {exc}")
                return
        finally:
            self._end_remote()

        now = self.clock()
        self._cancel_timers()
        state = self.state
        state.is_clocked_in = True
        state.clock_in_at = now
        state.clock_in_display = record.clock_in_time or local_clock_display(now, self.tz)
        state.attendance_record_id = record.record_id
        state.accumulated_break_ms = 0
        state.clear_break()
        state.break_time = ZERO_DISPLAY
        state.hours_worked = ZERO_DISPLAY
        state.breaks_taken.clear()
        state.clock_in_date = self._today(now)
        self.attendance_record = record

        self._start_work_timer()
        self._notify("Clock In Successful", "You have successfully clocked in for today.", NotificationSeverity.SUCCESS)
        self._changed()
        self.logger.info("Clocked in: record=%s", record.record_id)

    async def clock_out(self) -> None:
        if not self.state.attendance_record_id:
            self._set_error("No active attendance record found")
            self._publish()
            return

        self._begin_remote()
        try:
            employee_id = await self._employee_id()
            if employee_id is None:
                return

            self._cancel_timers()
            if self.state.active_break is not None:
                self._fold_break(self.clock())
            self._changed()

            request = ClockRequest(employee_id=employee_id, remarks="PRESENT", status="CLOCKED_OUT")
            try:
                record = await self.service.clock_out(request)
            except Exception as exc:
                if not isinstance(exc, REMOTE_ERRORS):
                    self.logger.exception("Unexpected failure while clocking out")
                self._set_error(f"Failed to clock out: {exc}")
                # The server still has the session open; keep counting.
                self.resume()
                return
        finally:
            self._end_remote()

        # A break may have been started while the request was in flight.
        self._cancel_timers()
        if self.state.active_break is not None:
            self._fold_break(self.clock())

        state = self.state
        state.is_clocked_in = False
        state.hours_worked = format_hours(record.total_hours)
        self._reset_session_fields()
        self.attendance_record = record

        self._notify("Clock Out Successful", "You have successfully clocked out for today.", NotificationSeverity.SUCCESS)
        self._changed()
        self.logger.info("Clocked out: record=%s total_hours=%s", record.record_id, record.total_hours)

    # -- breaks -------------------------------------------------------------

    def start_break(self, break_type: BreakType | str) -> None:
        kind = BreakType.parse(break_type)
        if self.tracker_state is not TrackerState.WORKING:
            self.logger.debug("Ignoring break start while %s", self.tracker_state.value)
            return

        if kind.once_per_day and kind in self.state.breaks_taken:
            self._notify(
                "Break Already Taken",
                f"You have already taken your {kind.value.lower()} today.",
                NotificationSeverity.WARNING,
            )
            self._publish()
            return

        self._cancel_work_timer()
        now = self.clock()
        self.state.active_break = kind
        self.state.break_started_at = now
        self.state.break_time = format_duration_ms(int(kind.initial_display.total_seconds()) * 1000)
        self._start_break_timer()
        self._changed()
        self.logger.info("Break started: %s", kind.value)

    def end_break(self) -> None:
        if self.state.active_break is None or self.state.break_started_at is None:
            return

        now = self.clock()
        self._fold_break(now)
        self._refresh_work_display(now)
        self._start_work_timer()
        self._changed()

    def _auto_end_break(self, now: datetime) -> None:
        kind = self.state.active_break
        if kind is None:
            return

        self._fold_break(now, cap_ms=_duration_ms(kind))
        self._refresh_work_display(now)
        self._start_work_timer()
        self._notify("Break Over", f"Your {kind.value.lower()} has ended.", NotificationSeverity.INFO)
        self._changed()

    def _fold_break(self, now: datetime, *, cap_ms: int | None = None) -> None:
        """Close the active break and add its length to the session total."""
        kind = self.state.active_break
        started = self.state.break_started_at
        if kind is None or started is None:
            return

        elapsed = max(0, millis_between(started, now))
        if cap_ms is not None:
            elapsed = min(elapsed, cap_ms)

        self.state.accumulated_break_ms += elapsed
        if kind.once_per_day:
            self.state.breaks_taken.add(kind)
        self.state.break_time = format_duration_ms(self.state.accumulated_break_ms)
        self.state.clear_break()
        self._cancel_break_timer()
        self.logger.info("Break ended: %s after %sms", kind.value, elapsed)

    # -- timers -------------------------------------------------------------

    def _work_tick(self) -> None:
        if self.tracker_state is not TrackerState.WORKING:
            return
        self._refresh_work_display(self.clock())
        self._changed()

    def _break_tick(self) -> None:
        if self.tracker_state is not TrackerState.ON_BREAK:
            return

        now = self.clock()
        kind = self.state.active_break
        started = self.state.break_started_at
        self.state.current_time = local_clock_display(now, self.tz)

        nominal = _duration_ms(kind)
        if nominal is None:
            self.state.break_time = format_duration_ms(millis_between(started, now))
            self._changed()
            return

        remaining = nominal - millis_between(started, now)
        if remaining <= 0:
            self.state.break_time = ZERO_DISPLAY
            self._changed()
            self._auto_end_break(now)
            return

        self.state.break_time = format_duration_ms(remaining)
        self._changed()

    def _refresh_work_display(self, now: datetime) -> None:
        self.state.hours_worked = format_duration_ms(self.elapsed_work_ms(now))
        self.state.current_time = local_clock_display(now, self.tz)

    def _start_work_timer(self) -> None:
        self._cancel_break_timer()
        self._cancel_work_timer()
        self._work_timer = self._timer_factory(self._work_tick, "work")
        self._work_timer.start()

    def _start_break_timer(self) -> None:
        self._cancel_work_timer()
        self._cancel_break_timer()
        self._break_timer = self._timer_factory(self._break_tick, "break")
        self._break_timer.start()

    def _cancel_work_timer(self) -> None:
        if self._work_timer is not None:
            self._work_timer.cancel()
            self._work_timer = None

    def _cancel_break_timer(self) -> None:
        if self._break_timer is not None:
            self._break_timer.cancel()
            self._break_timer = None

    def _cancel_timers(self) -> None:
        self._cancel_work_timer()
        self._cancel_break_timer()

    # -- reconciliation -----------------------------------------------------

    def _adopt_no_record(self) -> None:
        self._cancel_timers()
        self.state.is_clocked_in = False
        self.state.hours_worked = ZERO_DISPLAY
        self.state.break_time = ZERO_DISPLAY
        self._reset_session_fields()
        self.logger.info("No attendance record for today")

    def _adopt_open_record(self, record: AttendanceRecord) -> None:
        now = self.clock()
        state = self.state
        same_session = state.is_clocked_in and state.attendance_record_id == record.record_id

        clock_in_at = resolve_clock_in_instant(record.clock_in_time, record.date, self.tz, now)
        if clock_in_at is None:
            self.logger.warning("Unreadable server clock-in time %r; using now", record.clock_in_time)
            clock_in_at = now

        if not same_session:
            state.accumulated_break_ms = 0
            state.clear_break()

        state.is_clocked_in = True
        state.clock_in_at = clock_in_at
        state.clock_in_display = record.clock_in_time or ZERO_DISPLAY
        state.attendance_record_id = record.record_id
        state.clock_in_date = self._today(clock_in_at)

        if state.active_break is not None:
            self._start_break_timer()
        else:
            self._refresh_work_display(now)
            self._start_work_timer()
        self.logger.info("Adopted open attendance record %s (clock-in %s)", record.record_id, record.clock_in_time)

    def _adopt_closed_record(self, record: AttendanceRecord) -> None:
        self._cancel_timers()
        self.state.is_clocked_in = False
        self.state.hours_worked = format_hours(record.total_hours)
        self._reset_session_fields()
        self.state.clock_in_display = record.clock_in_time
        self.logger.info("Today's attendance record %s is already closed", record.record_id)

    def _reset_session_fields(self) -> None:
        state = self.state
        state.clock_in_at = None
        state.attendance_record_id = None
        state.accumulated_break_ms = 0
        state.clear_break()
        state.breaks_taken.clear()
        state.clock_in_date = None

    # -- plumbing -----------------------------------------------------------

    async def _employee_id(self) -> str | None:
        try:
            profile = await self.service.get_profile()
        except Exception as exc:
            if not isinstance(exc, REMOTE_ERRORS):
                self.logger.exception("Unexpected failure while loading the employee profile")
            self._set_error(f"Failed to get employee profile: {exc}")
            return None
        return profile.employee_id

    def _begin_remote(self) -> None:
        self.is_loading = True
        self.error = None
        self._publish()

    def _end_remote(self) -> None:
        self.is_loading = False
        self._publish()

    def _set_error(self, message: str) -> None:
        self.error = message
        self.logger.warning(message)

    def _notify(self, title: str, message: str, severity: NotificationSeverity) -> None:
        self.notification = Notification(title=title, message=message, severity=severity)
        self.show_notification = True

    def _today(self, now: datetime | None = None) -> date:
        return (now or self.clock()).astimezone(self.tz).date()

    def _changed(self) -> None:
        self.store.save(self.state)
        self._publish()

    def _publish(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                self.logger.exception("Tracker listener failed")


def _duration_ms(kind: BreakType | None) -> int | None:
    if kind is None or kind.duration is None:
        return None
    return int(kind.duration.total_seconds()) * 1000


def _is_already_clocked_in(exc: Exception) -> bool:
    if isinstance(exc, AttendanceApiError):
        return exc.status_code == httpx.codes.BAD_REQUEST and ALREADY_CLOCKED_IN in exc.body.lower()
    return ALREADY_CLOCKED_IN in str(exc).lower()
