from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from workforce_hub.api import AttendanceApiError
from workforce_hub.db import SessionStore
from workforce_hub.models import AttendanceRecord, ClockRequest, EmployeeProfile
from workforce_hub.tracker import WorkSessionTracker

START = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, hour: int, minute: int = 0, second: int = 0) -> datetime:
        self.now = self.now.replace(hour=hour, minute=minute, second=second, microsecond=0)
        return self.now


class ManualTimer:
    def __init__(self, callback, name: str) -> None:
        self.name = name
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return self.started and not self.cancelled


class ManualTimers:
    """Timer factory whose ticks are fired explicitly by the test."""

    def __init__(self) -> None:
        self.created: list[ManualTimer] = []

    def __call__(self, callback, name: str) -> ManualTimer:
        timer = ManualTimer(callback, name)
        self.created.append(timer)
        return timer

    def active(self, name: str | None = None) -> list[ManualTimer]:
        return [timer for timer in self.created if timer.active and (name is None or timer.name == name)]

    def active_names(self) -> list[str]:
        return [timer.name for timer in self.active()]

    def fire(self, name: str) -> None:
        for timer in self.active(name):
            if timer.active:
                timer.callback()


class FakeAttendanceService:
    """In-memory stand-in for the Workforce Hub attendance endpoints."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.calls: list[str] = []
        self.requests: list[ClockRequest] = []
        self.profile = EmployeeProfile(employee_id="EMP-001", first_name="Ada", last_name="Lovelace")
        self.today: AttendanceRecord | None = None
        self.total_hours = 8.0
        self.profile_error: Exception | None = None
        self.today_error: Exception | None = None
        self.clock_in_error: Exception | None = None
        self.clock_out_error: Exception | None = None
        self._next_id = 1

    async def get_profile(self) -> EmployeeProfile:
        self.calls.append("get_profile")
        if self.profile_error is not None:
            raise self.profile_error
        return self.profile

    async def get_today_attendance(self) -> AttendanceRecord | None:
        self.calls.append("get_today_attendance")
        if self.today_error is not None:
            raise self.today_error
        return self.today

    async def clock_in(self, request: ClockRequest) -> AttendanceRecord:
        self.calls.append("clock_in")
        self.requests.append(request)
        if self.clock_in_error is not None:
            raise self.clock_in_error
        if self.today is not None and self.today.is_open:
            raise AttendanceApiError(400, "Employee already clocked in for today")

        now = self.clock()
        self.today = AttendanceRecord(
            record_id=f"ATT-{self._next_id}",
            employee_id=request.employee_id,
            date=now.date().isoformat(),
            clock_in_time=now.strftime("%H:%M:%S"),
            status="PRESENT",
        )
        self._next_id += 1
        return self.today

    async def clock_out(self, request: ClockRequest) -> AttendanceRecord:
        self.calls.append("clock_out")
        self.requests.append(request)
        if self.clock_out_error is not None:
            raise self.clock_out_error
        if self.today is None or not self.today.is_open:
            raise AttendanceApiError(400, "No open attendance record")

        self.today = replace(
            self.today,
            clock_out_time=self.clock().strftime("%H:%M:%S"),
            total_hours=self.total_hours,
        )
        return self.today


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture
def service(clock: FakeClock) -> FakeAttendanceService:
    return FakeAttendanceService(clock)


@pytest.fixture
def store():
    session_store = SessionStore(":memory:")
    session_store.initialize()
    yield session_store
    session_store.close()


@pytest.fixture
def make_tracker(service, clock, timers):
    def factory(store: SessionStore) -> WorkSessionTracker:
        return WorkSessionTracker(
            service=service,
            store=store,
            tz=ZoneInfo("UTC"),
            clock=clock,
            timer_factory=timers,
        )

    return factory


@pytest.fixture
def tracker(make_tracker, store) -> WorkSessionTracker:
    return make_tracker(store)
