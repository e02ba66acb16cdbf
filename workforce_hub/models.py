from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

DEFAULT_BREAK_DISPLAY = timedelta(minutes=15)


class BreakType(Enum):
    MORNING = "Morning Break"
    LUNCH = "Lunch Break"
    AFTERNOON = "Afternoon Break"
    OTHER = "Other"

    @property
    def duration(self) -> timedelta | None:
        """Nominal length of the break; None means the break counts up."""
        return _BREAK_DURATIONS.get(self)

    @property
    def initial_display(self) -> timedelta:
        return self.duration or DEFAULT_BREAK_DISPLAY

    @property
    def once_per_day(self) -> bool:
        return self is not BreakType.OTHER

    @classmethod
    def parse(cls, value: str | BreakType) -> BreakType:
        if isinstance(value, BreakType):
            return value

        key = value.strip().lower()
        for member in cls:
            if key in (member.value.lower(), member.name.lower()):
                return member
        return cls.OTHER


_BREAK_DURATIONS = {
    BreakType.MORNING: timedelta(minutes=15),
    BreakType.LUNCH: timedelta(minutes=60),
    BreakType.AFTERNOON: timedelta(minutes=60),
}


class TrackerState(Enum):
    NOT_CLOCKED_IN = "not_clocked_in"
    WORKING = "working"
    ON_BREAK = "on_break"


class NotificationSeverity(Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"


@dataclass(frozen=True, slots=True)
class Notification:
    title: str
    message: str
    severity: NotificationSeverity


@dataclass(slots=True)
class WorkSessionState:
    """Everything the tracker persists between restarts."""

    is_clocked_in: bool = False
    clock_in_at: datetime | None = None
    clock_in_display: str | None = None
    attendance_record_id: str | None = None
    accumulated_break_ms: int = 0
    active_break: BreakType | None = None
    break_started_at: datetime | None = None
    current_time: str = "00:00:00"
    hours_worked: str = "00:00:00"
    break_time: str = "00:00:00"
    breaks_taken: set[BreakType] = field(default_factory=set)
    clock_in_date: date | None = None

    def copy(self) -> WorkSessionState:
        return WorkSessionState(
            is_clocked_in=self.is_clocked_in,
            clock_in_at=self.clock_in_at,
            clock_in_display=self.clock_in_display,
            attendance_record_id=self.attendance_record_id,
            accumulated_break_ms=self.accumulated_break_ms,
            active_break=self.active_break,
            break_started_at=self.break_started_at,
            current_time=self.current_time,
            hours_worked=self.hours_worked,
            break_time=self.break_time,
            breaks_taken=set(self.breaks_taken),
            clock_in_date=self.clock_in_date,
        )

    def clear_break(self) -> None:
        self.active_break = None
        self.break_started_at = None


@dataclass(frozen=True, slots=True)
class EmployeeProfile:
    employee_id: str
    first_name: str = ""
    last_name: str = ""
    id_number: str | None = None
    email: str | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> EmployeeProfile:
        employee_id = data.get("employeeId")
        if not employee_id:
            raise ValueError("Employee ID not found in profile")
        return cls(
            employee_id=str(employee_id),
            first_name=data.get("firstName") or "",
            last_name=data.get("lastName") or "",
            id_number=data.get("idNumber"),
            email=data.get("email"),
        )


@dataclass(frozen=True, slots=True)
class AttendanceRecord:
    record_id: str
    employee_id: str | None = None
    date: str | None = None
    clock_in_time: str | None = None
    clock_out_time: str | None = None
    total_hours: float | None = None
    status: str | None = None
    remarks: str | None = None

    @property
    def is_open(self) -> bool:
        return self.clock_out_time is None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> AttendanceRecord:
        record_id = data.get("attendanceId") or data.get("recordId")
        if not record_id:
            raise ValueError("Attendance record has no identifier")

        total_hours = data.get("totalHours")
        return cls(
            record_id=str(record_id),
            employee_id=data.get("employeeId"),
            date=data.get("date"),
            clock_in_time=data.get("clockInTime"),
            clock_out_time=data.get("clockOutTime"),
            total_hours=float(total_hours) if total_hours is not None else None,
            status=data.get("status"),
            remarks=data.get("remarks"),
        )


@dataclass(frozen=True, slots=True)
class ClockRequest:
    employee_id: str
    remarks: str | None = None
    status: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    def to_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"employeeId": self.employee_id}
        if self.remarks is not None:
            payload["remarks"] = self.remarks
        if self.status is not None:
            payload["status"] = self.status
        if self.latitude is not None:
            payload["latitude"] = self.latitude
        if self.longitude is not None:
            payload["longitude"] = self.longitude
        return payload
