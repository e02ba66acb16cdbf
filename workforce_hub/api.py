from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from .models import AttendanceRecord, ClockRequest, EmployeeProfile

EMPLOYEE_PROFILE = "/api/employee/profile"
EMPLOYEE_ATTENDANCE = "/api/employee/attendance"
DEFAULT_TIMEOUT_SECONDS = 30.0

logger = logging.getLogger(__name__)


class AttendanceApiError(Exception):
    """A non-2xx response or an unreadable body from the Workforce Hub API."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"HTTP {status_code}: {body}" if body else f"HTTP {status_code}")
        self.status_code = status_code
        self.body = body


class AttendanceService(Protocol):
    async def get_profile(self) -> EmployeeProfile: ...

    async def get_today_attendance(self) -> AttendanceRecord | None: ...

    async def clock_in(self, request: ClockRequest) -> AttendanceRecord: ...

    async def clock_out(self, request: ClockRequest) -> AttendanceRecord: ...


class AttendanceClient:
    """Employee-side attendance and profile endpoints over httpx."""

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
            event_hooks={"request": [_log_request], "response": [_log_response]},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def get_profile(self) -> EmployeeProfile:
        response = await self._client.get(EMPLOYEE_PROFILE)
        data = _json_body(response)
        try:
            return EmployeeProfile.from_json(data)
        except ValueError as exc:
            raise AttendanceApiError(response.status_code, str(exc)) from exc

    async def get_today_attendance(self) -> AttendanceRecord | None:
        response = await self._client.get(f"{EMPLOYEE_ATTENDANCE}/today")
        # The backend answers "no record yet" with 404 or an empty or null 2xx.
        if response.status_code in (httpx.codes.NOT_FOUND, httpx.codes.NO_CONTENT):
            return None
        if response.is_success and response.content.strip() in (b"", b"null"):
            return None
        return _record(response)

    async def clock_in(self, request: ClockRequest) -> AttendanceRecord:
        response = await self._client.post(f"{EMPLOYEE_ATTENDANCE}/clock-in", json=request.to_json())
        return _record(response)

    async def clock_out(self, request: ClockRequest) -> AttendanceRecord:
        response = await self._client.post(f"{EMPLOYEE_ATTENDANCE}/clock-out", json=request.to_json())
        return _record(response)


def _record(response: httpx.Response) -> AttendanceRecord:
    data = _json_body(response)
    try:
        return AttendanceRecord.from_json(data)
    except (TypeError, ValueError) as exc:
        raise AttendanceApiError(response.status_code, f"Malformed attendance record: {exc}") from exc


def _json_body(response: httpx.Response) -> dict[str, Any]:
    if not response.is_success:
        raise AttendanceApiError(response.status_code, response.text)

    try:
        data = response.json()
    except ValueError as exc:
        raise AttendanceApiError(response.status_code, f"Malformed response body: {exc}") from exc

    if not isinstance(data, dict):
        raise AttendanceApiError(response.status_code, "Malformed response body: expected a JSON object")
    return data


async def _log_request(request: httpx.Request) -> None:
    logger.debug("--> %s %s", request.method, request.url)


async def _log_response(response: httpx.Response) -> None:
    await response.aread()
    logger.debug(
        "<-- %s %s %s (%d bytes)",
        response.status_code,
        response.request.method,
        response.request.url,
        len(response.content),
    )
