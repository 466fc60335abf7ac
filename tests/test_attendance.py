from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import httpx
import pytest
from fastapi import status

from backoffice.models.models import Attendance
from backoffice.services.attendance_service import split_hours
from backoffice.utils.exceptions import ValidationError


def test_split_hours_with_break():
    total, regular, overtime = split_hours(
        datetime(2024, 1, 15, 8, 0),
        datetime(2024, 1, 15, 18, 0),
        datetime(2024, 1, 15, 12, 0),
        datetime(2024, 1, 15, 13, 0),
    )

    assert (total, regular, overtime) == (
        Decimal("9.00"),
        Decimal("8.00"),
        Decimal("1.00"),
    )


def test_split_hours_mixed_timezones():
    manila = timezone(timedelta(hours=8))

    total, regular, overtime = split_hours(
        datetime(2024, 1, 15, 16, 0, tzinfo=manila),
        datetime(2024, 1, 15, 12, 30),
    )

    assert total == Decimal("4.50")
    assert overtime == Decimal("0.00")


def test_split_hours_rejects_reversed_clock():
    with pytest.raises(ValidationError):
        split_hours(datetime(2024, 1, 15, 17, 0), datetime(2024, 1, 15, 8, 0))


@pytest.mark.asyncio
async def test_create_attendance_with_hours(client: httpx.AsyncClient, employee_factory):
    employee = await employee_factory("A001")

    response = await client.post(
        "/api/attendance",
        json={
            "employee_id": employee.id,
            "date": "2024-01-15",
            "regular_hours": "8",
            "overtime_hours": "2",
        },
    )
    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["status"] == "PRESENT"
    assert data["total_hours"] == "10.00"

    response = await client.post(
        "/api/attendance",
        json={"employee_id": employee.id, "date": "2024-01-15", "status": "LATE"},
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST

    response = await client.post(
        "/api/attendance",
        json={"employee_id": employee.id, "date": "2024-01-16", "regular_hours": "-1"},
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.asyncio
async def test_create_attendance_from_clock_times(
    client: httpx.AsyncClient, employee_factory
):
    employee = await employee_factory("A001")

    response = await client.post(
        "/api/attendance",
        json={
            "employee_id": employee.id,
            "date": "2024-01-15",
            "clock_in": "2024-01-15T07:00:00",
            "clock_out": "2024-01-15T17:30:00",
        },
    )
    data = response.json()
    assert data["total_hours"] == "10.50"
    assert data["regular_hours"] == "8.00"
    assert data["overtime_hours"] == "2.50"


@pytest.mark.asyncio
async def test_clock_flow_feeds_payroll(client: httpx.AsyncClient, employee_factory):
    employee = await employee_factory("A001", base_salary="17600")

    async def clock(action: str, at: str) -> httpx.Response:
        return await client.post(
            "/api/attendance/clock",
            json={"employee_id": employee.id, "action": action, "timestamp": at},
        )

    response = await clock("break_start", "2024-01-15T12:00:00Z")
    assert response.status_code == status.HTTP_409_CONFLICT

    response = await clock("clock_in", "2024-01-15T08:00:00Z")
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "PRESENT"

    response = await clock("clock_in", "2024-01-15T08:05:00Z")
    assert response.status_code == status.HTTP_409_CONFLICT

    assert (await clock("break_start", "2024-01-15T12:00:00Z")).status_code == 200
    assert (await clock("break_end", "2024-01-15T13:00:00Z")).status_code == 200

    response = await clock("clock_out", "2024-01-15T18:00:00Z")
    data = response.json()
    assert data["total_hours"] == "9.00"
    assert data["regular_hours"] == "8.00"
    assert data["overtime_hours"] == "1.00"

    response = await clock("clock_out", "2024-01-15T19:00:00Z")
    assert response.status_code == status.HTTP_409_CONFLICT

    response = await client.post(
        "/api/payroll/calculate",
        json={
            "employee_id": employee.id,
            "pay_period_start": "2024-01-01",
            "pay_period_end": "2024-01-31",
        },
    )
    payroll = response.json()["payroll"]
    assert payroll["total_work_days"] == 1
    assert payroll["regular_pay"] == "800.00"
    assert payroll["overtime_pay"] == "125.00"
    assert payroll["gross_pay"] == "18525.00"


@pytest.mark.asyncio
async def test_attendance_list_update_delete(client: httpx.AsyncClient, employee_factory):
    first = await employee_factory("A001")
    second = await employee_factory("A002")
    for employee_id, day in ((first.id, "2024-01-15"), (first.id, "2024-02-01"), (second.id, "2024-01-15")):
        response = await client.post(
            "/api/attendance",
            json={"employee_id": employee_id, "date": day, "regular_hours": "8"},
        )
        assert response.status_code == status.HTTP_201_CREATED

    response = await client.get(
        "/api/attendance",
        params={"employee_id": first.id, "start_date": "2024-01-01", "end_date": "2024-01-31"},
    )
    records = response.json()
    assert len(records) == 1
    record_id = records[0]["id"]

    response = await client.put(
        f"/api/attendance/{record_id}", json={"status": "SICK_LEAVE", "regular_hours": "0"}
    )
    assert response.json()["status"] == "SICK_LEAVE"
    assert response.json()["total_hours"] == "0.00"

    response = await client.get("/api/attendance", params={"status": "SICK_LEAVE"})
    assert [r["id"] for r in response.json()] == [record_id]

    response = await client.delete(f"/api/attendance/{record_id}")
    assert response.status_code == status.HTTP_200_OK
    response = await client.get(f"/api/attendance/{record_id}")
    assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.asyncio
async def test_attendance_for_missing_employee(client: httpx.AsyncClient):
    response = await client.post(
        "/api/attendance", json={"employee_id": 999, "date": "2024-01-15"}
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_attendance_date_column_maps_to_date():
    assert Attendance.__table__.c.date.type.python_type is date
    assert Attendance.__mapper__.attrs["date"].columns[0].nullable is False


@pytest.mark.asyncio
async def test_attendance_report(client: httpx.AsyncClient, employee_factory):
    first = await employee_factory("A001")
    second = await employee_factory("A002")
    rows = (
        (first.id, "2024-01-15", "PRESENT", {"regular_hours": "8", "overtime_hours": "2"}),
        (first.id, "2024-01-16", "HALF_DAY", {"regular_hours": "4"}),
        (first.id, "2024-02-01", "PRESENT", {"regular_hours": "8"}),
        (second.id, "2024-01-15", "LATE", {"regular_hours": "7"}),
    )
    for employee_id, day, attendance_status, hours in rows:
        response = await client.post(
            "/api/attendance",
            json={"employee_id": employee_id, "date": day, "status": attendance_status, **hours},
        )
        assert response.status_code == status.HTTP_201_CREATED

    response = await client.get(
        "/api/attendance/report",
        params={"start_date": "2024-01-01", "end_date": "2024-01-31"},
    )
    assert response.status_code == status.HTTP_200_OK
    report = response.json()
    assert [r["employee_code"] for r in report] == ["A001", "A002"]
    assert report[0]["total_days"] == 2
    assert report[0]["work_days"] == 1
    assert report[0]["total_hours"] == "14.00"
    assert report[0]["regular_hours"] == "12.00"
    assert report[0]["overtime_hours"] == "2.00"
    assert report[1]["name"] == "Test A002"
    assert report[1]["work_days"] == 1
    assert report[1]["total_hours"] == "7.00"

    response = await client.get(
        "/api/attendance/report",
        params={"start_date": "2024-01-01", "end_date": "2024-02-29", "employee_id": first.id},
    )
    report = response.json()
    assert len(report) == 1
    assert report[0]["total_days"] == 3

    response = await client.get(
        "/api/attendance/report",
        params={"start_date": "2024-01-31", "end_date": "2024-01-01"},
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST

    response = await client.get("/api/attendance/report")
    assert response.status_code == 422
