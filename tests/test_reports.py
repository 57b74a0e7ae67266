import os
from datetime import date, timedelta

import pytest
from openpyxl import load_workbook

from app.core.exceptions import RecordNotFound, ValidationError
from app.services import attendance as attendance_service
from app.services import reports

from conftest import WORK_DAY, at, identity_for, make_upload


@pytest.fixture
def reports_dir(tmp_path, monkeypatch):
    target = tmp_path / "reports"
    monkeypatch.setattr(reports, "REPORTS_PATH", str(target))
    return target


async def record_day(db, user, window, photo_store, geocoder, check_out_at=None):
    record = await attendance_service.check_in(
        db, identity_for(user), make_upload(), {"latitude": 12.34, "longitude": 56.78}, window,
        photo_store=photo_store, geocoder=geocoder, now=at(9),
    )
    if check_out_at is not None:
        await attendance_service.check_out(
            db, identity_for(user), {"latitude": 12.35, "longitude": 56.79}, window,
            geocoder=geocoder, now=check_out_at,
        )
    return record


async def test_export_writes_one_row_per_record(db, user, other_user, window, photo_store, geocoder, reports_dir):
    await record_day(db, user, window, photo_store, geocoder, check_out_at=at(13))
    await record_day(db, other_user, window, photo_store, geocoder)

    path = await reports.generate_attendance_export(db, WORK_DAY, None, "UTC", min_work_hours=9)

    assert os.path.dirname(path) == str(reports_dir)
    sheet = load_workbook(path)["Attendance"]
    rows = list(sheet.iter_rows(values_only=True))
    assert list(rows[0]) == reports.EXPORT_HEADERS
    by_email = {row[1]: row for row in rows[1:]}
    assert by_email["asha@example.com"] == (
        "Asha Rao", "asha@example.com", "2024-01-10 09:00:00", "2024-01-10 13:00:00",
        "checked-out", 4, "MG Road, Bengaluru",
    )
    assert by_email["vikram@example.com"][3] == "N/A"
    assert by_email["vikram@example.com"][4] == "checked-in"


async def test_early_checkout_is_highlighted(db, user, window, photo_store, geocoder, reports_dir):
    await record_day(db, user, window, photo_store, geocoder, check_out_at=at(13))

    path = await reports.generate_attendance_export(db, WORK_DAY, WORK_DAY, "UTC", min_work_hours=9)

    hours_cell = load_workbook(path)["Attendance"].cell(row=2, column=6)
    assert hours_cell.fill.fgColor.rgb.endswith("FFD7D7")


async def test_export_times_follow_requested_timezone(db, user, window, photo_store, geocoder, reports_dir):
    await record_day(db, user, window, photo_store, geocoder)

    path = await reports.generate_attendance_export(db, WORK_DAY, None, "Asia/Kolkata")

    assert load_workbook(path)["Attendance"].cell(row=2, column=3).value == "2024-01-10 14:30:00"


async def test_export_with_no_records(db, reports_dir):
    with pytest.raises(RecordNotFound):
        await reports.generate_attendance_export(db, date(2023, 5, 1), date(2023, 5, 31), "UTC")
    assert not reports_dir.exists()


async def test_export_rejects_reversed_range(db, reports_dir):
    with pytest.raises(ValidationError) as exc_info:
        await reports.generate_attendance_export(db, WORK_DAY, WORK_DAY - timedelta(days=1), "UTC")
    assert "end_date" in exc_info.value.fields


def test_export_filename():
    assert reports.export_filename(WORK_DAY, None) == "attendance_2024-01-10_to_2024-01-10.xlsx"


async def test_delete_file_after_delay(tmp_path):
    report = tmp_path / "old.xlsx"
    report.write_bytes(b"x")

    await reports.delete_file_after_delay(str(report), 0)

    assert not report.exists()
