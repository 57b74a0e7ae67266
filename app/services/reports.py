import os
import asyncio
import logging
import uuid
from datetime import date
from typing import List, Optional
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from openpyxl.utils import get_column_letter
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.config import REPORTS_PATH
from app.core.exceptions import RecordNotFound, ValidationError
from app.crud.attendance import get_attendance_between
from app.models.attendance import AttendanceRecord
from app.utils.timezone import day_window, format_local

logger = logging.getLogger(__name__)

EXPORT_HEADERS = [
    "Employee Name", "Email", "Check In Time", "Check Out Time",
    "Status", "Hours Worked", "Location"
]

HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
EARLY_FILL = PatternFill(start_color="FFD7D7", end_color="FFD7D7", fill_type="solid")
CENTER_ALIGNMENT = Alignment(horizontal="center", vertical="center")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin")
)


def smart_column_width(worksheet, min_width=8, max_width=50, padding=2):
    """
    Size columns to their content

    Args:
        worksheet: openpyxl worksheet
        min_width: minimum column width
        max_width: maximum column width
        padding: extra room added to the longest value
    """
    for column in worksheet.columns:
        column_letter = get_column_letter(column[0].column)
        max_length = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
        adjusted_width = min(max(max_length + padding, min_width), max_width)

        header_value = str(column[0].value).lower() if column[0].value else ""
        if "name" in header_value:
            adjusted_width = max(adjusted_width, 20)
        elif "email" in header_value:
            adjusted_width = max(adjusted_width, 25)
        elif "location" in header_value:
            adjusted_width = max(adjusted_width, 30)
        elif "time" in header_value:
            adjusted_width = max(adjusted_width, 20)

        worksheet.column_dimensions[column_letter].width = adjusted_width


def export_row(record: AttendanceRecord, tz_name: str) -> list:
    """One spreadsheet row; location is the latest known address"""
    user = record.user
    address = record.check_out_address if record.check_out_time is not None else record.check_in_address
    return [
        user.name if user else "N/A",
        user.email if user else "N/A",
        format_local(record.check_in_time, tz_name),
        format_local(record.check_out_time, tz_name),
        record.status.value,
        float(record.hours_worked or 0),
        address or "N/A",
    ]


def build_attendance_workbook(records: List[AttendanceRecord], tz_name: str, min_work_hours: Optional[float] = None) -> Workbook:
    wb = Workbook()
    ws = wb.active
    ws.title = "Attendance"
    wb.properties.creator = "Attendance System"

    for col, header in enumerate(EXPORT_HEADERS, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = CENTER_ALIGNMENT
        cell.border = THIN_BORDER

    hours_col = EXPORT_HEADERS.index("Hours Worked") + 1
    for row_idx, record in enumerate(records, 2):
        for col, value in enumerate(export_row(record, tz_name), 1):
            cell = ws.cell(row=row_idx, column=col, value=value)
            cell.alignment = CENTER_ALIGNMENT
            cell.border = THIN_BORDER

        # Highlight closed days shorter than the expected shift
        hours_cell = ws.cell(row=row_idx, column=hours_col)
        if (min_work_hours is not None and record.check_out_time is not None
                and hours_cell.value < min_work_hours):
            hours_cell.fill = EARLY_FILL

    smart_column_width(ws)
    return wb


async def generate_attendance_export(db: AsyncSession, start_date: date, end_date: Optional[date],
                                     tz_name: str, min_work_hours: Optional[float] = None) -> str:
    """Write the records of [start_date, end_date] to an xlsx file and return its path"""
    end_date = end_date or start_date
    if end_date < start_date:
        raise ValidationError({"end_date": "End date must not be before start date"})

    start = day_window(start_date, tz_name).start
    end = day_window(end_date, tz_name).end
    records = await get_attendance_between(db, start, end)
    if not records:
        raise RecordNotFound("No attendance records found for the specified date range")

    wb = build_attendance_workbook(records, tz_name, min_work_hours)

    os.makedirs(REPORTS_PATH, exist_ok=True)
    file_path = os.path.join(
        REPORTS_PATH, f"attendance_{start_date}_to_{end_date}_{uuid.uuid4().hex[:8]}.xlsx"
    )
    wb.save(file_path)
    logger.info(f"Exported {len(records)} attendance records to {file_path}")
    return file_path


def export_filename(start_date: date, end_date: Optional[date]) -> str:
    return f"attendance_{start_date}_to_{end_date or start_date}.xlsx"


async def delete_file_after_delay(file_path: str, delay_seconds: int = 300):
    """Remove a generated report once it has been served"""
    await asyncio.sleep(delay_seconds)
    try:
        if os.path.exists(file_path):
            os.remove(file_path)
            logger.info(f"Deleted report file {file_path}")
    except OSError as e:
        logger.warning(f"Could not delete report file {file_path}: {e}")
