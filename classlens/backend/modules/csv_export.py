# classlens/backend/modules/csv_export.py

import csv
import re
from io import StringIO
from typing import List

from ..models.domain_models import AttendanceRecord, AttendanceReport

CSV_HEADERS = ["Roll Number", "Student Name", "Status"]


def build_attendance_csv(attendance: List[AttendanceRecord]) -> str:
    """
    Renders one row per student, ordered by roll number. Fields are only quoted
    when they contain a comma, a quote or a line break.
    """
    buffer = StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for record in sorted(attendance, key=lambda r: r.roll_number):
        writer.writerow([record.roll_number, record.name, record.status.value])
    return buffer.getvalue()


def _safe_filename_part(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "_", value, flags=re.IGNORECASE).lower()


def build_csv_filename(report: AttendanceReport) -> str:
    """e.g. attendance_grade_5_b_period_1_2024-03-01.csv"""
    report_date = report.date.date().isoformat()
    return f"attendance_{_safe_filename_part(report.classroom_name)}_{_safe_filename_part(report.period)}_{report_date}.csv"
