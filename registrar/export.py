"""
registrar/export.py -- CSV rendering of the student roster.

Quoting follows RFC 4180 via csv.writer: cells containing commas, quotes or
line breaks are wrapped in double quotes and embedded quotes are doubled.

Cells that start with =, +, - or @ are prefixed with a tab so spreadsheet
applications treat them as text rather than formulas (CWE-1236).
"""

import csv
import io

from registrar.models import Course, Student

CSV_HEADERS = [
    "Student Number",
    "Last Name",
    "First Name",
    "Middle Initial",
    "Email",
    "Program",
    "Year Level",
    "Section",
    "Status",
    "Contact Number",
    "Sex",
    "Date of Birth",
    "Address",
    "Father Name",
    "Mother Name",
    "Emergency Contact",
]

_FORMULA_PREFIXES = ("=", "+", "-", "@")


def _sanitize_csv_cell(value) -> str:
    text = "" if value is None else str(value)
    if text.startswith(_FORMULA_PREFIXES):
        return "\t" + text
    return text


def students_to_csv(students: list[Student], courses: list[Course]) -> str:
    """Render students as CSV: one header row plus one row per student.

    Program is the student's course code, or "N/A" when the course is unset
    or unknown. Section defaults to "Unassigned".
    """
    course_codes = {c.id: c.code for c in courses}

    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_HEADERS)

    for s in students:
        a = s.admission
        writer.writerow(
            [
                _sanitize_csv_cell(cell)
                for cell in (
                    s.student_number,
                    s.last_name,
                    s.first_name,
                    a.middle_initial,
                    s.email,
                    course_codes.get(s.course_id, "N/A"),
                    s.year_level,
                    s.section or "Unassigned",
                    s.status,
                    a.contact_number,
                    a.sex,
                    a.dob,
                    a.permanent_address,
                    a.father_name,
                    a.mother_name,
                    a.emergency_contact_person,
                )
            ]
        )

    return buf.getvalue()
