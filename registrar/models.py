"""
registrar/models.py -- Domain dataclasses for the enrollment registrar.

These are pure data containers with zero logic. Status transition rules live
in registrar/enrollment.py; persistence lives in registrar/store.py.

AdmissionRecord groups the admission-form payload (demographics, family
background, education history) into one flat value object with named fields,
so every field is spelled out once here and the store builds its columns from
it. The fields carry no invariants beyond "string (possibly empty)" or, for the
year-graduated fields, "integer (0 = not given)".
"""

from dataclasses import dataclass, field, fields
from typing import Optional


@dataclass
class AdmissionRecord:
    # Personal
    middle_initial: str = ""
    suffix: str = ""
    dob: str = ""
    sex: str = ""
    civil_status: str = ""
    place_of_birth: str = ""
    citizenship: str = ""
    religion: str = ""
    contact_number: str = ""
    permanent_address: str = ""
    postal_code: str = ""

    # Father
    father_name: str = ""
    father_contact: str = ""
    father_occupation: str = ""
    father_company: str = ""
    father_home_address: str = ""

    # Mother
    mother_name: str = ""
    mother_contact: str = ""
    mother_occupation: str = ""
    mother_company: str = ""
    mother_home_address: str = ""

    # Guardian
    guardian_name: str = ""
    guardian_contact: str = ""
    guardian_relationship: str = ""
    guardian_occupation: str = ""
    guardian_company: str = ""
    guardian_home_address: str = ""

    # Emergency contact
    emergency_contact_person: str = ""
    emergency_contact_home: str = ""
    emergency_contact_number: str = ""

    # Education
    elementary_school: str = ""
    elementary_address: str = ""
    elementary_year_graduated: int = 0
    junior_high_school: str = ""
    junior_high_address: str = ""
    junior_high_year_graduated: int = 0
    senior_high_school: str = ""
    senior_high_address: str = ""
    senior_high_year_graduated: int = 0
    previous_school: str = ""
    year_graduated: int = 0


ADMISSION_FIELDS: tuple[str, ...] = tuple(f.name for f in fields(AdmissionRecord))
ADMISSION_INT_FIELDS: frozenset[str] = frozenset(f.name for f in fields(AdmissionRecord) if f.type is int)


@dataclass
class Course:
    """A degree program, e.g. BSIS. code is unique."""

    code: str
    name: str
    description: str = ""
    id: Optional[int] = None


@dataclass
class Subject:
    """A class offering. course_id is advisory: it is not checked against courses."""

    code: str
    name: str
    units: int
    schedule: str = ""
    instructor: str = ""
    course_id: Optional[int] = None
    year_level: int = 1
    id: Optional[int] = None


@dataclass
class Student:
    """A student record, owned 1:1 by a User with role "student".

    email doubles as the owning User's username. student_number is the
    school-issued ID (unique). status is one of StudentStatus; new records
    always start at "pending".

    id is None before the record is written to the database.
    """

    user_id: int
    first_name: str
    last_name: str
    email: str
    student_number: str
    year_level: int
    course_id: Optional[int] = None
    status: str = "pending"
    section: Optional[str] = None
    avatar: Optional[str] = None
    admission: AdmissionRecord = field(default_factory=AdmissionRecord)
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class Enrollment:
    """Join record: this student is taking this subject."""

    student_id: int
    subject_id: int
    status: str = "enrolled"
    id: Optional[int] = None


@dataclass
class Notification:
    """Append-only audit entry for an email or SMS broadcast.

    Records are never updated or deleted -- only inserted.
    """

    type: str  # "email" | "sms"
    message: str
    status: str  # "sent" | "failed"
    sent_by: int
    subject: Optional[str] = None
    recipient_count: int = 0
    sent_at: str = ""  # ISO 8601, set by store on insert
    id: Optional[int] = None
