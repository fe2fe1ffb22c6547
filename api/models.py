"""
API request and response models for the enrollment portal REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in registrar/models.py and
auth/models.py, which own the internal domain representation. Route handlers
map between the two.

The admission-record fields are declared once, on registrar.models.AdmissionRecord.
The request and response models below splice them in with create_model() so the
three shapes (registration, partial update, response) can never drift apart.

Separation of concerns: registrar/ models = domain truth; api/ models = API contract.
"""

from dataclasses import asdict
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, create_model, model_validator

from registrar.enrollment import StudentStatus
from registrar.models import (
    ADMISSION_FIELDS,
    ADMISSION_INT_FIELDS,
    Course,
    Enrollment,
    Notification,
    Student,
    Subject,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@", no whitespace, a dot in the domain part.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

MIN_PASSWORD_LENGTH = 6


def _reject_nulls(data, nullable: frozenset = frozenset()):
    """Refuse an explicit null on a partial update unless the column can be cleared."""
    if isinstance(data, dict):
        nulls = sorted(name for name, value in data.items() if value is None and name not in nullable)
        if nulls:
            raise ValueError(f"may not be null: {', '.join(nulls)}")
    return data


def _admission_field_definitions(optional: bool) -> dict:
    """Build create_model() field definitions for every admission field.

    optional=False: concrete defaults ("" / 0), used for registration and responses.
    optional=True:  None defaults, used for partial updates (exclude_unset).
    """
    definitions: dict = {}
    for name in ADMISSION_FIELDS:
        if name in ADMISSION_INT_FIELDS:
            if optional:
                definitions[name] = (Optional[int], Field(default=None, ge=0, le=9999))
            else:
                definitions[name] = (int, Field(default=0, ge=0, le=9999))
        else:
            if optional:
                definitions[name] = (Optional[str], Field(default=None, max_length=500))
            else:
                definitions[name] = (str, Field(default="", max_length=500))
    return definitions


# ---------------------------------------------------------------------------
# Error and health envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    issues: Optional[list[dict]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    # max_length=128 keeps inputs well below bcrypt's 72-byte truncation
    # for ordinary passwords and rejects pathological payloads.
    password: str = Field(min_length=1, max_length=128)


class PasswordChange(BaseModel):
    """Request body for PUT /api/user/password."""

    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=128)


class ProfileUpdate(BaseModel):
    """Request body for PUT /api/user/profile. Only sent fields are changed."""

    model_config = ConfigDict(str_strip_whitespace=True)

    contact_number: Optional[str] = Field(default=None, max_length=50)
    permanent_address: Optional[str] = Field(default=None, max_length=500)
    avatar: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode="before")
    @classmethod
    def _no_nulls(cls, data):
        return _reject_nulls(data, frozenset({"avatar"}))


# ---------------------------------------------------------------------------
# Students -- request models
# ---------------------------------------------------------------------------


class _RegistrationBase(BaseModel):
    # Unknown keys (status, id, user_id, role...) are dropped, never applied.
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=128)
    student_number: str = Field(min_length=1, max_length=50)
    year_level: int = Field(ge=1, le=4)
    course_id: Optional[int] = None


StudentRegistration = create_model(
    "StudentRegistration",
    __base__=_RegistrationBase,
    __doc__="Request body for POST /api/students (public self-registration).",
    **_admission_field_definitions(optional=False),
)


class _StudentUpdateBase(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    student_number: Optional[str] = Field(default=None, min_length=1, max_length=50)
    year_level: Optional[int] = Field(default=None, ge=1, le=4)
    course_id: Optional[int] = None
    status: Optional[StudentStatus] = None
    section: Optional[str] = Field(default=None, max_length=50)
    avatar: Optional[str] = Field(default=None, max_length=500)

    # course_id, section and avatar may be cleared; every other column is NOT NULL.
    @model_validator(mode="before")
    @classmethod
    def _no_nulls(cls, data):
        return _reject_nulls(data, frozenset({"course_id", "section", "avatar"}))


StudentUpdate = create_model(
    "StudentUpdate",
    __base__=_StudentUpdateBase,
    __doc__="Request body for PUT/PATCH /api/students/{id}. Only sent fields are changed.",
    **_admission_field_definitions(optional=True),
)


class SubjectSelection(BaseModel):
    """Request body for subject assignment.

    POST /api/students/{id}/enroll replaces the whole set (an empty list clears it).
    POST /api/enroll adds to the caller's own set.
    """

    subject_ids: list[int] = Field(default_factory=list, max_length=50)


# ---------------------------------------------------------------------------
# Catalog -- request models
# ---------------------------------------------------------------------------


class CourseCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=2000)


class CourseUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    code: Optional[str] = Field(default=None, min_length=1, max_length=50)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)

    @model_validator(mode="before")
    @classmethod
    def _no_nulls(cls, data):
        return _reject_nulls(data)


class SubjectCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=255)
    units: int = Field(ge=1, le=12)
    schedule: str = Field(default="", max_length=255)
    instructor: str = Field(default="", max_length=255)
    course_id: Optional[int] = None
    year_level: int = Field(default=1, ge=1, le=4)


class SubjectUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    code: Optional[str] = Field(default=None, min_length=1, max_length=50)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    units: Optional[int] = Field(default=None, ge=1, le=12)
    schedule: Optional[str] = Field(default=None, max_length=255)
    instructor: Optional[str] = Field(default=None, max_length=255)
    course_id: Optional[int] = None
    year_level: Optional[int] = Field(default=None, ge=1, le=4)

    @model_validator(mode="before")
    @classmethod
    def _no_nulls(cls, data):
        return _reject_nulls(data, frozenset({"course_id"}))


# ---------------------------------------------------------------------------
# Notifications -- request models
# ---------------------------------------------------------------------------

Recipients = Union[Literal["all"], list[int], int]


class EmailNotificationRequest(BaseModel):
    """Request body for POST /api/admin/notifications/email.

    student_ids: "all", a list of student ids, or a single id.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    student_ids: Recipients
    subject: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1, max_length=10000)


class SmsNotificationRequest(BaseModel):
    """Request body for POST /api/admin/notifications/sms."""

    model_config = ConfigDict(str_strip_whitespace=True)

    student_ids: Recipients
    message: str = Field(min_length=1, max_length=1600)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class _StudentResponseBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int
    first_name: str
    last_name: str
    email: str
    student_number: str
    course_id: Optional[int]
    year_level: int
    status: str
    section: Optional[str]
    avatar: Optional[str]
    created_at: str

    @classmethod
    def from_student(cls, s: Student):
        """Build the flat response (core fields + admission fields) from a Student.

        Factory Method: the mapping lives here, colocated with the output model,
        rather than scattered across route handlers.
        """
        return cls(
            id=s.id,
            user_id=s.user_id,
            first_name=s.first_name,
            last_name=s.last_name,
            email=s.email,
            student_number=s.student_number,
            course_id=s.course_id,
            year_level=s.year_level,
            status=s.status,
            section=s.section,
            avatar=s.avatar,
            created_at=s.created_at,
            **asdict(s.admission),
        )


StudentResponse = create_model(
    "StudentResponse",
    __base__=_StudentResponseBase,
    **_admission_field_definitions(optional=False),
)


class CurrentUserResponse(BaseModel):
    """Response for GET /api/user. student is set only for role "student"."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    role: str
    student: Optional[StudentResponse] = None


class LoginResponse(BaseModel):
    """Response for POST /api/login.

    The session cookie is set on the response. access_token is a bearer token
    for API clients; it is null when bearer tokens are disabled.
    """

    model_config = ConfigDict(frozen=True)

    user: CurrentUserResponse
    access_token: Optional[str] = None
    token_type: str = "bearer"  # noqa: S105 # nosec B105 -- OAuth token type, not a password
    expires_in: int


class CourseResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    code: str
    name: str
    description: str

    @classmethod
    def from_course(cls, c: Course) -> "CourseResponse":
        return cls(id=c.id, code=c.code, name=c.name, description=c.description)


class SubjectResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    code: str
    name: str
    units: int
    schedule: str
    instructor: str
    course_id: Optional[int]
    year_level: int

    @classmethod
    def from_subject(cls, s: Subject) -> "SubjectResponse":
        return cls(
            id=s.id,
            code=s.code,
            name=s.name,
            units=s.units,
            schedule=s.schedule,
            instructor=s.instructor,
            course_id=s.course_id,
            year_level=s.year_level,
        )


class EnrollmentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    student_id: int
    subject_id: int
    status: str

    @classmethod
    def from_enrollment(cls, e: Enrollment) -> "EnrollmentResponse":
        return cls(id=e.id, student_id=e.student_id, subject_id=e.subject_id, status=e.status)


class ScheduleResponse(BaseModel):
    """Response for GET /api/students/{id}/schedule (Certificate of Enrollment data)."""

    model_config = ConfigDict(frozen=True)

    student: StudentResponse
    course: Optional[CourseResponse]
    subjects: list[SubjectResponse]
    total_units: int


class NotificationResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    type: str
    subject: Optional[str]
    message: str
    status: str
    sent_by: int
    recipient_count: int
    sent_at: str

    @classmethod
    def from_notification(cls, n: Notification) -> "NotificationResponse":
        return cls(
            id=n.id,
            type=n.type,
            subject=n.subject,
            message=n.message,
            status=n.status,
            sent_by=n.sent_by,
            recipient_count=n.recipient_count,
            sent_at=n.sent_at,
        )


class DashboardStatsResponse(BaseModel):
    """Response for GET /api/admin/stats."""

    model_config = ConfigDict(frozen=True)

    total_students: int
    pending: int
    enrolled: int
    rejected: int
    total_courses: int
    total_subjects: int


class EnrollmentStatsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    by_status: dict[str, int]
    by_year_level: dict[str, int]


class DemographicsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    by_sex: dict[str, int]
    by_civil_status: dict[str, int]
    by_citizenship: dict[str, int]


class CourseAnalyticsRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    course_id: int
    code: str
    name: str
    student_count: int
    subject_count: int


class EnrollmentTrendRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    month: str
    registrations: int
