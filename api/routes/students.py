"""
api/routes/students.py -- Student registration, administration and enrollment routes.

Routes (in registration order to avoid FastAPI path capture conflicts):
  POST   /api/students                       -- public self-registration (User + Student)
  GET    /api/students                       -- admin: list, filterable
  GET    /api/students/export                -- admin: CSV roster (before /{student_id})
  GET    /api/students/{id}                  -- admin: single student
  PUT    /api/students/{id}                  -- admin: partial update
  PATCH  /api/students/{id}                  -- admin: partial update
  DELETE /api/students/{id}                  -- admin: enrollments -> student -> user
  POST   /api/students/{id}/approve          -- admin: status -> enrolled
  POST   /api/students/{id}/reject           -- admin: status -> rejected
  POST   /api/students/{id}/enroll           -- admin: full-replace subject assignment
  GET    /api/students/{id}/enrollments      -- owner or admin
  GET    /api/students/{id}/schedule         -- owner or admin; subjects + total units
  POST   /api/enroll                         -- student: add subjects to own record
  GET    /api/enrollments                    -- student: own enrollments

Status changes go through registrar.enrollment's transition table; a refused
change is a 409 invalid_transition and nothing is written.
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import (
    CourseResponse,
    EnrollmentResponse,
    ErrorDetail,
    MessageResponse,
    ScheduleResponse,
    StudentRegistration,
    StudentResponse,
    StudentUpdate,
    SubjectResponse,
    SubjectSelection,
)
from auth.dependencies import get_current_user, require_admin, require_student
from auth.models import User
from auth.tokens import hash_password
from core.config import get_settings
from registrar.enrollment import InvalidTransition, StudentStatus
from registrar.export import students_to_csv
from registrar.models import ADMISSION_FIELDS, AdmissionRecord, Student
from registrar.store import EmailAlreadyRegistered, RegistrarStore

logger = logging.getLogger("enrollment.registrar")

_settings = get_settings()

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _not_found(message: str = "Student not found.") -> HTTPException:
    return HTTPException(status_code=404, detail=ErrorDetail(code="not_found", message=message).model_dump())


def _conflict(message: str) -> HTTPException:
    return HTTPException(status_code=409, detail=ErrorDetail(code="conflict", message=message).model_dump())


def _invalid_transition(exc: InvalidTransition) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail=ErrorDetail(code="invalid_transition", message=str(exc)).model_dump(),
    )


def _get_student_or_404(registrar: RegistrarStore, student_id: int) -> Student:
    student = registrar.get_student(student_id)
    if student is None:
        raise _not_found()
    return student


def _authorize_student_access(registrar: RegistrarStore, user: User, student_id: int) -> Student:
    """Admins may read any student; a student may read only their own record.

    The ownership check runs before the existence check so a student cannot
    probe which ids exist.
    """
    if user.role != "admin":
        own = registrar.get_student_by_user_id(user.id)
        if own is None or own.id != student_id:
            raise HTTPException(
                status_code=403,
                detail=ErrorDetail(code="forbidden", message="You may only view your own records.").model_dump(),
            )
        return own
    return _get_student_or_404(registrar, student_id)


def _check_subjects_exist(registrar: RegistrarStore, subject_ids: list[int]) -> None:
    missing = set(subject_ids) - registrar.existing_subject_ids(subject_ids)
    if missing:
        raise _not_found(f"Unknown subject id(s): {', '.join(str(i) for i in sorted(missing))}")


def _own_student(registrar: RegistrarStore, user: User) -> Student:
    student = registrar.get_student_by_user_id(user.id)
    if student is None:
        raise _not_found("No student record for this account.")
    return student


# ---------------------------------------------------------------------------
# POST /students -- public self-registration
# ---------------------------------------------------------------------------


@limiter.limit(_settings.register_rate_limit)
@router.post("/students", response_model=StudentResponse, status_code=201)
def register_student(request: Request, body: StudentRegistration):
    """Create a student account and its Student record in one step.

    The new user always has role "student" and the new record always starts
    at status "pending"; any role or status in the payload is ignored.
    """
    registrar: RegistrarStore = request.app.state.registrar
    student = Student(
        user_id=0,
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        student_number=body.student_number,
        year_level=body.year_level,
        course_id=body.course_id,
        admission=AdmissionRecord(**{name: getattr(body, name) for name in ADMISSION_FIELDS}),
    )
    user = User(username=body.email, role="student", hashed_password=hash_password(body.password))
    try:
        created = registrar.register_student(user, student)
    except EmailAlreadyRegistered:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(code="already_registered", message="Email already registered.").model_dump(),
        )
    except IntegrityError:
        raise _conflict("A student with this student number or email already exists.")
    return StudentResponse.from_student(created)


# ---------------------------------------------------------------------------
# Admin: list / export / read
# ---------------------------------------------------------------------------


@router.get("/students", response_model=list[StudentResponse])
def list_students(
    request: Request,
    year_level: Optional[int] = None,
    section: Optional[str] = None,
    status: Optional[StudentStatus] = None,
    course_id: Optional[int] = None,
    _: User = Depends(require_admin),
):
    """Return all students, optionally filtered."""
    registrar: RegistrarStore = request.app.state.registrar
    students = registrar.list_students(
        year_level=year_level,
        section=section,
        status=status.value if status else None,
        course_id=course_id,
    )
    return [StudentResponse.from_student(s) for s in students]


@router.get("/students/export")
def export_students(
    request: Request,
    format: Literal["csv"] = "csv",
    year_level: Optional[int] = None,
    section: Optional[str] = None,
    status: Optional[StudentStatus] = None,
    course_id: Optional[int] = None,
    _: User = Depends(require_admin),
) -> Response:
    """Download the filtered roster as CSV (header row + one row per student)."""
    registrar: RegistrarStore = request.app.state.registrar
    students = registrar.list_students(
        year_level=year_level,
        section=section,
        status=status.value if status else None,
        course_id=course_id,
    )
    content = students_to_csv(students, registrar.list_courses())
    logger.info("Exported %d students as %s", len(students), format)
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="students.csv"'},
    )


@router.get("/students/{student_id}", response_model=StudentResponse)
def get_student(request: Request, student_id: int, _: User = Depends(require_admin)):
    registrar: RegistrarStore = request.app.state.registrar
    return StudentResponse.from_student(_get_student_or_404(registrar, student_id))


# ---------------------------------------------------------------------------
# Admin: update / delete / status
# ---------------------------------------------------------------------------


def _apply_update(request: Request, student_id: int, body) -> StudentResponse:
    registrar: RegistrarStore = request.app.state.registrar
    fields = body.model_dump(exclude_unset=True, mode="json")
    try:
        updated = registrar.update_student(student_id, **fields)
    except InvalidTransition as e:
        raise _invalid_transition(e)
    except IntegrityError:
        raise _conflict("Email or student number is already in use.")
    if updated is None:
        raise _not_found()
    return StudentResponse.from_student(updated)


@router.put("/students/{student_id}", response_model=StudentResponse)
def replace_student_fields(
    request: Request,
    student_id: int,
    body: StudentUpdate,
    _: User = Depends(require_admin),
):
    """Partial update (status change, section assignment, profile edit)."""
    return _apply_update(request, student_id, body)


@router.patch("/students/{student_id}", response_model=StudentResponse)
def patch_student(
    request: Request,
    student_id: int,
    body: StudentUpdate,
    _: User = Depends(require_admin),
):
    return _apply_update(request, student_id, body)


@router.delete("/students/{student_id}", response_model=MessageResponse)
def delete_student(request: Request, student_id: int, admin: User = Depends(require_admin)) -> MessageResponse:
    """Delete the student's enrollments, the student, and its user account, atomically.

    The deleted user's sessions are ended as well.
    """
    registrar: RegistrarStore = request.app.state.registrar
    user_id = registrar.delete_student(student_id)
    if user_id is None:
        raise _not_found()
    request.app.state.sessions.destroy_for_user(user_id)
    logger.info("Admin id=%s deleted student id=%s", admin.id, student_id)
    return MessageResponse(message="Student deleted.")


def _set_status(request: Request, student_id: int, status: StudentStatus) -> StudentResponse:
    registrar: RegistrarStore = request.app.state.registrar
    try:
        updated = registrar.set_status(student_id, status.value)
    except InvalidTransition as e:
        raise _invalid_transition(e)
    if updated is None:
        raise _not_found()
    return StudentResponse.from_student(updated)


@router.post("/students/{student_id}/approve", response_model=StudentResponse)
def approve_student(request: Request, student_id: int, _: User = Depends(require_admin)):
    """pending -> enrolled. Existing Enrollment rows are not touched."""
    return _set_status(request, student_id, StudentStatus.ENROLLED)


@router.post("/students/{student_id}/reject", response_model=StudentResponse)
def reject_student(request: Request, student_id: int, _: User = Depends(require_admin)):
    """pending -> rejected. Existing Enrollment rows are not touched."""
    return _set_status(request, student_id, StudentStatus.REJECTED)


# ---------------------------------------------------------------------------
# Enrollments
# ---------------------------------------------------------------------------


@router.post("/students/{student_id}/enroll", response_model=list[EnrollmentResponse])
def assign_subjects(
    request: Request,
    student_id: int,
    body: SubjectSelection,
    _: User = Depends(require_admin),
):
    """Replace the student's subject set with body.subject_ids (full replace, one transaction)."""
    registrar: RegistrarStore = request.app.state.registrar
    _get_student_or_404(registrar, student_id)
    _check_subjects_exist(registrar, body.subject_ids)
    enrollments = registrar.replace_subjects(student_id, body.subject_ids)
    return [EnrollmentResponse.from_enrollment(e) for e in enrollments]


@router.get("/students/{student_id}/enrollments", response_model=list[EnrollmentResponse])
def list_student_enrollments(request: Request, student_id: int, user: User = Depends(get_current_user)):
    registrar: RegistrarStore = request.app.state.registrar
    _authorize_student_access(registrar, user, student_id)
    return [EnrollmentResponse.from_enrollment(e) for e in registrar.list_enrollments(student_id)]


@router.get("/students/{student_id}/schedule", response_model=ScheduleResponse)
def get_schedule(request: Request, student_id: int, user: User = Depends(get_current_user)) -> ScheduleResponse:
    """Return the data behind the schedule / Certificate of Enrollment.

    total_units is computed on read from the current Enrollment set.
    """
    registrar: RegistrarStore = request.app.state.registrar
    student = _authorize_student_access(registrar, user, student_id)
    course = registrar.get_course(student.course_id) if student.course_id is not None else None
    return ScheduleResponse(
        student=StudentResponse.from_student(student),
        course=CourseResponse.from_course(course) if course else None,
        subjects=[SubjectResponse.from_subject(s) for s in registrar.list_enrolled_subjects(student_id)],
        total_units=registrar.total_units(student_id),
    )


@router.post("/enroll", response_model=list[EnrollmentResponse])
def self_enroll(request: Request, body: SubjectSelection, user: User = Depends(require_student)):
    """Add subjects to the caller's own record. Additive: existing rows are kept."""
    registrar: RegistrarStore = request.app.state.registrar
    student = _own_student(registrar, user)
    if not body.subject_ids:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(code="validation_error", message="Select at least one subject.").model_dump(),
        )
    _check_subjects_exist(registrar, body.subject_ids)
    enrollments = registrar.assign_subjects(student.id, body.subject_ids)
    return [EnrollmentResponse.from_enrollment(e) for e in enrollments]


@router.get("/enrollments", response_model=list[EnrollmentResponse])
def my_enrollments(request: Request, user: User = Depends(get_current_user)):
    """The caller's own enrollments; [] for accounts without a Student record."""
    registrar: RegistrarStore = request.app.state.registrar
    student = registrar.get_student_by_user_id(user.id)
    if student is None:
        return []
    return [EnrollmentResponse.from_enrollment(e) for e in registrar.list_enrollments(student.id)]
