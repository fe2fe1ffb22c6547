"""
api/routes/catalog.py -- Course and subject catalog routes.

Reads are public (the landing page lists programs); writes are admin-only.
Codes are unique per entity: a duplicate is a 409 conflict.

Subject.course_id is stored as given and is not checked against existing
courses. Deleting a subject also removes the Enrollment rows pointing at it.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError

from api.models import (
    CourseCreate,
    CourseResponse,
    CourseUpdate,
    ErrorDetail,
    MessageResponse,
    SubjectCreate,
    SubjectResponse,
    SubjectUpdate,
)
from auth.dependencies import require_admin
from auth.models import User
from registrar.models import Course, Subject
from registrar.store import RegistrarStore

router = APIRouter()


def _not_found(what: str) -> HTTPException:
    return HTTPException(status_code=404, detail=ErrorDetail(code="not_found", message=f"{what} not found.").model_dump())


def _duplicate_code(what: str) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail=ErrorDetail(code="conflict", message=f"A {what.lower()} with this code already exists.").model_dump(),
    )


# ---------------------------------------------------------------------------
# Courses
# ---------------------------------------------------------------------------


@router.get("/courses", response_model=list[CourseResponse])
def list_courses(request: Request) -> list[CourseResponse]:
    registrar: RegistrarStore = request.app.state.registrar
    return [CourseResponse.from_course(c) for c in registrar.list_courses()]


@router.post("/courses", response_model=CourseResponse, status_code=201)
def create_course(request: Request, body: CourseCreate, _: User = Depends(require_admin)) -> CourseResponse:
    registrar: RegistrarStore = request.app.state.registrar
    try:
        course = registrar.create_course(Course(code=body.code, name=body.name, description=body.description))
    except IntegrityError:
        raise _duplicate_code("Course")
    return CourseResponse.from_course(course)


@router.patch("/courses/{course_id}", response_model=CourseResponse)
def update_course(
    request: Request,
    course_id: int,
    body: CourseUpdate,
    _: User = Depends(require_admin),
) -> CourseResponse:
    registrar: RegistrarStore = request.app.state.registrar
    try:
        course = registrar.update_course(course_id, **body.model_dump(exclude_unset=True))
    except IntegrityError:
        raise _duplicate_code("Course")
    if course is None:
        raise _not_found("Course")
    return CourseResponse.from_course(course)


@router.delete("/courses/{course_id}", response_model=MessageResponse)
def delete_course(request: Request, course_id: int, _: User = Depends(require_admin)) -> MessageResponse:
    registrar: RegistrarStore = request.app.state.registrar
    if not registrar.delete_course(course_id):
        raise _not_found("Course")
    return MessageResponse(message="Course deleted.")


# ---------------------------------------------------------------------------
# Subjects
# ---------------------------------------------------------------------------


@router.get("/subjects", response_model=list[SubjectResponse])
def list_subjects(
    request: Request,
    course_id: Optional[int] = None,
    year_level: Optional[int] = None,
) -> list[SubjectResponse]:
    """Return subjects, optionally filtered by course and year level."""
    registrar: RegistrarStore = request.app.state.registrar
    return [SubjectResponse.from_subject(s) for s in registrar.list_subjects(course_id=course_id, year_level=year_level)]


@router.post("/subjects", response_model=SubjectResponse, status_code=201)
def create_subject(request: Request, body: SubjectCreate, _: User = Depends(require_admin)) -> SubjectResponse:
    registrar: RegistrarStore = request.app.state.registrar
    try:
        subject = registrar.create_subject(Subject(**body.model_dump()))
    except IntegrityError:
        raise _duplicate_code("Subject")
    return SubjectResponse.from_subject(subject)


@router.patch("/subjects/{subject_id}", response_model=SubjectResponse)
def update_subject(
    request: Request,
    subject_id: int,
    body: SubjectUpdate,
    _: User = Depends(require_admin),
) -> SubjectResponse:
    registrar: RegistrarStore = request.app.state.registrar
    try:
        subject = registrar.update_subject(subject_id, **body.model_dump(exclude_unset=True))
    except IntegrityError:
        raise _duplicate_code("Subject")
    if subject is None:
        raise _not_found("Subject")
    return SubjectResponse.from_subject(subject)


@router.delete("/subjects/{subject_id}", response_model=MessageResponse)
def delete_subject(request: Request, subject_id: int, _: User = Depends(require_admin)) -> MessageResponse:
    registrar: RegistrarStore = request.app.state.registrar
    if not registrar.delete_subject(subject_id):
        raise _not_found("Subject")
    return MessageResponse(message="Subject deleted.")
