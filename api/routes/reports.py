"""
api/routes/reports.py -- Admin dashboard and report aggregations.

Routes:
  GET /api/admin/stats                   -- headline counts for the dashboard
  GET /api/reports/enrollment-stats      -- total, by status, by year level
  GET /api/reports/demographics          -- by sex, civil status, citizenship
  GET /api/reports/course-analytics      -- students and subjects per course
  GET /api/reports/enrollment-trends     -- registrations per month

All of these are read-only views computed from the students table on request;
nothing is cached or stored.
"""

from fastapi import APIRouter, Depends, Request

from api.models import (
    CourseAnalyticsRow,
    DashboardStatsResponse,
    DemographicsResponse,
    EnrollmentStatsResponse,
    EnrollmentTrendRow,
)
from auth.dependencies import require_admin
from registrar.store import RegistrarStore

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/admin/stats", response_model=DashboardStatsResponse)
def dashboard_stats(request: Request) -> DashboardStatsResponse:
    registrar: RegistrarStore = request.app.state.registrar
    return DashboardStatsResponse(**registrar.get_dashboard_stats())


@router.get("/reports/enrollment-stats", response_model=EnrollmentStatsResponse)
def enrollment_stats(request: Request) -> EnrollmentStatsResponse:
    registrar: RegistrarStore = request.app.state.registrar
    by_status = registrar.count_students_by("status")
    return EnrollmentStatsResponse(
        total=sum(by_status.values()),
        by_status=by_status,
        by_year_level=registrar.count_students_by("year_level"),
    )


@router.get("/reports/demographics", response_model=DemographicsResponse)
def demographics(request: Request) -> DemographicsResponse:
    registrar: RegistrarStore = request.app.state.registrar
    return DemographicsResponse(
        by_sex=registrar.count_students_by("sex"),
        by_civil_status=registrar.count_students_by("civil_status"),
        by_citizenship=registrar.count_students_by("citizenship"),
    )


@router.get("/reports/course-analytics", response_model=list[CourseAnalyticsRow])
def course_analytics(request: Request) -> list[CourseAnalyticsRow]:
    registrar: RegistrarStore = request.app.state.registrar
    return [CourseAnalyticsRow(**row) for row in registrar.get_course_analytics()]


@router.get("/reports/enrollment-trends", response_model=list[EnrollmentTrendRow])
def enrollment_trends(request: Request) -> list[EnrollmentTrendRow]:
    registrar: RegistrarStore = request.app.state.registrar
    return [EnrollmentTrendRow(**row) for row in registrar.get_enrollment_trends()]
