"""
api/routes/notifications.py -- Admin email/SMS broadcast and its history.

Routes:
  POST /api/admin/notifications/email    -- send email to students
  POST /api/admin/notifications/sms      -- send SMS to students
  GET  /api/admin/notifications/history  -- audit log, newest first

Recipients are given as student_ids: "all", a list of student ids, or one id.
Unknown ids are skipped. For SMS, students without a contact number are
skipped. If nobody is left the request fails with 400 no_recipients and
nothing is sent or logged.

Delivery outcomes:
  channel not configured -> 503 service_unavailable (audit row "failed")
  provider error         -> 502 delivery_failed     (audit row "failed")
  success                -> 200 with the "sent" audit row
"""

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import (
    EmailNotificationRequest,
    ErrorDetail,
    NotificationResponse,
    Recipients,
    SmsNotificationRequest,
)
from auth.dependencies import require_admin
from auth.models import User
from notifications.service import (
    NotificationDeliveryError,
    NotificationError,
    NotificationNotConfigured,
    NotificationService,
)
from registrar.models import Student
from registrar.store import RegistrarStore

# Every route here is admin-only.
router = APIRouter(dependencies=[Depends(require_admin)])


def _resolve_students(registrar: RegistrarStore, recipients: Recipients) -> list[Student]:
    if recipients == "all":
        return registrar.list_students()
    ids = recipients if isinstance(recipients, list) else [recipients]
    return registrar.get_students_by_ids(ids)


def _no_recipients() -> HTTPException:
    return HTTPException(
        status_code=400,
        detail=ErrorDetail(code="no_recipients", message="No recipients found.").model_dump(),
    )


def _delivery_error(exc: NotificationError) -> HTTPException:
    if isinstance(exc, NotificationNotConfigured):
        status, code = 503, "service_unavailable"
    elif isinstance(exc, NotificationDeliveryError):
        status, code = 502, "delivery_failed"
    else:
        status, code = 500, "internal_error"
    return HTTPException(
        status_code=status,
        detail=ErrorDetail(code=code, message=str(exc), detail=f"notification_id={exc.notification.id}").model_dump(),
    )


@router.post("/admin/notifications/email", response_model=NotificationResponse)
def send_email(
    request: Request,
    body: EmailNotificationRequest,
    admin: User = Depends(require_admin),
) -> NotificationResponse:
    registrar: RegistrarStore = request.app.state.registrar
    service: NotificationService = request.app.state.notifier
    emails = [s.email for s in _resolve_students(registrar, body.student_ids) if s.email]
    if not emails:
        raise _no_recipients()
    try:
        record = service.send_email(emails, body.subject, body.message, sent_by=admin.id)
    except NotificationError as e:
        raise _delivery_error(e)
    return NotificationResponse.from_notification(record)


@router.post("/admin/notifications/sms", response_model=NotificationResponse)
def send_sms(
    request: Request,
    body: SmsNotificationRequest,
    admin: User = Depends(require_admin),
) -> NotificationResponse:
    registrar: RegistrarStore = request.app.state.registrar
    service: NotificationService = request.app.state.notifier
    phones = list(
        dict.fromkeys(
            s.admission.contact_number
            for s in _resolve_students(registrar, body.student_ids)
            if s.admission.contact_number
        )
    )
    if not phones:
        raise _no_recipients()
    try:
        record = service.send_sms(phones, body.message, sent_by=admin.id)
    except NotificationError as e:
        raise _delivery_error(e)
    return NotificationResponse.from_notification(record)


@router.get("/admin/notifications/history", response_model=list[NotificationResponse])
def notification_history(request: Request, limit: int = 100) -> list[NotificationResponse]:
    registrar: RegistrarStore = request.app.state.registrar
    limit = max(1, min(limit, 500))
    return [NotificationResponse.from_notification(n) for n in registrar.list_notifications(limit=limit)]
