"""
tests/test_notifications.py -- Email/SMS broadcast service and admin routes.

The SMTP server and the Twilio HTTP API are never contacted: smtplib.SMTP
and the service's requests.Session.post are patched with unittest.mock.

Covers:
  - "not configured" -> NotificationNotConfigured + failed audit row (503 via API)
  - provider failure -> NotificationDeliveryError + failed audit row (502 via API)
  - success -> one "sent" audit row with the recipient count
  - recipient resolution: "all", list of ids, single id, nobody -> 400
"""

from __future__ import annotations

import smtplib
from unittest.mock import MagicMock, patch

import pytest
import requests
from conftest import bearer, registration_payload

from core.config import Settings
from notifications.service import (
    TWILIO_MESSAGES_URL,
    NotificationDeliveryError,
    NotificationNotConfigured,
    NotificationService,
)


def _configured_settings() -> Settings:
    return Settings(
        debug=True,
        smtp_host="smtp.example.edu",
        smtp_port=587,
        smtp_user="registrar@example.edu",
        smtp_pass="app-password",
        twilio_account_sid="AC" + "0" * 32,
        twilio_auth_token="token",
        twilio_phone_number="+15005550006",
    )


class TestNotificationService:
    def test_email_not_configured(self, registrar) -> None:
        service = NotificationService(Settings(debug=True), registrar)
        with pytest.raises(NotificationNotConfigured) as exc_info:
            service.send_email(["a@example.edu"], "Hello", "<p>Hi</p>", sent_by=1)
        assert exc_info.value.notification.status == "failed"
        assert registrar.list_notifications()[0].status == "failed"

    def test_sms_placeholder_sid_is_not_configured(self, registrar) -> None:
        settings = Settings(
            debug=True, twilio_account_sid="your-sid", twilio_auth_token="t", twilio_phone_number="+1"
        )
        service = NotificationService(settings, registrar)
        with pytest.raises(NotificationNotConfigured):
            service.send_sms(["+639170000000"], "Hi", sent_by=1)

    def test_email_success(self, registrar) -> None:
        service = NotificationService(_configured_settings(), registrar)
        with patch("notifications.service.smtplib.SMTP") as smtp_cls:
            server = smtp_cls.return_value.__enter__.return_value
            record = service.send_email(["a@example.edu", "b@example.edu"], "Enrollment", "<p>Open</p>", sent_by=1)

        smtp_cls.assert_called_once_with("smtp.example.edu", 587, timeout=10)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("registrar@example.edu", "app-password")
        _msg, kwargs = server.send_message.call_args
        assert kwargs["to_addrs"] == ["a@example.edu", "b@example.edu"]
        assert record.status == "sent"
        assert record.recipient_count == 2
        assert record.type == "email"
        assert record.subject == "Enrollment"

    def test_email_failure(self, registrar) -> None:
        service = NotificationService(_configured_settings(), registrar)
        with patch("notifications.service.smtplib.SMTP") as smtp_cls:
            server = smtp_cls.return_value.__enter__.return_value
            server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
            with pytest.raises(NotificationDeliveryError):
                service.send_email(["a@example.edu"], "Enrollment", "<p>Open</p>", sent_by=1)
        history = registrar.list_notifications()
        assert len(history) == 1
        assert history[0].status == "failed"

    def test_sms_success(self, registrar) -> None:
        settings = _configured_settings()
        service = NotificationService(settings, registrar)
        response = MagicMock()
        response.raise_for_status.return_value = None
        with patch.object(service._session, "post", return_value=response) as post:
            record = service.send_sms(["+639170000001", "+639170000002"], "Classes start Monday", sent_by=1)

        assert post.call_count == 2
        args, kwargs = post.call_args
        assert args[0] == TWILIO_MESSAGES_URL.format(sid=settings.twilio_account_sid)
        assert kwargs["data"]["To"] == "+639170000002"
        assert kwargs["data"]["From"] == "+15005550006"
        assert kwargs["auth"] == (settings.twilio_account_sid, "token")
        assert record.status == "sent"
        assert record.recipient_count == 2

    def test_sms_failure(self, registrar) -> None:
        service = NotificationService(_configured_settings(), registrar)
        with patch.object(service._session, "post", side_effect=requests.ConnectionError("down")):
            with pytest.raises(NotificationDeliveryError) as exc_info:
                service.send_sms(["+639170000001"], "Hi", sent_by=1)
        assert exc_info.value.notification.id is not None
        assert registrar.list_notifications()[0].status == "failed"


class TestNotificationRoutes:
    @pytest.fixture(autouse=True)
    def _students(self, api_client) -> None:
        client, _token, _uid = api_client
        if not client.app.state.registrar.list_students():
            for n in (1, 2):
                resp = client.post("/api/students", json=registration_payload(n))
                assert resp.status_code == 201, resp.text

    def test_admin_only(self, api_client) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/admin/notifications/email", json={"student_ids": "all", "subject": "s", "message": "m"})
        assert resp.status_code == 401
        assert client.get("/api/admin/notifications/history").status_code == 401

    def test_email_not_configured_is_503(self, api_client) -> None:
        client, token, _uid = api_client
        resp = client.post(
            "/api/admin/notifications/email",
            json={"student_ids": "all", "subject": "Hello", "message": "<p>Hi</p>"},
            headers=bearer(token),
        )
        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "service_unavailable"
        history = client.get("/api/admin/notifications/history", headers=bearer(token)).json()
        assert history[0]["status"] == "failed"
        assert history[0]["recipient_count"] == 2

    def test_no_recipients(self, api_client) -> None:
        client, token, _uid = api_client
        resp = client.post(
            "/api/admin/notifications/sms",
            json={"student_ids": [99999], "message": "Hi"},
            headers=bearer(token),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "no_recipients"

    def test_email_success_single_id(self, api_client) -> None:
        client, token, admin_id = api_client
        original = client.app.state.notifier
        client.app.state.notifier = NotificationService(_configured_settings(), client.app.state.registrar)
        try:
            first = client.app.state.registrar.list_students()[0]
            with patch("notifications.service.smtplib.SMTP") as smtp_cls:
                resp = client.post(
                    "/api/admin/notifications/email",
                    json={"student_ids": first.id, "subject": "Welcome", "message": "<p>Hi</p>"},
                    headers=bearer(token),
                )
            assert resp.status_code == 200, resp.text
            data = resp.json()
            assert data["status"] == "sent"
            assert data["recipient_count"] == 1
            assert data["sent_by"] == admin_id
            server = smtp_cls.return_value.__enter__.return_value
            assert server.send_message.call_args.kwargs["to_addrs"] == [first.email]
        finally:
            client.app.state.notifier.close()
            client.app.state.notifier = original

    def test_sms_provider_failure_is_502(self, api_client) -> None:
        client, token, _uid = api_client
        original = client.app.state.notifier
        service = NotificationService(_configured_settings(), client.app.state.registrar)
        client.app.state.notifier = service
        try:
            ids = [s.id for s in client.app.state.registrar.list_students()]
            with patch.object(service._session, "post", side_effect=requests.Timeout("slow")):
                resp = client.post(
                    "/api/admin/notifications/sms",
                    json={"student_ids": ids, "message": "Hi"},
                    headers=bearer(token),
                )
            assert resp.status_code == 502
            assert resp.json()["error"]["code"] == "delivery_failed"
            assert resp.json()["error"]["detail"].startswith("notification_id=")
        finally:
            service.close()
            client.app.state.notifier = original

    def test_history_newest_first(self, api_client) -> None:
        client, token, _uid = api_client
        history = client.get("/api/admin/notifications/history", params={"limit": 1000}, headers=bearer(token)).json()
        ids = [n["id"] for n in history]
        assert ids == sorted(ids, reverse=True)
