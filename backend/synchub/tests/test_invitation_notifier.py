"""
Tests for invitation email delivery.

The Resend API is replaced with an httpx.MockTransport; no network calls.
"""

import json

import httpx
import pytest

from synchub.models.invitation import InvitationStatus
from synchub.platform.audit import AuditAction, AuditLog
from synchub.platform.email_client import EmailClient, EmailDeliveryError, ResendConfig
from synchub.services.invitation_notifier import InvitationNotifier, role_display_name


class RecordingTransport:
    """MockTransport handler that records requests."""

    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.body = body if body is not None else {"id": "msg_123"}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)


def _client(handler):
    config = ResendConfig(api_key="re_test", from_email="noreply@example.com")
    return EmailClient(config, http_client=httpx.Client(transport=httpx.MockTransport(handler)))


@pytest.fixture
def invitation(invitation_service, locatario, store):
    return invitation_service.create("vendor@example.com", store.id, invited_by=locatario)


class TestEmailClient:

    def test_send_posts_to_resend(self):
        transport = RecordingTransport()

        message_id = _client(transport).send("to@example.com", "Hola", "<p>hi</p>")

        assert message_id == "msg_123"
        request = transport.requests[0]
        assert str(request.url) == "https://api.resend.com/emails"
        assert request.headers["Authorization"] == "Bearer re_test"
        assert json.loads(request.content) == {
            "from": "noreply@example.com",
            "to": ["to@example.com"],
            "subject": "Hola",
            "html": "<p>hi</p>",
        }

    def test_provider_rejection_raises(self):
        transport = RecordingTransport(status_code=422, body={"message": "Invalid `to` field"})

        with pytest.raises(EmailDeliveryError, match="Invalid `to` field"):
            _client(transport).send("to@example.com", "Hola", "<p>hi</p>")

    def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(EmailDeliveryError):
            _client(handler).send("to@example.com", "Hola", "<p>hi</p>")

    def test_accepted_send_without_json_body(self):
        def handler(request):
            return httpx.Response(200, text="queued")

        assert _client(handler).send("to@example.com", "Hola", "<p>hi</p>") is None

    def test_accepted_send_with_non_object_body(self):
        assert _client(RecordingTransport(body=["msg_123"])).send("to@example.com", "Hola", "<p>hi</p>") is None

    def test_rejection_without_json_body_uses_reason(self):
        def handler(request):
            return httpx.Response(502, text="<html>bad gateway</html>")

        with pytest.raises(EmailDeliveryError, match="Bad Gateway"):
            _client(handler).send("to@example.com", "Hola", "<p>hi</p>")

    def test_from_env_without_key(self, monkeypatch):
        monkeypatch.delenv("RESEND_API_KEY", raising=False)
        assert ResendConfig.from_env() is None

    def test_from_env_with_key(self, monkeypatch):
        monkeypatch.setenv("RESEND_API_KEY", "re_live")
        monkeypatch.setenv("EMAIL_FROM", "hub@example.com")

        config = ResendConfig.from_env()

        assert config.api_key == "re_live"
        assert config.from_email == "hub@example.com"


class TestInvitationNotifier:

    def test_render(self, db_session, settings, invitation):
        notifier = InvitationNotifier(db_session, None, settings=settings)

        subject, html = notifier.render(invitation, "Owner <script>")

        assert subject == "Invitación a Tienda Centro - Bsale Sync Hub"
        assert "Proveedor" in html
        assert "Owner &lt;script&gt;" in html
        assert f"https://app.example.com/invitation/accept?token={invitation.token}" in html

    def test_send_invitation(self, db_session, settings, invitation):
        transport = RecordingTransport()
        notifier = InvitationNotifier(db_session, _client(transport), settings=settings)

        assert notifier.send_invitation(invitation, "Owner") is True

        body = json.loads(transport.requests[0].content)
        assert body["to"] == ["vendor@example.com"]
        assert body["subject"].startswith("Invitación a")

    def test_reminder_subject(self, db_session, settings, invitation):
        transport = RecordingTransport()
        notifier = InvitationNotifier(db_session, _client(transport), settings=settings)

        notifier.send_invitation(invitation, "Owner", reminder=True)

        assert json.loads(transport.requests[0].content)["subject"].startswith("Recordatorio: ")

    def test_failure_is_audited_and_leaves_invitation_pending(self, db_session, settings, invitation):
        notifier = InvitationNotifier(
            db_session, _client(RecordingTransport(status_code=500, body={})), settings=settings
        )

        assert notifier.send_invitation(invitation, "Owner") is False

        db_session.refresh(invitation)
        assert invitation.status == InvitationStatus.PENDING
        audit = db_session.query(AuditLog).filter(
            AuditLog.action == AuditAction.INVITATION_EMAIL_FAILED.value
        ).one()
        assert audit.resource_id == invitation.id
        assert audit.error_code == "EMAIL_DELIVERY_FAILED"

    def test_accepted_send_without_json_body_counts_as_sent(self, db_session, settings, invitation):
        def handler(request):
            return httpx.Response(202, text="accepted")

        notifier = InvitationNotifier(db_session, _client(handler), settings=settings)

        assert notifier.send_invitation(invitation, "Owner") is True
        assert db_session.query(AuditLog).filter(
            AuditLog.action == AuditAction.INVITATION_EMAIL_FAILED.value
        ).count() == 0

    def test_no_client_configured(self, db_session, settings, invitation):
        assert InvitationNotifier(db_session, None, settings=settings).send_invitation(invitation, "Owner") is False

    def test_role_display_name(self):
        assert role_display_name("locatario") == "Locatario"
        assert role_display_name("unknown") == "unknown"
