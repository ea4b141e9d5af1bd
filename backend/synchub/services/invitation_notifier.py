"""
Invitation email notifications.

Builds the accept link and template fields for an invitation and hands
the rendered email to the EmailClient. Delivery is best effort: failures
are logged and audited, and never change the invitation's state.
"""

import logging
import uuid
from html import escape
from string import Template
from typing import Optional

from sqlalchemy.orm import Session

from synchub.config.settings import AccessControlSettings, get_settings
from synchub.database.session import atomic
from synchub.models.invitation import Invitation
from synchub.platform.audit import (
    AuditAction,
    AuditEvent,
    AuditOutcome,
    write_audit_log_sync,
)
from synchub.platform.email_client import EmailClient, EmailDeliveryError
from synchub.services.invitation_service import build_invitation_url
from synchub.utils.clock import ensure_utc
from synchub.utils.email import mask_email

logger = logging.getLogger(__name__)

ROLE_DISPLAY_NAMES = {
    "locatario": "Locatario",
    "proveedor": "Proveedor",
    "admin": "Administrador",
}

INVITATION_TEMPLATE = Template("""\
<!DOCTYPE html>
<html lang="es">
<head><meta charset="UTF-8"><title>Invitación a Bsale Sync Hub</title></head>
<body style="font-family: sans-serif; color: #333; max-width: 600px; margin: 0 auto;">
  <h1 style="font-size: 20px;">¡Has sido invitado a unirte!</h1>
  <p><strong>$inviter_name</strong> te ha invitado a unirte como <strong>$role</strong> en:</p>
  <h3>$store_name</h3>
  <p>Para aceptar esta invitación, haz clic en el siguiente enlace:</p>
  <p><a href="$invitation_url">Aceptar Invitación</a></p>
  <p>Esta invitación expira el $expires_at (UTC).</p>
  <p style="word-break: break-all;">$invitation_url</p>
  <p>Si no esperabas esta invitación, puedes ignorar este correo.</p>
</body>
</html>
""")


def role_display_name(role: str) -> str:
    return ROLE_DISPLAY_NAMES.get(role, role)


class InvitationNotifier:
    """Sends invitation and reminder emails."""

    def __init__(
        self,
        session: Session,
        email_client: Optional[EmailClient],
        settings: Optional[AccessControlSettings] = None,
        correlation_id: Optional[str] = None,
    ):
        self.session = session
        self.email_client = email_client
        self.settings = settings or get_settings()
        self.correlation_id = correlation_id or str(uuid.uuid4())

    def render(self, invitation: Invitation, inviter_name: str) -> tuple[str, str]:
        """Subject and HTML body for an invitation."""
        store_name = invitation.store.name if invitation.store else ""
        expires_at = ensure_utc(invitation.expires_at)
        html = INVITATION_TEMPLATE.substitute(
            inviter_name=escape(inviter_name or "Bsale Sync Hub"),
            role=escape(role_display_name(invitation.role.value)),
            store_name=escape(store_name),
            invitation_url=escape(build_invitation_url(self.settings.app_base_url, invitation.token)),
            expires_at=expires_at.strftime("%Y-%m-%d %H:%M"),
        )
        subject = f"Invitación a {store_name} - Bsale Sync Hub"
        return subject, html

    def send_invitation(
        self,
        invitation: Invitation,
        inviter_name: str,
        reminder: bool = False,
    ) -> bool:
        """
        Email the invitation link. Returns True when the provider accepted it.

        Never raises for delivery problems; the invitation stays as it is.
        """
        if self.email_client is None:
            logger.warning(
                "Email delivery not configured, skipping invitation email",
                extra={"invitation_id": invitation.id},
            )
            return False

        subject, html = self.render(invitation, inviter_name)
        if reminder:
            subject = f"Recordatorio: {subject}"

        try:
            self.email_client.send(invitation.email, subject, html)
        except EmailDeliveryError as e:
            logger.error(
                "Invitation email failed",
                extra={
                    "invitation_id": invitation.id,
                    "to": mask_email(invitation.email),
                    "error": str(e),
                },
            )
            with atomic(self.session):
                self._emit_email_failed(invitation, str(e))
            return False

        logger.info(
            "Invitation email sent",
            extra={"invitation_id": invitation.id, "reminder": reminder},
        )
        return True

    def _emit_email_failed(self, invitation: Invitation, error: str) -> None:
        write_audit_log_sync(
            db=self.session,
            event=AuditEvent(
                action=AuditAction.INVITATION_EMAIL_FAILED,
                outcome=AuditOutcome.FAILURE,
                store_id=invitation.store_id,
                user_id=invitation.invited_by,
                correlation_id=self.correlation_id,
                resource_type="invitation",
                resource_id=invitation.id,
                source="system",
                error_code="EMAIL_DELIVERY_FAILED",
                metadata={"invitation_id": invitation.id, "error": error},
            ),
        )
