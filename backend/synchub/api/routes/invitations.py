"""
Invitations API.

Endpoints:
- POST /api/invitations                      - Create (and email) an invitation
- GET  /api/invitations?store_id=...         - List a store's invitations
- GET  /api/invitations/validate?token=...   - Public token check for the accept page
- POST /api/invitations/accept               - Accept with the caller's identity
- GET  /api/invitations/stats?store_id=...   - Counts per status
- POST /api/invitations/{invitation_id}/cancel
- POST /api/invitations/{invitation_id}/resend

SECURITY:
- Store managers (admin or owner) only, except validate and accept
- validate never returns the token and masks the invitee email
- A losing concurrent accept gets 409 INVITATION_NOT_PENDING; clients must
  not retry the same token
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from synchub.access.permissions import require_store_manager
from synchub.api.dependencies.identity import (
    get_current_profile,
    get_optional_profile,
    require_auth_subject,
)
from synchub.api.dependencies.services import (
    get_invitation_notifier,
    get_invitation_service,
)
from synchub.api.schemas.invitations import (
    AcceptInvitationRequest,
    AcceptInvitationResponse,
    InvitationCreateRequest,
    InvitationListResponse,
    InvitationResendRequest,
    InvitationResponse,
    InvitationStatsResponse,
    InvitationValidationResponse,
)
from synchub.models.invitation import Invitation
from synchub.models.profile import Profile
from synchub.services.invitation_notifier import InvitationNotifier, role_display_name
from synchub.services.invitation_service import InvitationService
from synchub.utils.email import mask_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/invitations", tags=["invitations"])


def _to_response(
    invitation: Invitation,
    invitation_url: Optional[str] = None,
    email_sent: Optional[bool] = None,
) -> InvitationResponse:
    return InvitationResponse(
        id=invitation.id,
        email=invitation.email,
        store_id=invitation.store_id,
        role=invitation.role.value,
        status=invitation.status.value,
        invited_by=invitation.invited_by,
        expires_at=invitation.expires_at,
        accepted_at=invitation.accepted_at,
        accepted_by=invitation.accepted_by,
        created_at=invitation.created_at,
        invitation_url=invitation_url,
        email_sent=email_sent,
    )


@router.post("", response_model=InvitationResponse, status_code=201)
async def create_invitation(
    body: InvitationCreateRequest,
    profile: Profile = Depends(get_current_profile),
    service: InvitationService = Depends(get_invitation_service),
    notifier: InvitationNotifier = Depends(get_invitation_notifier),
):
    invitation = service.create(
        body.email,
        body.store_id,
        role=body.role,
        ttl_hours=body.ttl_hours,
        invited_by=profile,
        metadata=body.metadata,
    )
    email_sent = None
    if body.send_email:
        email_sent = notifier.send_invitation(invitation, inviter_name=profile.name)
    return _to_response(invitation, service.invitation_url(invitation.token), email_sent)


@router.get("", response_model=InvitationListResponse)
async def list_invitations(
    store_id: str = Query(...),
    status: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    profile: Profile = Depends(get_current_profile),
    service: InvitationService = Depends(get_invitation_service),
):
    store = service.directory.get_store(store_id)
    require_store_manager(profile, store, "list_invitations")
    invitations = service.list_invitations(store_id=store_id, status=status, role=role)
    return InvitationListResponse(
        invitations=[_to_response(inv) for inv in invitations],
        total=len(invitations),
    )


@router.get("/validate", response_model=InvitationValidationResponse)
async def validate_invitation(
    token: str = Query(...),
    service: InvitationService = Depends(get_invitation_service),
):
    """Public, read-only token check."""
    result = service.validate(token)
    invitation = result.invitation
    if invitation is None:
        return InvitationValidationResponse(valid=False, reason=result.reason)
    return InvitationValidationResponse(
        valid=result.valid,
        reason=result.reason,
        store_name=invitation.store.name if invitation.store else None,
        role=role_display_name(invitation.role.value),
        email=mask_email(invitation.email),
        expires_at=invitation.expires_at,
    )


@router.post("/accept", response_model=AcceptInvitationResponse)
async def accept_invitation(
    body: AcceptInvitationRequest,
    auth_subject_id: str = Depends(require_auth_subject),
    profile: Optional[Profile] = Depends(get_optional_profile),
    service: InvitationService = Depends(get_invitation_service),
):
    """
    Accept an invitation as the authenticated caller.

    A caller without a profile yet (first sign-in) is matched to the
    invitation email and linked to its auth subject.
    """
    result = service.accept(
        body.token,
        accepting_profile=profile,
        auth_subject_id=auth_subject_id,
    )
    return AcceptInvitationResponse(
        success=result.success,
        store_id=result.store_id,
        invitation_id=result.invitation_id,
        profile_id=result.profile_id,
    )


@router.get("/stats", response_model=InvitationStatsResponse)
async def invitation_stats(
    store_id: str = Query(...),
    profile: Profile = Depends(get_current_profile),
    service: InvitationService = Depends(get_invitation_service),
):
    store = service.directory.get_store(store_id)
    require_store_manager(profile, store, "invitation_stats")
    return InvitationStatsResponse(store_id=store_id, **service.stats(store_id))


@router.post("/{invitation_id}/cancel", response_model=InvitationResponse)
async def cancel_invitation(
    invitation_id: str,
    profile: Profile = Depends(get_current_profile),
    service: InvitationService = Depends(get_invitation_service),
):
    invitation = service.cancel(invitation_id, actor=profile)
    return _to_response(invitation)


@router.post("/{invitation_id}/resend", response_model=InvitationResponse)
async def resend_invitation(
    invitation_id: str,
    request: Request,
    body: Optional[InvitationResendRequest] = None,
    profile: Profile = Depends(get_current_profile),
    service: InvitationService = Depends(get_invitation_service),
    notifier: InvitationNotifier = Depends(get_invitation_notifier),
):
    """New token and expiry; the previous link stops working."""
    body = body or InvitationResendRequest()
    invitation = service.resend(invitation_id, actor=profile, ttl_hours=body.ttl_hours)
    email_sent = None
    if body.send_email:
        email_sent = notifier.send_invitation(invitation, inviter_name=profile.name, reminder=True)
    logger.info(
        "Invitation resent via API",
        extra={"invitation_id": invitation_id, "path": request.url.path},
    )
    return _to_response(invitation, service.invitation_url(invitation.token), email_sent)
