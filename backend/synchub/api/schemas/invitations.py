"""
Pydantic schemas for the invitations API.

Tokens are only returned inside invitation_url, and only to the store
manager who created or resent the invitation.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class InvitationCreateRequest(BaseModel):
    email: str = Field(..., description="Invitee email address")
    store_id: str = Field(..., description="Store the invitation grants access to")
    role: str = Field("proveedor", description="proveedor or locatario")
    ttl_hours: Optional[int] = Field(None, gt=0, description="Lifetime in hours (default 72)")
    metadata: Optional[Dict[str, Any]] = None
    send_email: bool = Field(True, description="Email the accept link to the invitee")


class InvitationResendRequest(BaseModel):
    ttl_hours: Optional[int] = Field(None, gt=0)
    send_email: bool = True


class InvitationResponse(BaseModel):
    """Response model for a single invitation."""

    id: str
    email: str
    store_id: str
    role: str
    status: str
    invited_by: Optional[str] = None
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    accepted_by: Optional[str] = None
    created_at: datetime
    invitation_url: Optional[str] = Field(None, description="Accept link (create/resend only)")
    email_sent: Optional[bool] = None


class InvitationListResponse(BaseModel):
    invitations: List[InvitationResponse]
    total: int


class InvitationValidationResponse(BaseModel):
    """Public token check used by the accept page."""

    valid: bool
    reason: Optional[str] = Field(
        None, description="not_found, accepted, cancelled or expired"
    )
    store_name: Optional[str] = None
    role: Optional[str] = None
    email: Optional[str] = None
    expires_at: Optional[datetime] = None


class AcceptInvitationRequest(BaseModel):
    token: str = Field(..., description="Token from the accept link")


class AcceptInvitationResponse(BaseModel):
    success: bool
    store_id: str
    invitation_id: str
    profile_id: str


class InvitationStatsResponse(BaseModel):
    store_id: str
    pending: int = 0
    accepted: int = 0
    expired: int = 0
    cancelled: int = 0
    total: int = 0
