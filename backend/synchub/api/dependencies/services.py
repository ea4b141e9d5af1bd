"""Service wiring for request handlers."""

from typing import Iterator, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from synchub.api.dependencies.identity import get_correlation_id
from synchub.config.settings import AccessControlSettings, get_settings
from synchub.database.session import get_db_session
from synchub.platform.email_client import EmailClient, ResendConfig
from synchub.services.invitation_notifier import InvitationNotifier
from synchub.services.invitation_service import InvitationService
from synchub.services.product_query_service import ProductQueryService
from synchub.services.tenant_directory_service import TenantDirectoryService


def get_app_settings() -> AccessControlSettings:
    return get_settings()


def get_email_client() -> Iterator[Optional[EmailClient]]:
    """Request-scoped Resend client; None when email is not configured."""
    config = ResendConfig.from_env()
    if config is None:
        yield None
        return
    client = EmailClient(config)
    try:
        yield client
    finally:
        client.close()


def get_directory_service(
    request: Request,
    db: Session = Depends(get_db_session),
) -> TenantDirectoryService:
    return TenantDirectoryService(db, correlation_id=get_correlation_id(request))


def get_invitation_service(
    request: Request,
    db: Session = Depends(get_db_session),
    settings: AccessControlSettings = Depends(get_app_settings),
) -> InvitationService:
    return InvitationService(db, correlation_id=get_correlation_id(request), settings=settings)


def get_invitation_notifier(
    request: Request,
    db: Session = Depends(get_db_session),
    settings: AccessControlSettings = Depends(get_app_settings),
    email_client: Optional[EmailClient] = Depends(get_email_client),
) -> InvitationNotifier:
    return InvitationNotifier(
        db, email_client, settings=settings, correlation_id=get_correlation_id(request)
    )


def get_product_query_service(db: Session = Depends(get_db_session)) -> ProductQueryService:
    return ProductQueryService(db)
