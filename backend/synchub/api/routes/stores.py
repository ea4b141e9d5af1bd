"""
Store directory API.

Endpoints:
- POST   /api/stores                                         - Create a store
- GET    /api/stores/{store_id}                              - Get a store
- PATCH  /api/stores/{store_id}                              - Update a store
- DELETE /api/stores/{store_id}                              - Deactivate a store
- GET    /api/stores/{store_id}/providers                    - List provider associations
- PUT    /api/stores/{store_id}/providers/{provider_id}      - Add / re-add a provider
- DELETE /api/stores/{store_id}/providers/{provider_id}      - Remove a provider
- POST   /api/stores/{store_id}/providers/{provider_id}/reactivate
- PUT    /api/stores/{store_id}/providers/{provider_id}/brand - Assign a brand

Authorization is enforced in TenantDirectoryService (admin or store owner);
reads go through the store access resolver.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from synchub.access.permissions import require_store_manager
from synchub.access.resolver import StoreAccessResolver
from synchub.api.dependencies.identity import get_current_profile
from synchub.api.dependencies.services import (
    get_directory_service,
    get_invitation_notifier,
    get_invitation_service,
)
from synchub.api.schemas.stores import (
    ProviderAssociationListResponse,
    ProviderAssociationRequest,
    ProviderAssociationResponse,
    ProviderToggleResponse,
    StoreCreateRequest,
    StoreCreateResponse,
    StoreDeactivateResponse,
    StoreResponse,
    StoreUpdateRequest,
)
from synchub.models.profile import Profile
from synchub.platform.errors import StoreAccessDeniedError
from synchub.services.invitation_notifier import InvitationNotifier
from synchub.services.invitation_service import InvitationService
from synchub.services.tenant_directory_service import TenantDirectoryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stores", tags=["stores"])


@router.post("", response_model=StoreCreateResponse, status_code=201)
async def create_store(
    body: StoreCreateRequest,
    profile: Profile = Depends(get_current_profile),
    directory: TenantDirectoryService = Depends(get_directory_service),
    invitations: InvitationService = Depends(get_invitation_service),
    notifier: InvitationNotifier = Depends(get_invitation_notifier),
):
    """
    Create a store.

    With locatario_email (admins only) the store is created for a
    placeholder locatario profile and an owner invitation is issued.
    """
    if not body.locatario_email:
        store = directory.create_store(profile, body.name, body.address, body.settings)
        return StoreCreateResponse(store=StoreResponse.model_validate(store))

    onboarding = invitations.onboard_store(
        profile,
        body.name,
        body.address,
        body.locatario_email,
        body.locatario_name or "",
        settings=body.settings,
    )
    notifier.send_invitation(onboarding.invitation, inviter_name=profile.name)

    return StoreCreateResponse(
        store=StoreResponse.model_validate(onboarding.store),
        invitation_id=onboarding.invitation.id,
    )



@router.get("/{store_id}", response_model=StoreResponse)
async def get_store(
    store_id: str,
    profile: Profile = Depends(get_current_profile),
    directory: TenantDirectoryService = Depends(get_directory_service),
):
    """Get a store the caller can access."""
    if not StoreAccessResolver(directory.session).can_access_store(profile, store_id):
        raise StoreAccessDeniedError()
    return StoreResponse.model_validate(directory.get_store(store_id))


@router.patch("/{store_id}", response_model=StoreResponse)
async def update_store(
    store_id: str,
    body: StoreUpdateRequest,
    profile: Profile = Depends(get_current_profile),
    directory: TenantDirectoryService = Depends(get_directory_service),
):
    fields = body.model_dump(exclude_none=True)
    store = directory.update_store(profile, store_id, **fields)
    return StoreResponse.model_validate(store)


@router.delete("/{store_id}", response_model=StoreDeactivateResponse)
async def deactivate_store(
    store_id: str,
    profile: Profile = Depends(get_current_profile),
    directory: TenantDirectoryService = Depends(get_directory_service),
):
    """Soft-delete a store. Repeated calls report deactivated=false."""
    changed = directory.deactivate_store(profile, store_id)
    return StoreDeactivateResponse(store_id=store_id, deactivated=changed)


@router.get("/{store_id}/providers", response_model=ProviderAssociationListResponse)
async def list_providers(
    store_id: str,
    is_active: Optional[bool] = Query(None),
    profile: Profile = Depends(get_current_profile),
    directory: TenantDirectoryService = Depends(get_directory_service),
):
    store = directory.get_store(store_id)
    require_store_manager(profile, store, "list_associations")
    associations = directory.list_associations(store_id=store_id, is_active=is_active)
    return ProviderAssociationListResponse(
        providers=[ProviderAssociationResponse.model_validate(a) for a in associations],
        total=len(associations),
    )


@router.put("/{store_id}/providers/{provider_id}", response_model=ProviderAssociationResponse)
async def upsert_provider(
    store_id: str,
    provider_id: str,
    body: Optional[ProviderAssociationRequest] = None,
    profile: Profile = Depends(get_current_profile),
    directory: TenantDirectoryService = Depends(get_directory_service),
):
    """Add a provider to the store, or re-add a removed one."""
    brand_id = body.marca_id if body else None
    association = directory.upsert_association(profile, store_id, provider_id, brand_id)
    return ProviderAssociationResponse.model_validate(association)


@router.delete("/{store_id}/providers/{provider_id}", response_model=ProviderToggleResponse)
async def remove_provider(
    store_id: str,
    provider_id: str,
    profile: Profile = Depends(get_current_profile),
    directory: TenantDirectoryService = Depends(get_directory_service),
):
    changed = directory.deactivate_association(profile, store_id, provider_id)
    return ProviderToggleResponse(
        store_id=store_id, provider_id=provider_id, is_active=False, changed=changed
    )


@router.post(
    "/{store_id}/providers/{provider_id}/reactivate",
    response_model=ProviderToggleResponse,
)
async def reactivate_provider(
    store_id: str,
    provider_id: str,
    profile: Profile = Depends(get_current_profile),
    directory: TenantDirectoryService = Depends(get_directory_service),
):
    changed = directory.reactivate_association(profile, store_id, provider_id)
    return ProviderToggleResponse(
        store_id=store_id, provider_id=provider_id, is_active=True, changed=changed
    )


@router.put(
    "/{store_id}/providers/{provider_id}/brand",
    response_model=ProviderAssociationResponse,
)
async def assign_provider_brand(
    store_id: str,
    provider_id: str,
    body: ProviderAssociationRequest,
    profile: Profile = Depends(get_current_profile),
    directory: TenantDirectoryService = Depends(get_directory_service),
):
    """Set the provider's brand in the store; null clears it."""
    association = directory.assign_brand(profile, store_id, provider_id, body.marca_id)
    return ProviderAssociationResponse.model_validate(association)
