"""
Caller store context API.

Endpoints:
- GET  /api/me/stores        - Stores the caller can access, with role and brand scope
- GET  /api/me/active-store  - Current store (falls back to the default)
- POST /api/me/active-store  - Select the current store

The selection is client-held: send it back as X-Store-Id. Responses carry
the effective selection in the same header.
"""

import logging

from fastapi import APIRouter, Depends, Response

from synchub.access.models import UserStoreAccess
from synchub.api.dependencies.identity import STORE_ID_HEADER, get_store_context
from synchub.api.schemas.stores import (
    ActiveStoreRequest,
    ActiveStoreResponse,
    StoreAccessListResponse,
    StoreAccessResponse,
)
from synchub.services.store_context_service import StoreContextSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/me", tags=["me"])


def _access_response(access: UserStoreAccess) -> StoreAccessResponse:
    return StoreAccessResponse(**access.to_dict())


@router.get("/stores", response_model=StoreAccessListResponse)
async def list_my_stores(context: StoreContextSession = Depends(get_store_context)):
    accesses = context.accessible_stores()
    return StoreAccessListResponse(
        stores=[_access_response(a) for a in accesses],
        default_store_id=accesses[0].store_id if accesses else None,
    )


@router.get("/active-store", response_model=ActiveStoreResponse)
async def get_active_store(
    response: Response,
    context: StoreContextSession = Depends(get_store_context),
):
    access = context.current()
    if context.selected_store_id:
        response.headers[STORE_ID_HEADER] = context.selected_store_id
    return ActiveStoreResponse(
        selected_store_id=context.selected_store_id,
        store=_access_response(access) if access else None,
    )


@router.post("/active-store", response_model=ActiveStoreResponse)
async def select_active_store(
    body: ActiveStoreRequest,
    response: Response,
    context: StoreContextSession = Depends(get_store_context),
):
    access = context.select(body.store_id)
    response.headers[STORE_ID_HEADER] = access.store_id
    return ActiveStoreResponse(
        selected_store_id=access.store_id,
        store=_access_response(access),
    )
