"""
Scoped product catalogue API.

Endpoints:
- GET /api/products - Products visible in the caller's current store

Visibility follows the caller's role in the store selected by X-Store-Id
(or the default store): providers see their assigned brand only, and a
provider without a brand sees nothing.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from synchub.access.scope import scope_for
from synchub.api.dependencies.identity import (
    STORE_ID_HEADER,
    get_current_profile,
    get_store_context,
)
from synchub.api.dependencies.services import get_product_query_service
from synchub.api.schemas.stores import ProductListResponse, ProductResponse
from synchub.models.profile import Profile
from synchub.services.product_query_service import ProductQueryService
from synchub.services.store_context_service import StoreContextSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])


@router.get("", response_model=ProductListResponse)
async def list_products(
    response: Response,
    search: Optional[str] = Query(None, description="Case-insensitive name filter"),
    include_inactive: bool = Query(False),
    store_scoped: bool = Query(False, description="Admin only: limit to the current store"),
    profile: Profile = Depends(get_current_profile),
    context: StoreContextSession = Depends(get_store_context),
    service: ProductQueryService = Depends(get_product_query_service),
):
    access = context.current()
    scope = scope_for(profile, access, admin_store_scoped=store_scoped)
    if context.selected_store_id:
        response.headers[STORE_ID_HEADER] = context.selected_store_id

    products = service.list_products(
        scope, search_term=search, include_inactive=include_inactive
    )
    logger.info(
        "Listed products",
        extra={
            "profile_id": profile.id,
            "store_id": scope.store_id,
            "brand_scope": scope.brand.kind.value,
            "count": len(products),
        },
    )
    return ProductListResponse(
        store_id=scope.store_id,
        brand_scope=scope.brand.kind.value,
        products=[ProductResponse.model_validate(p) for p in products],
        total=len(products),
    )
