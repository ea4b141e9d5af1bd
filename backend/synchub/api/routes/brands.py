"""
Brand (marca) API.

Endpoints:
- GET    /api/brands             - List brands with provider and product counts
- GET    /api/brands/{brand_id}  - Brand with the providers holding it
- POST   /api/brands             - Create a brand
- PATCH  /api/brands/{brand_id}  - Rename / describe a brand
- DELETE /api/brands/{brand_id}  - Delete a brand no product references
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from synchub.api.dependencies.identity import get_current_profile
from synchub.api.dependencies.services import get_directory_service
from synchub.api.schemas.stores import (
    BrandCreateRequest,
    BrandDetailResponse,
    BrandListResponse,
    BrandResponse,
    BrandSummaryResponse,
    BrandUpdateRequest,
)
from synchub.models.profile import Profile
from synchub.services.tenant_directory_service import TenantDirectoryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/brands", tags=["brands"])


@router.get("", response_model=BrandListResponse)
async def list_brands(
    store_id: Optional[str] = Query(None, description="Limit counts to one store"),
    search: Optional[str] = Query(None, description="Case-insensitive name filter"),
    profile: Profile = Depends(get_current_profile),
    directory: TenantDirectoryService = Depends(get_directory_service),
):
    summaries = directory.list_brands(profile, store_id=store_id, search_term=search)
    return BrandListResponse(
        brands=[
            BrandSummaryResponse(
                id=s.brand.id,
                name=s.brand.name,
                description=s.brand.description,
                provider_count=s.provider_count,
                product_count=s.product_count,
            )
            for s in summaries
        ],
        total=len(summaries),
    )


@router.get("/{brand_id}", response_model=BrandDetailResponse)
async def get_brand(
    brand_id: str,
    store_id: Optional[str] = Query(None, description="Limit providers to one store"),
    profile: Profile = Depends(get_current_profile),
    directory: TenantDirectoryService = Depends(get_directory_service),
):
    brand = directory.get_brand(profile, brand_id)
    holders = directory.list_associations(store_id=store_id, brand_id=brand_id, is_active=True)
    return BrandDetailResponse(
        id=brand.id,
        name=brand.name,
        description=brand.description,
        provider_ids=[a.provider_id for a in holders],
    )


@router.post("", response_model=BrandResponse, status_code=201)
async def create_brand(
    body: BrandCreateRequest,
    profile: Profile = Depends(get_current_profile),
    directory: TenantDirectoryService = Depends(get_directory_service),
):
    brand = directory.create_brand(profile, body.name, body.description)
    return BrandResponse.model_validate(brand)


@router.patch("/{brand_id}", response_model=BrandResponse)
async def update_brand(
    brand_id: str,
    body: BrandUpdateRequest,
    profile: Profile = Depends(get_current_profile),
    directory: TenantDirectoryService = Depends(get_directory_service),
):
    brand = directory.update_brand(profile, brand_id, name=body.name, description=body.description)
    return BrandResponse.model_validate(brand)


@router.delete("/{brand_id}", status_code=204)
async def delete_brand(
    brand_id: str,
    profile: Profile = Depends(get_current_profile),
    directory: TenantDirectoryService = Depends(get_directory_service),
):
    """Fails with BRAND_IN_USE while any product references the brand."""
    directory.delete_brand(profile, brand_id)
    return Response(status_code=204)
