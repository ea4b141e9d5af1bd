"""
Pydantic schemas for the store directory and store context APIs.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class StoreCreateRequest(BaseModel):
    """Create a store. Admins may onboard it for a locatario by email."""

    name: str = Field(..., description="Store name, unique among active stores")
    address: str = Field("", description="Street address")
    settings: Optional[Dict[str, Any]] = Field(None, description="Opaque store settings")
    locatario_email: Optional[str] = Field(
        None, description="Admin only: owner email; an invitation is issued"
    )
    locatario_name: Optional[str] = Field(None, description="Admin only: owner display name")


class StoreUpdateRequest(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None


class StoreResponse(BaseModel):
    """Response model for a single store."""

    id: str
    name: str
    address: str
    locatario_id: str
    is_active: bool
    settings: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StoreCreateResponse(BaseModel):
    store: StoreResponse
    invitation_id: Optional[str] = Field(None, description="Locatario invitation, when onboarded")


class StoreDeactivateResponse(BaseModel):
    store_id: str
    deactivated: bool = Field(..., description="False when the store was already inactive")


class ProviderAssociationRequest(BaseModel):
    marca_id: Optional[str] = Field(
        None, description="Brand to assign; omitted keeps the current assignment"
    )


class ProviderAssociationResponse(BaseModel):
    """Response model for a store/provider association."""

    id: str
    store_id: str
    provider_id: str
    marca_id: Optional[str] = None
    is_active: bool
    invited_at: datetime

    class Config:
        from_attributes = True


class ProviderAssociationListResponse(BaseModel):
    providers: List[ProviderAssociationResponse]
    total: int


class ProviderToggleResponse(BaseModel):
    store_id: str
    provider_id: str
    is_active: bool
    changed: bool


class BrandCreateRequest(BaseModel):
    name: str = Field(..., description="Unique brand name")
    description: Optional[str] = None


class BrandUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class BrandResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


class BrandSummaryResponse(BrandResponse):
    provider_count: int = Field(..., description="Active providers holding the brand")
    product_count: int


class BrandListResponse(BaseModel):
    brands: List[BrandSummaryResponse]
    total: int


class BrandDetailResponse(BrandResponse):
    provider_ids: List[str] = Field(
        default_factory=list, description="Providers holding the brand in the requested store(s)"
    )


class ProductResponse(BaseModel):
    id: str
    name: str
    store_id: str
    marca_id: Optional[str] = None
    proveedor_id: Optional[str] = None
    price: float
    stock: int
    is_active: bool

    class Config:
        from_attributes = True


class ProductListResponse(BaseModel):
    """Products visible to the caller in the current store."""

    store_id: Optional[str] = None
    brand_scope: str
    products: List[ProductResponse]
    total: int


class StoreAccessResponse(BaseModel):
    """One accessible store with the caller's role and brand scope."""

    store_id: str
    store_name: str
    role_in_store: str = Field(..., description="admin, locatario or proveedor")
    marca_id: Optional[str] = None
    brand_scope: str = Field(
        ..., description="unrestricted, restricted_to or restricted_to_none"
    )


class StoreAccessListResponse(BaseModel):
    stores: List[StoreAccessResponse]
    default_store_id: Optional[str] = None


class ActiveStoreRequest(BaseModel):
    store_id: str = Field(..., description="Store to make current")


class ActiveStoreResponse(BaseModel):
    """Current store; persist selected_store_id and send it back as X-Store-Id."""

    selected_store_id: Optional[str] = None
    store: Optional[StoreAccessResponse] = None
