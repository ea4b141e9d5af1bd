"""Scoped product reads. Every query is narrowed with apply_scope()."""

import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from synchub.access.scope import QueryScope, apply_scope
from synchub.models.product import Product

logger = logging.getLogger(__name__)


class ProductQueryService:
    """Read path for tenant-owned products."""

    def __init__(self, session: Session):
        self.session = session

    def list_products(
        self,
        scope: QueryScope,
        search_term: Optional[str] = None,
        include_inactive: bool = False,
    ) -> List[Product]:
        """
        List products visible under ``scope``.

        Args:
            scope: Result of scope_for() for the caller
            search_term: Case-insensitive substring match on the name
            include_inactive: Include soft-deleted products
        """
        query = apply_scope(
            self.session.query(Product), scope, Product.store_id, Product.marca_id
        )
        if not include_inactive:
            query = query.filter(Product.is_active == True)  # noqa: E712
        if search_term:
            query = query.filter(func.lower(Product.name).contains(search_term.strip().lower()))

        products = query.order_by(Product.name, Product.id).all()
        logger.debug(
            "Listed scoped products",
            extra={
                "store_id": scope.store_id,
                "brand_scope": scope.brand.kind.value,
                "count": len(products),
            },
        )
        return products

    def count_products(self, scope: QueryScope) -> int:
        query = apply_scope(
            self.session.query(func.count(Product.id)), scope, Product.store_id, Product.marca_id
        )
        return query.filter(Product.is_active == True).scalar()  # noqa: E712
