from __future__ import annotations

from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import ValidationError

from ...domain.errors import DOMAIN_ERRORS
from ...domain.marketplace_models import (
    DigitalProduct,
    DigitalProductCreate,
    DigitalProductUpdate,
    LibraryItem,
    ProductCategory,
    ProductFilters,
    PurchaseResult,
)
from ...security.auth import User, get_current_user
from ...security.rbac import Permission, require_permission
from ...services.marketplace import MarketplaceService
from ..errors import http_error

router = APIRouter(prefix="/marketplace", tags=["marketplace"])
library_router = APIRouter(tags=["marketplace"])


@router.get("/categories", response_model=List[ProductCategory])
def list_categories() -> List[ProductCategory]:
    return MarketplaceService().list_categories()


@router.get("/products", response_model=List[DigitalProduct])
def list_products(
    category_id: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    min_price: Optional[int] = Query(None, ge=0),
    max_price: Optional[int] = Query(None, ge=0),
) -> List[DigitalProduct]:
    try:
        filters = ProductFilters(category_id=category_id, search=search, min_price=min_price, max_price=max_price)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.errors(include_url=False, include_context=False))
    return MarketplaceService().list_products(filters)


@router.get("/products/mine", response_model=List[DigitalProduct])
def my_products(user: User = Depends(get_current_user)) -> List[DigitalProduct]:
    return MarketplaceService().seller_products(user.id)


@router.get("/products/{product_id}", response_model=DigitalProduct)
def get_product(product_id: str) -> DigitalProduct:
    try:
        return MarketplaceService().get_product(product_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)


@router.post("/products", response_model=DigitalProduct, status_code=status.HTTP_201_CREATED)
def create_product(
    req: DigitalProductCreate,
    user: User = Depends(require_permission(Permission.PRODUCT_WRITE)),
) -> DigitalProduct:
    try:
        return MarketplaceService().create_product(user.id, req)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)


@router.patch("/products/{product_id}", response_model=DigitalProduct)
def update_product(
    product_id: str,
    req: DigitalProductUpdate,
    user: User = Depends(require_permission(Permission.PRODUCT_WRITE)),
) -> DigitalProduct:
    try:
        return MarketplaceService().update_product(user.id, product_id, req)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)


@router.delete("/products/{product_id}")
def delete_product(
    product_id: str,
    user: User = Depends(require_permission(Permission.PRODUCT_WRITE)),
) -> dict:
    try:
        deleted = MarketplaceService().delete_product(user.id, product_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)
    return {"product_id": product_id, "status": "deleted" if deleted else "deactivated"}


@router.post("/products/{product_id}/purchase", response_model=PurchaseResult)
def purchase_product(
    product_id: str,
    response: Response,
    user: User = Depends(require_permission(Permission.PRODUCT_PURCHASE)),
) -> PurchaseResult:
    try:
        result = MarketplaceService().purchase(user.id, product_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)
    response.status_code = status.HTTP_201_CREATED if result.created else status.HTTP_200_OK
    return result


@library_router.get("/library", response_model=List[LibraryItem])
def library(user: User = Depends(get_current_user)) -> List[LibraryItem]:
    return MarketplaceService().library(user.id)
