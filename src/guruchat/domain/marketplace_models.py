from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator, model_validator


ProductType = Literal["single", "pack", "subscription"]


class ProductCategory(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None


def _clean_tags(value: Optional[List[str]]) -> Optional[List[str]]:
    if value is None:
        return None
    tags = [t.strip() for t in value if t and t.strip()]
    return tags or None


class DigitalProductCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    price_paise: int = Field(ge=0)
    category_id: Optional[str] = None
    product_type: ProductType = "single"
    thumbnail_url: Optional[str] = None
    preview_url: Optional[str] = None
    download_urls: Optional[List[str]] = None
    tags: Optional[List[str]] = None

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return _clean_tags(value)


class DigitalProductUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    price_paise: Optional[int] = Field(default=None, ge=0)
    category_id: Optional[str] = None
    product_type: Optional[ProductType] = None
    thumbnail_url: Optional[str] = None
    preview_url: Optional[str] = None
    download_urls: Optional[List[str]] = None
    tags: Optional[List[str]] = None

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return _clean_tags(value)


class DigitalProduct(BaseModel):
    id: str
    seller_id: str
    title: str
    description: Optional[str] = None
    price_paise: int
    category_id: Optional[str] = None
    product_type: ProductType = "single"
    thumbnail_url: Optional[str] = None
    preview_url: Optional[str] = None
    download_urls: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    rating: Optional[float] = None
    review_count: int = 0
    total_sales: int = 0
    is_active: bool = True
    created_at: datetime
    category_name: Optional[str] = None
    seller_name: Optional[str] = None


class ProductFilters(BaseModel):
    category_id: Optional[str] = None
    search: Optional[str] = None
    min_price: Optional[int] = Field(default=None, ge=0)
    max_price: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_range(self) -> "ProductFilters":
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValueError("min_price must not exceed max_price")
        return self


class Purchase(BaseModel):
    id: str
    buyer_id: str
    product_id: str
    amount_paise: int
    status: str
    purchased_at: datetime
    expires_at: Optional[datetime] = None


class PurchaseResult(BaseModel):
    purchase: Purchase
    created: bool


class LibraryItem(BaseModel):
    order_id: str
    buyer_id: str
    product_id: str
    amount_paise: int
    status: str
    purchased_at: datetime
    expires_at: Optional[datetime] = None
    title: str
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    preview_url: Optional[str] = None
    download_urls: Optional[List[str]] = None
    product_type: ProductType = "single"
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    category_icon: Optional[str] = None
    seller_name: Optional[str] = None
    seller_avatar: Optional[str] = None
