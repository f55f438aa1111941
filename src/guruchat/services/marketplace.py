"""Digital-goods marketplace: catalogue, seller CRUD, purchases and library.

Prices are integers in minor currency units (paise). Purchases are
idempotent per (buyer, product): buying again returns the existing completed
purchase without a second payment or sales bump.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from threading import RLock
from typing import Dict, List, Optional

from ..core.clock import Clock, isoformat_utc, utc_now
from ..domain.errors import NotFound, NotOwner, ValidationFailed
from ..domain.marketplace_models import (
    DigitalProduct,
    DigitalProductCreate,
    DigitalProductUpdate,
    LibraryItem,
    ProductCategory,
    ProductFilters,
    Purchase,
    PurchaseResult,
)
from ..infrastructure.tables import TableStore, eq, get_table_store, gte, in_, lte
from .profiles import ProfileService

logger = logging.getLogger(__name__)

SUBSCRIPTION_PERIOD = timedelta(days=30)
_PURCHASE_LOCK = RLock()

DEFAULT_CATEGORIES = (
    ("Digital Art", "Illustrations, artwork and design assets", "🎨"),
    ("Photography", "Stock photos and photo packs", "📷"),
    ("Video Content", "Tutorials, courses and footage", "🎬"),
    ("Templates", "Reusable document and design templates", "📄"),
    ("Documents", "Guides, e-books and worksheets", "📚"),
    ("Audio", "Music, sound effects and recordings", "🎵"),
    ("Software", "Scripts, plugins and tools", "💻"),
)


def seed_default_categories(store: Optional[TableStore] = None) -> int:
    """Insert the default categories when the table is empty; returns the number added."""
    store = store or get_table_store()
    if store.select("product_categories", limit=1):
        return 0
    for name, description, icon in DEFAULT_CATEGORIES:
        store.insert("product_categories", {"name": name, "description": description, "icon": icon})
    logger.info("Seeded %d product categories", len(DEFAULT_CATEGORIES))
    return len(DEFAULT_CATEGORIES)


class MarketplaceService:
    def __init__(
        self,
        store: Optional[TableStore] = None,
        profiles: Optional[ProfileService] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self.profiles = profiles or ProfileService(store)
        self.clock = clock

    @property
    def store(self) -> TableStore:
        return self._store or get_table_store()

    # -- catalogue ---------------------------------------------------------

    def list_categories(self) -> List[ProductCategory]:
        rows = self.store.select("product_categories", order_by="name")
        return [ProductCategory.model_validate(r) for r in rows]

    def _categories_by_id(self) -> Dict[str, dict]:
        return {r["id"]: r for r in self.store.select("product_categories")}

    def _decorate(self, rows: List[dict]) -> List[DigitalProduct]:
        categories = self._categories_by_id()
        names: Dict[str, Optional[str]] = {}
        out: List[DigitalProduct] = []
        for row in rows:
            seller = row["seller_id"]
            if seller not in names:
                names[seller] = self.profiles.display_name(seller)
            category = categories.get(row.get("category_id") or "")
            out.append(
                DigitalProduct.model_validate(
                    {
                        **row,
                        "category_name": category["name"] if category else None,
                        "seller_name": names[seller],
                    }
                )
            )
        return out

    def list_products(self, filters: Optional[ProductFilters] = None) -> List[DigitalProduct]:
        """Active products matching ``filters``, newest first. Price bounds are inclusive."""
        filters = filters or ProductFilters()
        clauses = [eq("is_active", True)]
        if filters.category_id:
            clauses.append(eq("category_id", filters.category_id))
        if filters.min_price is not None:
            clauses.append(gte("price_paise", filters.min_price))
        if filters.max_price is not None:
            clauses.append(lte("price_paise", filters.max_price))
        rows = self.store.select("digital_products", clauses, order_by="created_at", descending=True)
        term = (filters.search or "").strip().lower()
        if term:
            rows = [
                r
                for r in rows
                if term in (r.get("title") or "").lower() or term in (r.get("description") or "").lower()
            ]
        return self._decorate(rows)

    def get_product(self, product_id: str) -> DigitalProduct:
        row = self.store.get("digital_products", product_id)
        if row is None:
            raise NotFound("Product")
        return self._decorate([row])[0]

    def seller_products(self, seller_id: str) -> List[DigitalProduct]:
        rows = self.store.select(
            "digital_products",
            [eq("seller_id", seller_id)],
            order_by="created_at",
            descending=True,
        )
        return self._decorate(rows)

    # -- seller CRUD -------------------------------------------------------

    def _check_category(self, category_id: Optional[str]) -> None:
        if category_id and self.store.get("product_categories", category_id) is None:
            raise NotFound("Category")

    def create_product(self, seller_id: str, data: DigitalProductCreate) -> DigitalProduct:
        profile = self.profiles.find_profile(seller_id)
        if profile is None or not profile.is_helper:
            raise NotOwner("Only helpers can sell products")
        self._check_category(data.category_id)
        row = self.store.insert(
            "digital_products",
            {
                **data.model_dump(),
                "seller_id": seller_id,
                "rating": None,
                "review_count": 0,
                "total_sales": 0,
                "is_active": True,
                "created_at": isoformat_utc(self.clock()),
            },
        )
        logger.info("Product %s created by %s", row["id"], seller_id)
        return self._decorate([row])[0]

    def _owned(self, user_id: str, product_id: str) -> dict:
        row = self.store.get("digital_products", product_id)
        if row is None:
            raise NotFound("Product")
        if row["seller_id"] != user_id:
            raise NotOwner("You can only manage your own products")
        return row

    def update_product(self, user_id: str, product_id: str, data: DigitalProductUpdate) -> DigitalProduct:
        self._owned(user_id, product_id)
        values = data.model_dump(exclude_unset=True)
        if "category_id" in values:
            self._check_category(values["category_id"])
        if not values:
            return self.get_product(product_id)
        updated = self.store.update("digital_products", [eq("id", product_id)], values)
        return self._decorate(updated)[0]

    def delete_product(self, user_id: str, product_id: str) -> bool:
        """Remove a product; returns True when it was hard-deleted.

        Products that have been sold stay in buyers' libraries, so they are only
        deactivated.
        """
        row = self._owned(user_id, product_id)
        sold = row.get("total_sales", 0) > 0 or bool(
            self.store.select("purchases", [eq("product_id", product_id)], limit=1)
        )
        if sold:
            self.store.update("digital_products", [eq("id", product_id)], {"is_active": False})
            logger.info("Product %s deactivated by %s", product_id, user_id)
            return False
        self.store.delete("digital_products", [eq("id", product_id)])
        logger.info("Product %s deleted by %s", product_id, user_id)
        return True

    # -- purchases ---------------------------------------------------------

    def _existing_purchase(self, buyer_id: str, product_id: str) -> Optional[dict]:
        rows = self.store.select(
            "purchases",
            [eq("buyer_id", buyer_id), eq("product_id", product_id), eq("status", "completed")],
            limit=1,
        )
        return rows[0] if rows else None

    def purchase(self, buyer_id: str, product_id: str) -> PurchaseResult:
        with _PURCHASE_LOCK:
            existing = self._existing_purchase(buyer_id, product_id)
            if existing is not None:
                return PurchaseResult(purchase=Purchase.model_validate(existing), created=False)
            product = self.store.get("digital_products", product_id)
            if product is None:
                raise NotFound("Product")
            if not product.get("is_active", True):
                raise ValidationFailed("This product is no longer available")
            if product["seller_id"] == buyer_id:
                raise ValidationFailed("You cannot buy your own product")

            now = self.clock()
            expires = now + SUBSCRIPTION_PERIOD if product.get("product_type") == "subscription" else None
            row = self.store.insert(
                "purchases",
                {
                    "buyer_id": buyer_id,
                    "product_id": product_id,
                    "amount_paise": product["price_paise"],
                    "status": "completed",
                    "purchased_at": isoformat_utc(now),
                    "expires_at": isoformat_utc(expires) if expires else None,
                },
            )
            self.store.insert(
                "payments",
                {
                    "client_id": buyer_id,
                    "helper_id": product["seller_id"],
                    "amount": product["price_paise"],
                    "status": "completed",
                    "payment_type": "product",
                    "reference_id": row["id"],
                },
            )
            self.store.update(
                "digital_products",
                [eq("id", product_id)],
                {"total_sales": int(product.get("total_sales") or 0) + 1},
            )
        logger.info("Purchase %s buyer=%s product=%s", row["id"], buyer_id, product_id)
        return PurchaseResult(purchase=Purchase.model_validate(row), created=True)

    def library(self, user_id: str) -> List[LibraryItem]:
        purchases = self.store.select(
            "purchases",
            [eq("buyer_id", user_id), eq("status", "completed")],
            order_by="purchased_at",
            descending=True,
        )
        if not purchases:
            return []
        products = {
            r["id"]: r
            for r in self.store.select("digital_products", [in_("id", [p["product_id"] for p in purchases])])
        }
        categories = self._categories_by_id()
        items: List[LibraryItem] = []
        seen = set()
        for purchase in purchases:
            product = products.get(purchase["product_id"])
            if product is None or product["id"] in seen:
                continue
            seen.add(product["id"])
            category = categories.get(product.get("category_id") or "") or {}
            seller = self.profiles.find_profile(product["seller_id"])
            items.append(
                LibraryItem(
                    order_id=purchase["id"],
                    buyer_id=purchase["buyer_id"],
                    product_id=product["id"],
                    amount_paise=purchase["amount_paise"],
                    status=purchase["status"],
                    purchased_at=purchase["purchased_at"],
                    expires_at=purchase.get("expires_at"),
                    title=product["title"],
                    description=product.get("description"),
                    thumbnail_url=product.get("thumbnail_url"),
                    preview_url=product.get("preview_url"),
                    download_urls=product.get("download_urls"),
                    product_type=product.get("product_type") or "single",
                    category_id=product.get("category_id"),
                    category_name=category.get("name"),
                    category_icon=category.get("icon"),
                    seller_name=seller.display_name if seller else None,
                    seller_avatar=seller.avatar_url if seller else None,
                )
            )
        return items
