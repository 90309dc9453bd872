# Overview: Catalog store; product reads with pushed-down filters and atomic stock adjustment.

from __future__ import annotations

from typing import Iterable

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import Product
from ..services.concurrency import lock_for_update
from ..validation import ConflictError
from khata.time_utils import utcnow

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "sku",
    "category",
    "price_cents",
    "stock_quantity",
    "min_stock_level",
    "unit",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


class CatalogStore:
    """
    Product persistence.

    Mutating methods flush but never commit: callers wrap them in
    services.concurrency.unit_of_work so several writes land together.
    Soft-deleted products are invisible to every read.
    """

    def __init__(self, session: Session, default_min_stock_level: int = 5):
        self.session = session
        self.default_min_stock_level = default_min_stock_level

    def get(self, product_id: int, *, for_update: bool = False) -> Product | None:
        q = select(Product).where(Product.id == product_id, Product.is_active.is_(True))
        if for_update:
            q = lock_for_update(q)
        return self.session.execute(q).scalar_one_or_none()

    def get_many(self, product_ids: Iterable[int], *, for_update: bool = False) -> dict[int, Product]:
        """Active products keyed by id; missing ids are simply absent."""
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        q = (
            select(Product)
            .where(Product.id.in_(ids), Product.is_active.is_(True))
            .order_by(Product.id.asc())
        )
        if for_update:
            q = lock_for_update(q)
        return {p.id: p for p in self.session.execute(q).scalars()}

    def list(
        self,
        search: str | None = None,
        category: str | None = None,
        low_stock: bool = False,
    ) -> list[Product]:
        q = select(Product).where(Product.is_active.is_(True))

        if search:
            needle = search.strip().lower()
            q = q.where(
                or_(
                    func.lower(Product.name).contains(needle, autoescape=True),
                    func.lower(Product.sku).contains(needle, autoescape=True),
                )
            )

        if category:
            q = q.where(Product.category == category)

        if low_stock:
            q = q.where(Product.stock_quantity <= Product.min_stock_level)

        q = q.order_by(Product.name.asc(), Product.id.asc())
        return list(self.session.execute(q).scalars())

    def create(self, patch: dict) -> Product:
        self._ensure_sku_free(patch.get("sku"))

        p = Product(
            stock_quantity=0,
            min_stock_level=self.default_min_stock_level,
            unit="pcs",
        )
        apply_product_patch(p, patch)
        self.session.add(p)
        self._flush_checking_sku()
        return p

    def update(self, product_id: int, patch: dict, stock_delta: int | None = None) -> Product | None:
        """
        Apply a partial patch, and optionally a relative stock change.

        stock_delta goes through adjust_stock() so it composes with
        concurrent sales instead of overwriting them.
        """
        p = self.get(product_id)
        if p is None:
            return None

        if "sku" in patch and patch["sku"] != p.sku:
            self._ensure_sku_free(patch["sku"], exclude_id=p.id)

        if patch:
            apply_product_patch(p, patch)
            p.updated_at = utcnow()
            self._flush_checking_sku()

        if stock_delta:
            p = self.adjust_stock(product_id, stock_delta)

        return p

    def adjust_stock(self, product_id: int, delta: int) -> Product | None:
        """
        Relative stock change executed as one UPDATE statement.

        The database performs the read-modify-write, so two sales of the
        same product can never lose each other's decrement. Stock is allowed
        to go negative.
        """
        result = self.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.is_active.is_(True))
            .values(
                stock_quantity=Product.stock_quantity + delta,
                version_id=Product.version_id + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return self.session.get(Product, product_id, populate_existing=True)

    def delete(self, product_id: int) -> bool:
        """
        Soft-delete a product. Idempotent: unknown or already deleted ids
        are not an error.
        """
        p = self.session.get(Product, product_id)
        if p is not None and p.is_active:
            p.is_active = False
            p.updated_at = utcnow()
            self.session.flush()
        return True

    def _ensure_sku_free(self, sku: str | None, exclude_id: int | None = None) -> None:
        if not sku:
            return
        q = select(Product.id).where(Product.sku == sku)
        if exclude_id is not None:
            q = q.where(Product.id != exclude_id)
        if self.session.execute(q).first() is not None:
            raise ConflictError("SKU already exists.")

    def _flush_checking_sku(self) -> None:
        """
        Flush, reporting a lost race on the SKU unique constraint as a
        conflict. _ensure_sku_free() cannot see rows another transaction has
        not committed yet.
        """
        try:
            self.session.flush()
        except IntegrityError as exc:
            message = str(exc.orig)
            if "uq_products_sku" in message or "products.sku" in message:
                raise ConflictError("SKU already exists.") from exc
            raise
