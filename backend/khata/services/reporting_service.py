# Overview: Read-only dashboard aggregates over the catalog and the ledger.

from __future__ import annotations

from datetime import datetime, tzinfo

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..models import Customer, Product, Transaction
from khata.time_utils import local_day_start, local_month_start, utcnow
from .billing_service import TXN_TYPE_SALE


def get_dashboard_summary(session: Session, now: datetime | None = None, tz: tzinfo | None = None) -> dict:
    """
    Dashboard totals, computed in SQL.

    - total_low_stock: active products at or below their reorder threshold
    - total_receivables_cents: sum of all customers' credit balances (udhar)
    - today_sales_cents / this_month_sales_cents: sale amounts since local
      midnight / since the first of the local month

    "Local" is `tz` when given, otherwise the server's time zone. `now` is
    naive UTC like every stored timestamp.
    """
    now = now or utcnow()
    today = local_day_start(now, tz)
    month_start = local_month_start(now, tz)

    total_low_stock = session.execute(
        select(func.count(Product.id)).where(
            Product.is_active.is_(True),
            Product.stock_quantity <= Product.min_stock_level,
        )
    ).scalar_one()

    total_receivables = session.execute(
        select(func.coalesce(func.sum(Customer.credit_balance_cents), 0))
    ).scalar_one()

    def _sales_since(start: datetime) -> int:
        return session.execute(
            select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
                Transaction.type == TXN_TYPE_SALE,
                Transaction.created_at >= start,
            )
        ).scalar_one()

    return {
        "total_low_stock": int(total_low_stock),
        "total_receivables_cents": int(total_receivables),
        "today_sales_cents": int(_sales_since(today)),
        "this_month_sales_cents": int(_sales_since(month_start)),
    }
