# Overview: Ledger store; customers, credit balances and the append-only transaction log.

from __future__ import annotations

from typing import Sequence

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from ..models import Customer, Transaction, TransactionItem
from ..services.concurrency import lock_for_update
from khata.time_utils import utcnow

"""
Ledger invariants (authoritative)

- Transactions and their items are append-only: no updates, no deletes.
- A sale's amount_cents equals the sum of its items' subtotal_cents; items are
  written in the same flush as their transaction.
- credit_balance_cents only moves through adjust_customer_balance(), which
  clamps at zero inside the UPDATE statement itself.
"""

CUSTOMER_MUTABLE_FIELDS = {"name", "phone", "address"}


def apply_customer_patch(c: Customer, patch: dict) -> None:
    for k, v in patch.items():
        if k not in CUSTOMER_MUTABLE_FIELDS:
            continue
        setattr(c, k, v)


class LedgerStore:
    """
    Customer and transaction persistence.

    Like CatalogStore, mutating methods flush and leave the commit to the
    enclosing unit of work.
    """

    def __init__(self, session: Session):
        self.session = session

    # =========================================================================
    # CUSTOMERS
    # =========================================================================

    def get_customer(self, customer_id: int, *, for_update: bool = False) -> Customer | None:
        q = select(Customer).where(Customer.id == customer_id)
        if for_update:
            q = lock_for_update(q)
        return self.session.execute(q).scalar_one_or_none()

    def list_customers(self, search: str | None = None, has_credit: bool = False) -> list[Customer]:
        q = select(Customer)

        if search:
            needle = search.strip().lower()
            q = q.where(
                or_(
                    func.lower(Customer.name).contains(needle, autoescape=True),
                    Customer.phone.contains(needle, autoescape=True),
                )
            )

        if has_credit:
            q = q.where(Customer.credit_balance_cents > 0)

        q = q.order_by(Customer.name.asc(), Customer.id.asc())
        return list(self.session.execute(q).scalars())

    def create_customer(self, patch: dict) -> Customer:
        """Create a customer; the balance always starts at zero."""
        c = Customer(credit_balance_cents=0)
        apply_customer_patch(c, patch)
        self.session.add(c)
        self.session.flush()
        return c

    def update_customer(self, customer_id: int, patch: dict) -> Customer | None:
        """Edit contact details. The balance is not writable here."""
        c = self.get_customer(customer_id)
        if c is None:
            return None
        if patch:
            apply_customer_patch(c, patch)
            c.updated_at = utcnow()
            self.session.flush()
        return c

    def adjust_customer_balance(self, customer_id: int, delta: int) -> Customer | None:
        """
        Relative balance change, clamped at zero, as one UPDATE statement.

        Positive delta adds credit from a sale; negative delta applies a
        payment. A payment larger than the balance leaves it at zero.
        """
        new_balance = Customer.credit_balance_cents + delta
        result = self.session.execute(
            update(Customer)
            .where(Customer.id == customer_id)
            .values(
                credit_balance_cents=case((new_balance < 0, 0), else_=new_balance),
                version_id=Customer.version_id + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return self.session.get(Customer, customer_id, populate_existing=True)

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def append_transaction(self, txn: Transaction, items: Sequence[TransactionItem] = ()) -> Transaction:
        """
        Persist a transaction together with its line items.

        Subtotals are recomputed from quantity and unit price here, whatever
        the caller put on the item.
        """
        for item in items:
            item.subtotal_cents = item.quantity * item.unit_price_cents
            txn.items.append(item)

        if txn.created_at is None:
            txn.created_at = utcnow()

        self.session.add(txn)
        self.session.flush()
        return txn

    def history(self, customer_id: int | None = None, limit: int = 50) -> list[Transaction]:
        """Newest first, with items (and their products) and customer loaded."""
        q = select(Transaction).options(
            selectinload(Transaction.items).selectinload(TransactionItem.product),
            selectinload(Transaction.customer),
        )
        if customer_id is not None:
            q = q.where(Transaction.customer_id == customer_id)
        q = q.order_by(Transaction.created_at.desc(), Transaction.id.desc()).limit(limit)
        return list(self.session.execute(q).scalars())
