"""
Billing Engine - sales and credit ("udhar") payments

WHY: A sale touches several rows at once (stock on every product sold, an
optional walk-in customer, the transaction log, the customer's balance). The
engine validates the request up front, then applies every write inside one
unit of work so readers see the whole sale or none of it.

DESIGN PRINCIPLES:
- Integer minor units everywhere; no float ever enters the arithmetic
- Stock and balance move only through relative adjustments in the stores
- Validation holds no lock; only the commit phase is serialized
- The engine does not retry: StorageError means nothing was applied and the
  caller may resubmit
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from flask import current_app
from sqlalchemy.orm import Session

from ..models import Customer, Transaction, TransactionItem
from ..stores import CatalogStore, LedgerStore
from ..validation import (
    MAX_AMOUNT_CENTS,
    MAX_PRICE_CENTS,
    MAX_QUANTITY,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    check_range,
    coerce_id,
    coerce_int,
    coerce_optional_str,
    enforce_rules_customer,
    validate_payload,
)
from .concurrency import unit_of_work

logger = logging.getLogger(__name__)


# =============================================================================
# PAYMENT METHODS & TRANSACTION TYPES (CONSTANTS)
# =============================================================================

PAYMENT_METHOD_CASH = "cash"
PAYMENT_METHOD_UPI = "upi"
PAYMENT_METHOD_CREDIT = "credit"

SALE_PAYMENT_METHODS = [
    PAYMENT_METHOD_CASH,
    PAYMENT_METHOD_UPI,
    PAYMENT_METHOD_CREDIT,
]

RECEIPT_PAYMENT_METHODS = [
    PAYMENT_METHOD_CASH,
    PAYMENT_METHOD_UPI,
]

TXN_TYPE_SALE = "sale"
TXN_TYPE_PAYMENT = "payment"

DEFAULT_PAYMENT_NOTE = "Payment received to clear Udhar"

ENGINE_EXTENSION_KEY = "khata.billing"

# Same column rules as POST /api/customers, limited to what a sale can carry
WALK_IN_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "phone"}),
    required_on_create=frozenset({"name"}),
)


@dataclass(frozen=True)
class SaleItem:
    """One requested line: product, quantity and the agreed unit price."""
    product_id: int
    quantity: int
    unit_price_cents: int

    @property
    def subtotal_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    @classmethod
    def from_dict(cls, data: Any, index: int = 0) -> "SaleItem":
        prefix = f"items[{index}]"
        if not isinstance(data, dict):
            raise ValidationError(f"{prefix} must be an object", field=prefix)
        for key in ("product_id", "quantity", "unit_price_cents"):
            if data.get(key) is None:
                raise ValidationError(f"{prefix}.{key} is required", field=f"{prefix}.{key}")
        return cls(
            product_id=coerce_int(data["product_id"], f"{prefix}.product_id"),
            quantity=coerce_int(data["quantity"], f"{prefix}.quantity"),
            unit_price_cents=coerce_int(data["unit_price_cents"], f"{prefix}.unit_price_cents"),
        )


def get_billing_engine() -> "BillingEngine":
    """The engine wired up by create_app() for the current application."""
    return current_app.extensions[ENGINE_EXTENSION_KEY]


class BillingEngine:
    """
    Orchestrates sales and payments across the catalog and ledger stores.

    Both stores must share one session: that session is the unit of work
    every sale commits through.
    """

    def __init__(self, catalog: CatalogStore, ledger: LedgerStore):
        if catalog.session is not ledger.session:
            raise ValueError("CatalogStore and LedgerStore must share a session")
        self.catalog = catalog
        self.ledger = ledger

    @property
    def session(self) -> Session:
        return self.ledger.session

    # =========================================================================
    # SALES
    # =========================================================================

    def create_sale(
        self,
        items: Sequence[SaleItem | dict],
        payment_method: str,
        customer_id: int | None = None,
        customer_name: str | None = None,
        customer_phone: str | None = None,
        amount_paid_cents: int | None = None,
    ) -> Transaction:
        """
        Record a sale.

        Args:
            items: requested lines (same product may appear more than once)
            payment_method: cash, upi or credit
            customer_id: existing customer; takes precedence over walk-in fields
            customer_name: creates a walk-in customer when no customer_id is given
            customer_phone: phone for the walk-in customer (optional)
            amount_paid_cents: paid now; defaults to the total for cash/upi and
                0 for credit. Whatever is unpaid goes onto the customer's balance.

        Returns:
            The persisted sale Transaction

        Raises:
            ValidationError: bad items, payment method, amount or missing customer for credit
            NotFoundError: unknown product or customer
            StorageError: commit failed; nothing was applied
        """
        lines = self._validate_items(items)

        if payment_method not in SALE_PAYMENT_METHODS:
            raise ValidationError(
                f"Invalid payment method: {payment_method}. Must be one of {SALE_PAYMENT_METHODS}",
                field="payment_method",
            )

        total_cents = sum(line.subtotal_cents for line in lines)
        if total_cents > MAX_AMOUNT_CENTS:
            raise ValidationError(f"Sale total must not exceed {MAX_AMOUNT_CENTS}", field="items")

        walk_in = None
        if customer_id is not None:
            customer_id = coerce_id(customer_id, "customer_id")
        else:
            walk_in = self._validate_walk_in(customer_name, customer_phone)
        has_customer = customer_id is not None or walk_in is not None

        if payment_method == PAYMENT_METHOD_CREDIT and not has_customer:
            raise ValidationError("Credit sales require a customer", field="customer_id")

        amount_paid = self._resolve_amount_paid(total_cents, payment_method, amount_paid_cents)
        credit_delta = total_cents - amount_paid

        if credit_delta > 0 and not has_customer:
            raise ValidationError(
                "Unpaid amount can only be put on credit for a customer",
                field="amount_paid_cents",
            )

        with unit_of_work(self.session):
            # Lock products in id order so concurrent sales never deadlock
            products = self.catalog.get_many((line.product_id for line in lines), for_update=True)
            for line in lines:
                if line.product_id not in products:
                    raise NotFoundError(f"Product {line.product_id} not found")

            customer = self._resolve_customer(customer_id, walk_in)

            sold = Counter()
            for line in lines:
                sold[line.product_id] += line.quantity
            for product_id in sorted(sold):
                if self.catalog.adjust_stock(product_id, -sold[product_id]) is None:
                    raise NotFoundError(f"Product {product_id} not found")

            txn = Transaction(
                customer_id=customer.id if customer else None,
                type=TXN_TYPE_SALE,
                amount_cents=total_cents,
                payment_method=payment_method,
                notes=f"Credit added: {credit_delta}" if credit_delta > 0 else "Full payment",
            )
            self.ledger.append_transaction(
                txn,
                [
                    TransactionItem(
                        product_id=line.product_id,
                        quantity=line.quantity,
                        unit_price_cents=line.unit_price_cents,
                    )
                    for line in lines
                ],
            )

            if credit_delta > 0:
                self.ledger.adjust_customer_balance(customer.id, credit_delta)

        logger.info(
            "Sale %s recorded: total=%d paid=%d credit=%d customer=%s",
            txn.id, total_cents, amount_paid, credit_delta, txn.customer_id,
        )
        return txn

    # =========================================================================
    # PAYMENTS
    # =========================================================================

    def record_payment(
        self,
        customer_id: int,
        amount_cents: int,
        payment_method: str = PAYMENT_METHOD_CASH,
        notes: str | None = None,
    ) -> Transaction:
        """
        Record money received against a customer's credit balance.

        The balance is floored at zero: paying more than is owed is accepted
        and the excess is not carried as an advance.

        Raises:
            ValidationError: non-positive amount or invalid payment method
            NotFoundError: unknown customer
            StorageError: commit failed; nothing was applied
        """
        customer_id = coerce_id(customer_id, "customer_id")
        amount_cents = coerce_int(amount_cents, "amount_cents")
        if amount_cents <= 0:
            raise ValidationError("Payment amount must be positive", field="amount_cents")
        check_range(amount_cents, "amount_cents", 1, MAX_AMOUNT_CENTS)

        if payment_method not in RECEIPT_PAYMENT_METHODS:
            raise ValidationError(
                f"Invalid payment method: {payment_method}. Must be one of {RECEIPT_PAYMENT_METHODS}",
                field="payment_method",
            )

        with unit_of_work(self.session):
            customer = self.ledger.get_customer(customer_id, for_update=True)
            if customer is None:
                raise NotFoundError(f"Customer {customer_id} not found")

            txn = Transaction(
                customer_id=customer.id,
                type=TXN_TYPE_PAYMENT,
                amount_cents=amount_cents,
                payment_method=payment_method,
                notes=coerce_optional_str(notes) or DEFAULT_PAYMENT_NOTE,
            )
            self.ledger.append_transaction(txn)
            customer = self.ledger.adjust_customer_balance(customer.id, -amount_cents)

        logger.info(
            "Payment %s recorded: customer=%s amount=%d balance=%d",
            txn.id, txn.customer_id, amount_cents, customer.credit_balance_cents,
        )
        return txn

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _validate_items(items: Iterable[SaleItem | dict]) -> list[SaleItem]:
        raw = list(items or [])
        if not raw:
            raise ValidationError("Sale must contain at least one item", field="items")

        lines = []
        for i, item in enumerate(raw):
            if not isinstance(item, SaleItem):
                item = SaleItem.from_dict(item, i)
            line = SaleItem(
                product_id=coerce_id(item.product_id, f"items[{i}].product_id"),
                quantity=coerce_int(item.quantity, f"items[{i}].quantity"),
                unit_price_cents=coerce_int(item.unit_price_cents, f"items[{i}].unit_price_cents"),
            )
            if line.quantity <= 0:
                raise ValidationError("Quantity must be positive", field=f"items[{i}].quantity")
            if line.unit_price_cents < 0:
                raise ValidationError("Unit price must be >= 0", field=f"items[{i}].unit_price_cents")
            check_range(line.quantity, f"items[{i}].quantity", 1, MAX_QUANTITY)
            check_range(line.unit_price_cents, f"items[{i}].unit_price_cents", 0, MAX_PRICE_CENTS)
            lines.append(line)
        return lines

    @staticmethod
    def _validate_walk_in(name: Any, phone: Any) -> dict | None:
        """Clean walk-in contact details; None when no name was given."""
        name = coerce_optional_str(name)
        if name is None:
            return None

        payload = {"name": name}
        phone = coerce_optional_str(phone)
        if phone is not None:
            payload["phone"] = phone

        try:
            patch = validate_payload(model=Customer, payload=payload, policy=WALK_IN_POLICY, partial=False)
            enforce_rules_customer(patch)
        except ValidationError as e:
            raise ValidationError(str(e), field=f"customer_{e.field}") from e
        return patch

    @staticmethod
    def _resolve_amount_paid(total_cents: int, payment_method: str, amount_paid_cents: int | None) -> int:
        if amount_paid_cents is None:
            return 0 if payment_method == PAYMENT_METHOD_CREDIT else total_cents

        amount_paid = coerce_int(amount_paid_cents, "amount_paid_cents")
        if amount_paid < 0 or amount_paid > total_cents:
            raise ValidationError(
                f"amount_paid_cents must be between 0 and the sale total ({total_cents})",
                field="amount_paid_cents",
            )
        return amount_paid

    def _resolve_customer(
        self,
        customer_id: int | None,
        walk_in: dict | None,
    ) -> Customer | None:
        if customer_id is not None:
            customer = self.ledger.get_customer(customer_id, for_update=True)
            if customer is None:
                raise NotFoundError(f"Customer {customer_id} not found")
            return customer

        if walk_in is not None:
            return self.ledger.create_customer(walk_in)

        return None
