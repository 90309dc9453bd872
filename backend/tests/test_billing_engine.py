"""
Billing engine tests: sales.

Verifies:
- Stock moves by the summed quantity per product
- Unpaid amounts land on the customer's credit balance
- Walk-in customers are created on demand
- Any failure leaves stock, customers and the log untouched
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from khata.models import Customer, Transaction, TransactionItem
from khata.services.billing_service import BillingEngine, SaleItem, TXN_TYPE_SALE
from khata.services.concurrency import StorageError, unit_of_work
from khata.stores import LedgerStore
from khata.validation import MAX_PRICE_CENTS, MAX_QUANTITY, NotFoundError, ValidationError


def _count(session, model) -> int:
    return session.execute(select(func.count(model.id))).scalar_one()


# =============================================================================
# SALE ITEMS
# =============================================================================


class TestSaleItem:

    def test_subtotal_is_quantity_times_unit_price(self):
        assert SaleItem(product_id=1, quantity=3, unit_price_cents=2500).subtotal_cents == 7500

    def test_from_dict_coerces_digit_strings(self):
        item = SaleItem.from_dict({"product_id": "4", "quantity": "2", "unit_price_cents": "1500"})
        assert item == SaleItem(product_id=4, quantity=2, unit_price_cents=1500)

    def test_from_dict_names_missing_field(self):
        with pytest.raises(ValidationError) as exc:
            SaleItem.from_dict({"product_id": 1, "quantity": 2}, index=3)
        assert exc.value.field == "items[3].unit_price_cents"

    def test_from_dict_rejects_non_object(self):
        with pytest.raises(ValidationError) as exc:
            SaleItem.from_dict([1, 2, 3], index=0)
        assert exc.value.field == "items[0]"


# =============================================================================
# SALES - HAPPY PATHS
# =============================================================================


class TestCreateSale:

    def test_credit_sale_moves_stock_and_balance(self, engine, catalog, ledger, product, customer):
        txn = engine.create_sale(
            items=[SaleItem(product.id, 1, 23500)],
            payment_method="credit",
            customer_id=customer.id,
        )

        assert txn.type == TXN_TYPE_SALE
        assert txn.amount_cents == 23500
        assert txn.customer_id == customer.id
        assert txn.notes == "Credit added: 23500"
        assert catalog.get(product.id).stock_quantity == 19
        assert ledger.get_customer(customer.id).credit_balance_cents == 23500

    def test_cash_sale_without_customer(self, engine, catalog, db_session, product):
        txn = engine.create_sale(
            items=[{"product_id": product.id, "quantity": 2, "unit_price_cents": 23500}],
            payment_method="cash",
        )

        assert txn.amount_cents == 47000
        assert txn.customer_id is None
        assert txn.notes == "Full payment"
        assert catalog.get(product.id).stock_quantity == 18
        assert _count(db_session, Customer) == 0

    def test_same_product_twice_decrements_by_sum(self, engine, catalog, product):
        txn = engine.create_sale(
            items=[SaleItem(product.id, 2, 23500), SaleItem(product.id, 3, 23500)],
            payment_method="upi",
        )

        assert catalog.get(product.id).stock_quantity == 15
        assert txn.amount_cents == 5 * 23500
        assert [item.quantity for item in txn.items] == [2, 3]

    def test_amount_is_sum_of_item_subtotals(self, engine, make_product):
        atta = make_product(sku="ATA-001")
        salt = make_product(name="Tata Salt (1kg)", sku="SLT-001", price_cents=2500, stock_quantity=50)

        txn = engine.create_sale(
            items=[SaleItem(atta.id, 1, 23500), SaleItem(salt.id, 2, 2500)],
            payment_method="cash",
        )

        assert txn.amount_cents == 28500
        assert sum(item.subtotal_cents for item in txn.items) == txn.amount_cents
        assert [item.subtotal_cents for item in txn.items] == [23500, 5000]

    def test_unit_price_is_frozen_on_the_line(self, engine, catalog, product):
        txn = engine.create_sale(items=[SaleItem(product.id, 1, 20000)], payment_method="cash")

        with unit_of_work(catalog.session):
            catalog.update(product.id, {"price_cents": 25000})

        item = txn.items[0]
        assert item.unit_price_cents == 20000
        assert item.product.price_cents == 25000

    def test_partial_payment_puts_remainder_on_credit(self, engine, ledger, product, customer):
        txn = engine.create_sale(
            items=[SaleItem(product.id, 1, 23500)],
            payment_method="cash",
            customer_id=customer.id,
            amount_paid_cents=10000,
        )

        assert txn.amount_cents == 23500
        assert txn.notes == "Credit added: 13500"
        assert ledger.get_customer(customer.id).credit_balance_cents == 13500

    def test_fully_paid_sale_leaves_balance_alone(self, engine, ledger, product, customer):
        engine.create_sale(
            items=[SaleItem(product.id, 1, 23500)],
            payment_method="upi",
            customer_id=customer.id,
        )
        assert ledger.get_customer(customer.id).credit_balance_cents == 0

    def test_credit_sale_with_partial_payment(self, engine, ledger, product, customer):
        engine.create_sale(
            items=[SaleItem(product.id, 1, 23500)],
            payment_method="credit",
            customer_id=customer.id,
            amount_paid_cents=3500,
        )
        assert ledger.get_customer(customer.id).credit_balance_cents == 20000

    def test_walk_in_customer_is_created(self, engine, ledger, product):
        txn = engine.create_sale(
            items=[SaleItem(product.id, 1, 23500)],
            payment_method="credit",
            customer_name="  Suresh  ",
            customer_phone="9000000001",
        )

        walk_in = ledger.get_customer(txn.customer_id)
        assert walk_in.name == "Suresh"
        assert walk_in.phone == "9000000001"
        assert walk_in.address is None
        assert walk_in.credit_balance_cents == 23500

    def test_customer_id_takes_precedence_over_walk_in(self, engine, db_session, product, customer):
        txn = engine.create_sale(
            items=[SaleItem(product.id, 1, 23500)],
            payment_method="credit",
            customer_id=customer.id,
            customer_name="Someone Else",
        )

        assert txn.customer_id == customer.id
        assert _count(db_session, Customer) == 1

    def test_stock_may_go_negative(self, engine, catalog, make_product):
        soap = make_product(name="Lux Soap (Set of 4)", sku="SOAP-001", price_cents=11000, stock_quantity=2)

        engine.create_sale(items=[SaleItem(soap.id, 5, 11000)], payment_method="cash")

        assert catalog.get(soap.id).stock_quantity == -3

    def test_sale_is_visible_in_history_with_items(self, engine, ledger, product, customer):
        txn = engine.create_sale(
            items=[SaleItem(product.id, 1, 23500)],
            payment_method="credit",
            customer_id=customer.id,
        )

        latest = ledger.history(limit=1)[0]
        assert latest.id == txn.id
        assert latest.customer.name == "Rahul Sharma"
        assert latest.items[0].product.name == "Aashirvaad Atta (5kg)"


# =============================================================================
# SALES - VALIDATION
# =============================================================================


class TestCreateSaleValidation:

    @pytest.mark.parametrize(
        "quantity,unit_price,field",
        [
            (0, 23500, "items[0].quantity"),
            (-1, 23500, "items[0].quantity"),
            (1.5, 23500, "items[0].quantity"),
            (1, -1, "items[0].unit_price_cents"),
            (1, 99.5, "items[0].unit_price_cents"),
            (10**10, 23500, "items[0].quantity"),
            (1, MAX_PRICE_CENTS + 1, "items[0].unit_price_cents"),
            (1, 10**19, "items[0].unit_price_cents"),
        ],
    )
    def test_bad_line_is_rejected(self, engine, catalog, product, quantity, unit_price, field):
        with pytest.raises(ValidationError) as exc:
            engine.create_sale(items=[SaleItem(product.id, quantity, unit_price)], payment_method="cash")

        assert exc.value.field == field
        assert catalog.get(product.id).stock_quantity == 20

    def test_total_beyond_cap_rejected(self, engine, catalog, ledger, product, customer):
        with pytest.raises(ValidationError) as exc:
            engine.create_sale(
                items=[SaleItem(product.id, MAX_QUANTITY, MAX_PRICE_CENTS)],
                payment_method="credit",
                customer_id=customer.id,
            )

        assert exc.value.field == "items"
        assert catalog.get(product.id).stock_quantity == 20
        assert ledger.get_customer(customer.id).credit_balance_cents == 0

    def test_out_of_range_ids_rejected(self, engine, product):
        with pytest.raises(ValidationError) as exc:
            engine.create_sale(items=[SaleItem(10**19, 1, 100)], payment_method="cash")
        assert exc.value.field == "items[0].product_id"

        with pytest.raises(ValidationError) as exc:
            engine.create_sale(
                items=[SaleItem(product.id, 1, 100)], payment_method="credit", customer_id=10**19,
            )
        assert exc.value.field == "customer_id"

    @pytest.mark.parametrize(
        "name,phone,field",
        [
            ("X" * 300, None, "customer_name"),
            ("Suresh", "call me maybe", "customer_phone"),
            ("Suresh", "9" * 40, "customer_phone"),
        ],
    )
    def test_walk_in_details_follow_customer_rules(self, engine, catalog, db_session, product, name, phone, field):
        with pytest.raises(ValidationError) as exc:
            engine.create_sale(
                items=[SaleItem(product.id, 1, 23500)],
                payment_method="credit",
                customer_name=name,
                customer_phone=phone,
            )

        assert exc.value.field == field
        assert _count(db_session, Customer) == 0
        assert catalog.get(product.id).stock_quantity == 20

    def test_empty_items_rejected(self, engine):
        with pytest.raises(ValidationError) as exc:
            engine.create_sale(items=[], payment_method="cash")
        assert exc.value.field == "items"

    def test_unknown_payment_method_rejected(self, engine, product):
        with pytest.raises(ValidationError) as exc:
            engine.create_sale(items=[SaleItem(product.id, 1, 23500)], payment_method="card")
        assert exc.value.field == "payment_method"

    def test_credit_requires_customer(self, engine, catalog, product):
        with pytest.raises(ValidationError) as exc:
            engine.create_sale(items=[SaleItem(product.id, 1, 23500)], payment_method="credit")

        assert exc.value.field == "customer_id"
        assert catalog.get(product.id).stock_quantity == 20

    @pytest.mark.parametrize("amount_paid", [-1, 23501])
    def test_amount_paid_out_of_range(self, engine, product, customer, amount_paid):
        with pytest.raises(ValidationError) as exc:
            engine.create_sale(
                items=[SaleItem(product.id, 1, 23500)],
                payment_method="cash",
                customer_id=customer.id,
                amount_paid_cents=amount_paid,
            )
        assert exc.value.field == "amount_paid_cents"

    def test_unpaid_remainder_without_customer_rejected(self, engine, db_session, product):
        with pytest.raises(ValidationError) as exc:
            engine.create_sale(
                items=[SaleItem(product.id, 1, 23500)],
                payment_method="cash",
                amount_paid_cents=20000,
            )

        assert exc.value.field == "amount_paid_cents"
        assert _count(db_session, Transaction) == 0


# =============================================================================
# SALES - ALL OR NOTHING
# =============================================================================


class TestCreateSaleAtomicity:

    def test_unknown_product_leaves_nothing_behind(self, engine, catalog, db_session, product):
        with pytest.raises(NotFoundError):
            engine.create_sale(
                items=[SaleItem(product.id, 1, 23500), SaleItem(product.id + 1000, 1, 100)],
                payment_method="credit",
                customer_name="Walk-in",
            )

        assert catalog.get(product.id).stock_quantity == 20
        assert _count(db_session, Customer) == 0
        assert _count(db_session, Transaction) == 0
        assert _count(db_session, TransactionItem) == 0

    def test_unknown_customer_leaves_stock_alone(self, engine, catalog, product):
        with pytest.raises(NotFoundError):
            engine.create_sale(
                items=[SaleItem(product.id, 1, 23500)],
                payment_method="credit",
                customer_id=987654,
            )

        assert catalog.get(product.id).stock_quantity == 20

    def test_deleted_product_cannot_be_sold(self, engine, catalog, product):
        with unit_of_work(catalog.session):
            catalog.delete(product.id)

        with pytest.raises(NotFoundError):
            engine.create_sale(items=[SaleItem(product.id, 1, 23500)], payment_method="cash")

    def test_storage_failure_rolls_back_stock(self, engine, catalog, ledger, db_session, product, customer, monkeypatch):
        def failing_append(txn, items=()):
            raise OperationalError("INSERT INTO transactions", {}, Exception("disk I/O error"))

        monkeypatch.setattr(ledger, "append_transaction", failing_append)

        with pytest.raises(StorageError):
            engine.create_sale(
                items=[SaleItem(product.id, 4, 23500)],
                payment_method="credit",
                customer_id=customer.id,
            )

        monkeypatch.undo()
        assert catalog.get(product.id).stock_quantity == 20
        assert ledger.get_customer(customer.id).credit_balance_cents == 0
        assert _count(db_session, Transaction) == 0

    def test_session_usable_after_failed_sale(self, engine, catalog, product):
        with pytest.raises(NotFoundError):
            engine.create_sale(items=[SaleItem(product.id + 1000, 1, 100)], payment_method="cash")

        engine.create_sale(items=[SaleItem(product.id, 1, 23500)], payment_method="cash")
        assert catalog.get(product.id).stock_quantity == 19


def test_engine_requires_shared_session(catalog):
    with pytest.raises(ValueError):
        BillingEngine(catalog, LedgerStore(session=None))
