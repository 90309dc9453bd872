# Overview: Flask API routes for billing; sales, credit payments and transaction history.

# backend/khata/routes/billing.py
"""Billing API routes: translate JSON into BillingEngine calls."""

from flask import Blueprint, current_app, request

from ..services.billing_service import SaleItem, get_billing_engine
from ..services.concurrency import StorageError
from ..stores import get_ledger_store
from ..validation import (
    NotFoundError,
    ValidationError,
    coerce_int,
    coerce_optional_int,
    coerce_optional_str,
)

billing_bp = Blueprint("billing", __name__, url_prefix="/api/billing")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _parse_sale_payload(data: dict) -> dict:
    items = data.get("items")
    if not isinstance(items, list):
        raise ValidationError("items must be a list", field="items")

    payment_method = data.get("payment_method")
    if not payment_method:
        raise ValidationError("payment_method required", field="payment_method")

    return {
        "items": [SaleItem.from_dict(item, i) for i, item in enumerate(items)],
        "payment_method": str(payment_method).strip().lower(),
        "customer_id": coerce_optional_int(data.get("customer_id"), "customer_id"),
        "customer_name": coerce_optional_str(data.get("customer_name")),
        "customer_phone": coerce_optional_str(data.get("customer_phone")),
        "amount_paid_cents": coerce_optional_int(data.get("amount_paid_cents"), "amount_paid_cents"),
    }


def _parse_payment_payload(data: dict) -> dict:
    for key in ("customer_id", "amount_cents", "payment_method"):
        if data.get(key) is None:
            raise ValidationError(f"{key} required", field=key)

    return {
        "customer_id": coerce_int(data["customer_id"], "customer_id"),
        "amount_cents": coerce_int(data["amount_cents"], "amount_cents"),
        "payment_method": str(data["payment_method"]).strip().lower(),
        "notes": coerce_optional_str(data.get("notes")),
    }


@billing_bp.post("/sales")
def create_sale_route():
    """
    Record a sale.

    Body:
    - items: [{product_id, quantity, unit_price_cents}] (required, non-empty)
    - payment_method: cash | upi | credit (required)
    - customer_id: int (optional)
    - customer_name, customer_phone: walk-in customer (optional)
    - amount_paid_cents: int (optional); the unpaid rest goes onto the customer's credit
    """
    try:
        args = _parse_sale_payload(_json_body())
        txn = get_billing_engine().create_sale(**args)
        return txn.to_dict(include_items=True, include_customer=True), 201

    except ValidationError as e:
        return e.to_dict(), 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except StorageError as e:
        current_app.logger.warning("Sale not committed: %s", e)
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return {"error": "Internal server error"}, 500


@billing_bp.post("/payments")
def record_payment_route():
    """
    Record a payment against a customer's credit balance.

    Body:
    - customer_id: int (required)
    - amount_cents: int > 0 (required)
    - payment_method: cash | upi (required)
    - notes: str (optional)
    """
    try:
        args = _parse_payment_payload(_json_body())
        txn = get_billing_engine().record_payment(**args)
        return txn.to_dict(include_customer=True), 201

    except ValidationError as e:
        return e.to_dict(), 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except StorageError as e:
        current_app.logger.warning("Payment not committed: %s", e)
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return {"error": "Internal server error"}, 500


@billing_bp.get("/history")
def history_route():
    """
    Transactions newest first, with items and customer.

    Query params:
    - customer_id: int (optional)
    - limit: int (optional, default HISTORY_DEFAULT_LIMIT, capped at HISTORY_MAX_LIMIT)
    """
    customer_id = request.args.get("customer_id", type=int)

    limit = request.args.get("limit", default=current_app.config["HISTORY_DEFAULT_LIMIT"], type=int)
    limit = max(1, min(limit, current_app.config["HISTORY_MAX_LIMIT"]))

    rows = get_ledger_store().history(customer_id=customer_id, limit=limit)
    return {
        "items": [r.to_dict(include_items=True, include_customer=True) for r in rows],
        "limit": limit,
    }
