# Overview: Flask API routes for customer records; parses input and returns JSON responses.

from flask import Blueprint, current_app, request

from ..models import Customer
from ..services.concurrency import StorageError, unit_of_work
from ..stores import get_ledger_store
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_customer,
    ValidationError,
)

# credit_balance_cents is deliberately absent: only the billing engine moves it
CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "phone", "address"}),
    required_on_create=frozenset({"name"}),
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
def list_customers():
    """
    Query params:
    - search: str (optional) - substring of name (case-insensitive) or phone
    - has_credit: "true" (optional) - only customers with an outstanding balance
    """
    customers = get_ledger_store().list_customers(
        search=request.args.get("search"),
        has_credit=request.args.get("has_credit", "").strip().lower() == "true",
    )
    return {"items": [c.to_dict() for c in customers], "count": len(customers)}


@customers_bp.get("/<int:customer_id>")
def get_customer(customer_id: int):
    customer = get_ledger_store().get_customer(customer_id)
    if customer is None:
        return {"error": "Customer not found"}, 404
    return customer.to_dict()


@customers_bp.post("")
def create_customer_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        enforce_rules_customer(patch)
    except ValidationError as e:
        return e.to_dict(), 400

    ledger = get_ledger_store()
    try:
        with unit_of_work(ledger.session):
            created = ledger.create_customer(patch)
        return created.to_dict(), 201
    except StorageError as e:
        current_app.logger.warning("Customer create not committed: %s", e)
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return {"error": "Internal server error"}, 500


@customers_bp.put("/<int:customer_id>")
def update_customer_route(customer_id: int):
    """Edit name, phone or address. The credit balance cannot be set here."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        enforce_rules_customer(patch)
    except ValidationError as e:
        return e.to_dict(), 400

    ledger = get_ledger_store()
    try:
        with unit_of_work(ledger.session):
            updated = ledger.update_customer(customer_id, patch)
        if updated is None:
            return {"error": "Customer not found"}, 404
        return updated.to_dict(), 200
    except StorageError as e:
        current_app.logger.warning("Customer %s update not committed: %s", customer_id, e)
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return {"error": "Internal server error"}, 500
