# Overview: Flask API routes for catalog operations; parses input and returns JSON responses.

# backend/khata/routes/products.py
"""
Product management routes.

Reads go straight to the catalog store; writes run inside a unit of work so
a failed request leaves nothing behind.
"""
from flask import Blueprint, current_app, request

from ..models import Product
from ..services.concurrency import StorageError, unit_of_work
from ..stores import get_catalog_store
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    coerce_optional_int,
    check_range,
    MAX_QUANTITY,
    ValidationError,
    ConflictError,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "sku", "category", "price_cents", "stock_quantity", "min_stock_level", "unit"}),
    required_on_create=frozenset({"name", "category", "price_cents"}),
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _flag(name: str) -> bool:
    return request.args.get(name, "").strip().lower() == "true"


@products_bp.get("")
def list_products():
    """
    List active products.

    Query params:
    - search: str (optional) - substring of name or SKU, case-insensitive
    - category: str (optional) - exact category
    - low_stock: "true" (optional) - only products at or below min_stock_level
    """
    products = get_catalog_store().list(
        search=request.args.get("search"),
        category=request.args.get("category"),
        low_stock=_flag("low_stock"),
    )
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    product = get_catalog_store().get(product_id)
    if product is None:
        return {"error": "Product not found"}, 404
    return product.to_dict()


@products_bp.post("")
def create_product_route():
    """Create a new product."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)  # Handles price validation including max check
    except ValidationError as e:
        return e.to_dict(), 400

    catalog = get_catalog_store()
    try:
        with unit_of_work(catalog.session):
            created = catalog.create(patch)
        return created.to_dict(), 201
    except ConflictError as e:
        return {"error": str(e), "field": "sku"}, 409
    except StorageError as e:
        current_app.logger.warning("Product create not committed: %s", e)
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    """
    Update a product.

    Besides the regular fields the payload may carry stock_delta, a relative
    stock change (e.g. +24 for a delivery) that composes with concurrent sales.
    """
    payload = request.get_json(silent=True) or {}

    try:
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        payload = dict(payload)
        stock_delta = coerce_optional_int(payload.pop("stock_delta", None), "stock_delta")
        if stock_delta is not None:
            check_range(stock_delta, "stock_delta", -MAX_QUANTITY, MAX_QUANTITY)
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return e.to_dict(), 400

    catalog = get_catalog_store()
    try:
        with unit_of_work(catalog.session):
            updated = catalog.update(product_id, patch, stock_delta=stock_delta)
        if updated is None:
            return {"error": "Product not found"}, 404
        return updated.to_dict(), 200
    except ConflictError as e:
        return {"error": str(e), "field": "sku"}, 409
    except StorageError as e:
        current_app.logger.warning("Product %s update not committed: %s", product_id, e)
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    """Soft-delete a product. Deleting an unknown product is not an error."""
    catalog = get_catalog_store()
    try:
        with unit_of_work(catalog.session):
            catalog.delete(product_id)
        return "", 204
    except StorageError as e:
        current_app.logger.warning("Product %s delete not committed: %s", product_id, e)
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return {"error": "Internal server error"}, 500
