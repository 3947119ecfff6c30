# Overview: Flask API routes for catalog lookup; scanned/typed resolution, suggestions and stock reads.

# backend/martpos/routes/catalog.py
"""
Catalog lookup routes.

A miss is not an error: lookup returns 404 with a plain message and
search returns an empty list.
"""
from flask import Blueprint, request, jsonify, current_app

from ..errors import PosError
from ..services import catalog_service
from ..services.catalog_service import MODE_CONFIRM, MODE_PASSIVE


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


@catalog_bp.get("/lookup")
def lookup_route():
    """
    Resolve one scanned or typed string to a product.

    Query params:
    - q: str (required) - the scanned code or typed name
    - mode: "confirm" (default, explicit Enter) or "passive" (keystroke classification)
    """
    q = (request.args.get("q") or "").strip()
    mode = request.args.get("mode", MODE_CONFIRM)
    if not q:
        return jsonify({"error": "q required"}), 400
    if mode not in (MODE_CONFIRM, MODE_PASSIVE):
        return jsonify({"error": f"mode must be '{MODE_CONFIRM}' or '{MODE_PASSIVE}'"}), 400

    try:
        product = catalog_service.resolve_input(q, mode=mode)
    except Exception:
        current_app.logger.exception("Catalog lookup failed")
        return jsonify({"error": "Internal server error"}), 500

    if product is None:
        return jsonify({"error": "Product not found", "query": q}), 404

    return jsonify({
        "product": product.to_dict(),
        "matched_by": "code" if product.barcode == q else "name",
        "barcode_shaped": catalog_service.is_barcode_shaped(
            q, catalog_service.barcode_min_length(mode)
        ),
    }), 200


@catalog_bp.get("/search")
def search_route():
    """
    Live suggestions for the search box.

    Query params:
    - q: str - name fragment (shorter than SEARCH_MIN_CHARS returns [])
    - limit: int (optional)
    """
    q = request.args.get("q", "")
    limit = request.args.get("limit", type=int)
    if limit is not None and limit < 1:
        return jsonify({"error": "limit must be positive"}), 400

    products = catalog_service.search_by_name_prefix(q, limit)
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@catalog_bp.get("/products/<int:product_id>/stock")
def stock_route(product_id: int):
    """Authoritative stock figure for one product (0 when unknown or inactive)."""
    try:
        stock = catalog_service.current_stock(product_id)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"product_id": product_id, "stock": stock}), 200


@catalog_bp.get("/low-stock")
def low_stock_route():
    """
    Products at or below their minimum stock level.

    Query params:
    - threshold: int (optional) - list products with stock below this instead
    """
    threshold = request.args.get("threshold", type=int)
    products = catalog_service.low_stock_products(threshold)
    return jsonify({
        "products": [p.to_dict() for p in products],
        "count": len(products),
    }), 200
