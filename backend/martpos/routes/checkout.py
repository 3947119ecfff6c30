# Overview: Flask API route for checkout; rebuilds the cart from the request and commits it as one sale.

# backend/martpos/routes/checkout.py
"""
Checkout route.

The client owns the cart while the cashier is ringing up; on pay it sends
the whole cart once. Items with a malformed product id are dropped (and
logged), never coerced. Stock, credit and tender are re-validated here
against the store, not taken from the request.
"""

from flask import Blueprint, request, jsonify, current_app

from ..cart import Cart
from ..errors import CommitFailed, PosError
from ..services import sales_service
from ..services.data_store import get_store
from ..services.payment_service import parse_payment_plan
from ..services.receipt_service import render_receipt


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api")


@checkout_bp.post("/checkout")
def checkout_route():
    """
    Commit a cart as a sale.

    Body:
    {
      "cashier_id": "cashier-1",
      "session_key": "terminal-2",            (optional, defaults to cashier_id)
      "items": [{"product_id": 1, "name": "Milk 1L", "price": "12.50", "quantity": 3}],
      "payment": {"method": "cash", "amount_tendered": "50.00"},
      "discount": "0.00"                       (optional)
    }

    Returns 201 with the sale, its lines and tenders, and the receipt text.
    """
    data = request.get_json(silent=True) or {}
    cashier_id = str(data.get("cashier_id") or "").strip()
    items = data.get("items")

    if not cashier_id:
        return jsonify({"error": "cashier_id required"}), 400
    if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
        return jsonify({"error": "items must be a list of objects"}), 400

    store = get_store()

    try:
        cart = Cart.restore(items, store.get_product_stock, product_source=store.get_product)
        plan = parse_payment_plan(data.get("payment") or data)
        sale = sales_service.commit_sale(
            cart,
            plan,
            cashier_id,
            discount=data.get("discount") or 0,
            store=store,
            guard=current_app.extensions["checkout_guard"],
            session_key=data.get("session_key") or cashier_id,
        )
    except CommitFailed as e:
        current_app.logger.warning("Checkout commit failed for cashier %s: %s", cashier_id, e.details)
        return jsonify(e.to_dict()), e.status_code
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete checkout")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "sale": sale.to_dict(),
        "lines": [line.to_dict() for line in sale.lines],
        "payments": [p.to_dict() for p in sale.payments],
        "receipt": render_receipt(sale),
    }), 201
