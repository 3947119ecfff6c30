# Overview: Flask API routes for committed sales; read-only views used for receipts and reconciliation.

# backend/martpos/routes/sales.py
"""Committed sale lookups (receipt reprint, post-failure reconciliation)"""

from flask import Blueprint, request, jsonify

from ..services import sales_service
from ..services.receipt_service import render_receipt


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _sale_payload(sale) -> dict:
    return {
        "sale": sale.to_dict(),
        "lines": [line.to_dict() for line in sale.lines],
        "payments": [p.to_dict() for p in sale.payments],
    }


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    """Get sale with lines and tenders."""
    sale = sales_service.get_sale(sale_id)
    if not sale:
        return jsonify({"error": "Sale not found"}), 404

    return jsonify(_sale_payload(sale)), 200


@sales_bp.get("/<int:sale_id>/receipt")
def get_receipt_route(sale_id: int):
    """Plain-text receipt for reprinting."""
    sale = sales_service.get_sale(sale_id)
    if not sale:
        return jsonify({"error": "Sale not found"}), 404

    return render_receipt(sale), 200, {"Content-Type": "text/plain; charset=utf-8"}


@sales_bp.get("/latest")
def latest_sale_route():
    """
    Most recent sale for a cashier.

    After a COMMIT_FAILED response, check this before retrying a checkout.

    Query params:
    - cashier_id: str (required)
    """
    cashier_id = (request.args.get("cashier_id") or "").strip()
    if not cashier_id:
        return jsonify({"error": "cashier_id required"}), 400

    sale = sales_service.latest_sale_for_cashier(cashier_id)
    if not sale:
        return jsonify({"error": "No sales for this cashier"}), 404

    return jsonify(_sale_payload(sale)), 200
