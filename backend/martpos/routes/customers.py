# Overview: Flask API routes for customer credit; credit selector, open credit sales and account payments.

# backend/martpos/routes/customers.py
"""
Customer credit routes.

Balances are never written here directly: they move only through a
committed credit sale or a recorded customer payment.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import PosError
from ..services import credit_service


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("/credit")
def credit_customers_route():
    """Active customers allowed to buy on account, with live balance and limit."""
    statuses = credit_service.credit_customers()
    return jsonify({"customers": [s.to_dict() for s in statuses]}), 200


@customers_bp.get("/<int:customer_id>/credit")
def credit_status_route(customer_id: int):
    try:
        status = credit_service.credit_status(customer_id)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"credit": status.to_dict()}), 200


@customers_bp.get("/<int:customer_id>/credit-sales")
def open_credit_sales_route(customer_id: int):
    """Open credit sales (balance_due > 0), newest first."""
    try:
        sales = credit_service.open_credit_sales_for(customer_id)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"sales": [s.to_dict() for s in sales]}), 200


@customers_bp.get("/<int:customer_id>/payments")
def list_payments_route(customer_id: int):
    try:
        payments = credit_service.payments_for(customer_id)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"payments": [p.to_dict() for p in payments]}), 200


@customers_bp.post("/<int:customer_id>/payments")
def record_payment_route(customer_id: int):
    """
    Record a payment against a customer's account.

    Body:
    {
      "amount": "20.00",
      "payment_method": "cash",      (cash, card, momo)
      "sale_id": 12,                  (optional, earmark to one open credit sale)
      "reference_number": "...",      (optional)
      "notes": "...",                 (optional)
      "recorded_by": "cashier-1"      (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    if data.get("amount") in (None, ""):
        return jsonify({"error": "amount required"}), 400

    try:
        payment = credit_service.record_customer_payment(
            customer_id,
            data.get("amount"),
            payment_method=data.get("payment_method") or "cash",
            sale_id=data.get("sale_id"),
            reference_number=data.get("reference_number"),
            notes=data.get("notes"),
            recorded_by=data.get("recorded_by"),
        )
        status = credit_service.credit_status(customer_id)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record customer payment")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"payment": payment.to_dict(), "credit": status.to_dict()}), 201
