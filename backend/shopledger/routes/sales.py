# Overview: Flask API routes for checkout and sales history.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import current_user_id, require_auth
from ..errors import LedgerError, error_response
from ..services import checkout_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def checkout_route():
    """
    Complete a sale.

    Request body:
    {
        "items": [{"product_id": int, "quantity": int, "unit_price_cents": int (optional)}],
        "location": "shop" | "warehouse" (default shop),
        "payment_method": str (default cash),
        "amount_paid_cents": int,
        "discount_cents": int,
        "tax_cents": int (optional),
        "customer_name": str, "customer_mobile": str, "notes": str
    }

    Returns:
        201: Sale created
        400: Invalid request
        409: Insufficient stock (nothing written)
    """
    data = request.get_json(silent=True) or {}
    try:
        sale = checkout_service.checkout(
            items=data.get("items"),
            user_id=current_user_id(),
            location=data.get("location") or "shop",
            payment_method=data.get("payment_method") or "cash",
            amount_paid_cents=data.get("amount_paid_cents", 0),
            discount_cents=data.get("discount_cents", 0),
            tax_cents=data.get("tax_cents"),
            customer_name=data.get("customer_name"),
            customer_mobile=data.get("customer_mobile"),
            notes=data.get("notes"),
        )
        return jsonify(sale.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
def list_sales_route():
    """Query params: search, period (today|week|month|year|all), payment_method, payment_status, page, limit."""
    try:
        result = checkout_service.list_sales(
            search=request.args.get("search"),
            period=request.args.get("period"),
            payment_method=request.args.get("payment_method"),
            payment_status=request.args.get("payment_status"),
            page=request.args.get("page"),
            per_page=request.args.get("limit") or request.args.get("per_page"),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return error_response(e)


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        return jsonify(checkout_service.get_sale(sale_id).to_dict()), 200
    except LedgerError as e:
        return error_response(e)


@sales_bp.post("/<int:sale_id>/payments")
@require_auth
def record_payment_route(sale_id: int):
    """Body: {"amount_cents": int}. Recomputes due and payment status."""
    data = request.get_json(silent=True) or {}
    try:
        sale = checkout_service.record_payment(
            sale_id=sale_id,
            amount_cents=data.get("amount_cents"),
            user_id=current_user_id(),
        )
        return jsonify(sale.to_dict()), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500
