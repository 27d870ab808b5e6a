# Overview: Flask API routes for supplier purchases.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import current_user_id, require_auth
from ..errors import LedgerError, error_response
from ..services import purchase_service


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("")
@require_auth
def create_purchase_route():
    """
    Body: {"items": [{"product_id", "quantity", "unit_cost_cents", "location",
    "supplier", "batch_number", "purchase_date"}], "tax_cents", "invoice_number", "notes"}.
    """
    data = request.get_json(silent=True) or {}
    try:
        purchase = purchase_service.create_purchase(
            items=data.get("items"),
            user_id=current_user_id(),
            tax_cents=data.get("tax_cents", 0),
            invoice_number=data.get("invoice_number"),
            notes=data.get("notes"),
        )
        return jsonify(purchase.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("")
def list_purchases_route():
    try:
        result = purchase_service.list_purchases(
            search=request.args.get("search"),
            period=request.args.get("period"),
            supplier=request.args.get("supplier"),
            page=request.args.get("page"),
            per_page=request.args.get("limit") or request.args.get("per_page"),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return error_response(e)


@purchases_bp.get("/<int:purchase_id>")
def get_purchase_route(purchase_id: int):
    try:
        return jsonify(purchase_service.get_purchase(purchase_id).to_dict()), 200
    except LedgerError as e:
        return error_response(e)
