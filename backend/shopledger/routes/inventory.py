# Overview: Flask API routes for the transaction log, stock corrections, transfers and repairs.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import current_user_id, require_auth, require_role
from ..errors import LedgerError, ValidationError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER, ROLE_SUPER_ADMIN
from ..services import bulk_update_service, reconciliation_service, stock_service
from ..services import transaction_log, transfer_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

REPAIR_ROLES = (ROLE_SUPER_ADMIN, ROLE_ADMIN, ROLE_MANAGER)


def _page_args():
    return {
        "page": request.args.get("page"),
        "per_page": request.args.get("limit") or request.args.get("per_page"),
    }


@inventory_bp.get("/transactions")
def list_transactions_route():
    """Query params: product_id, type, status, location, search, start_date, end_date, page, limit."""
    try:
        result = transaction_log.list_transactions(
            product_id=request.args.get("product_id", type=int),
            type=request.args.get("type"),
            status=request.args.get("status"),
            location=request.args.get("location"),
            search=request.args.get("search"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            **_page_args(),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return error_response(e)


@inventory_bp.get("/transactions/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    try:
        return jsonify(transaction_log.get_transaction(transaction_id).to_dict()), 200
    except LedgerError as e:
        return error_response(e)


@inventory_bp.post("/adjust")
@require_auth
def adjust_route():
    """Body: {"product_id", "location", "quantity" (signed), "notes"}."""
    data = request.get_json(silent=True) or {}
    try:
        if "product_id" not in data or "location" not in data or "quantity" not in data:
            raise ValidationError("product_id, location and quantity are required")
        txn = stock_service.adjust_stock(
            product_id=data["product_id"],
            location=data["location"],
            delta=data["quantity"],
            user_id=current_user_id(),
            notes=data.get("notes"),
            reference=data.get("reference"),
        )
        return jsonify(txn.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/set-stock")
@require_auth
def set_stock_route():
    """Body: {"product_id", "location", "value", "notes"}. Records one adjustment for the difference."""
    data = request.get_json(silent=True) or {}
    try:
        if "product_id" not in data or "location" not in data or "value" not in data:
            raise ValidationError("product_id, location and value are required")
        txn = stock_service.set_stock(
            product_id=data["product_id"],
            location=data["location"],
            value=data["value"],
            user_id=current_user_id(),
            notes=data.get("notes"),
        )
        if txn is None:
            return jsonify({"message": "Stock already at requested value", "transaction": None}), 200
        return jsonify({"message": "Stock updated", "transaction": txn.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/transfers")
def list_transfers_route():
    try:
        result = transfer_service.list_transfers(
            status=request.args.get("status"),
            location=request.args.get("location"),
            product_id=request.args.get("product_id", type=int),
            **_page_args(),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return error_response(e)


@inventory_bp.post("/transfers")
@require_auth
def create_transfer_route():
    """
    Body: {"product_id", "quantity", "from_location", "to_location", "notes",
    "complete": bool (default false)}.

    Returns 201 with the transfer (pending unless complete=true).
    """
    data = request.get_json(silent=True) or {}
    try:
        for field in ("product_id", "quantity", "from_location", "to_location"):
            if field not in data:
                raise ValidationError(f"Missing required field: {field}")
        txn = transfer_service.create_transfer(
            product_id=data["product_id"],
            quantity=data["quantity"],
            from_location=data["from_location"],
            to_location=data["to_location"],
            user_id=current_user_id(),
            notes=data.get("notes"),
            reference=data.get("reference"),
            complete_immediately=bool(data.get("complete", False)),
        )
        return jsonify(txn.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create transfer")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/transfers/<int:transfer_id>/complete")
@require_auth
def complete_transfer_route(transfer_id: int):
    try:
        txn = transfer_service.complete_transfer(transfer_id=transfer_id, user_id=current_user_id())
        return jsonify(txn.to_dict()), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete transfer")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/transfers/<int:transfer_id>/cancel")
@require_auth
def cancel_transfer_route(transfer_id: int):
    data = request.get_json(silent=True) or {}
    try:
        txn = transfer_service.cancel_transfer(
            transfer_id=transfer_id,
            user_id=current_user_id(),
            reason=data.get("reason"),
        )
        return jsonify(txn.to_dict()), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel transfer")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/bulk")
@require_auth
def bulk_update_route():
    """Body: {"operations": [{"kind": "transfer"|"sale"|"purchase"|"adjustment"|"set_stock", ...}]}."""
    data = request.get_json(silent=True) or {}
    try:
        result = bulk_update_service.apply_operations(data.get("operations"), user_id=current_user_id())
        return jsonify(result), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to apply bulk stock operations")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/fix-negative-stock")
def negative_stock_route():
    products = reconciliation_service.negative_stock_products()
    return jsonify({"products": products, "count": len(products)}), 200


@inventory_bp.post("/fix-negative-stock")
@require_auth
@require_role(*REPAIR_ROLES)
def fix_negative_stock_route():
    """Body: {"products": [{"product_id", "location", "new_stock"}]}."""
    data = request.get_json(silent=True) or {}
    try:
        result = reconciliation_service.fix_negative_stock(data.get("products"), user_id=current_user_id())
        return jsonify(result), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fix negative stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/fix-double-stock")
def warehouse_stock_route():
    products = reconciliation_service.products_with_warehouse_stock()
    return jsonify({"products": products, "count": len(products)}), 200


@inventory_bp.post("/fix-double-stock")
@require_auth
@require_role(*REPAIR_ROLES)
def fix_double_stock_route():
    """Body: {"products": [{"product_id", "warehouse_stock"} | {"product_id", "use_batch_stock": true}]}."""
    data = request.get_json(silent=True) or {}
    try:
        result = reconciliation_service.fix_double_stock(data.get("products"), user_id=current_user_id())
        return jsonify(result), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fix warehouse stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/initial-stock")
@require_auth
@require_role(*REPAIR_ROLES)
def initial_stock_route():
    """Body: {"products": [{"product_id", "warehouse_stock"}]}."""
    data = request.get_json(silent=True) or {}
    try:
        result = reconciliation_service.set_initial_warehouse_stock(
            data.get("products"), user_id=current_user_id()
        )
        return jsonify(result), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set initial warehouse stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/drift")
def drift_route():
    drifts = reconciliation_service.detect_drift()
    return jsonify({"drift": drifts, "count": len(drifts)}), 200


@inventory_bp.get("/drift/<int:product_id>")
def verify_product_route(product_id: int):
    try:
        return jsonify(reconciliation_service.verify_product_stock(product_id)), 200
    except LedgerError as e:
        return error_response(e)
