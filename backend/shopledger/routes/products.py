# Overview: Flask API routes for products, batches, bulk import and bulk catalog edits.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import current_user_id, require_auth, require_role
from ..errors import LedgerError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER, ROLE_SUPER_ADMIN
from ..services import catalog_update_service, import_service, products_service, stock_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products_route():
    """
    Query params: search, barcode, category_id, stock_level (out|low|high),
    include_inactive, page, limit.
    """
    try:
        result = products_service.list_products(
            search=request.args.get("search"),
            barcode=request.args.get("barcode"),
            category_id=request.args.get("category_id", type=int),
            stock_level=request.args.get("stock_level"),
            include_inactive=request.args.get("include_inactive", "false").lower() == "true",
            page=request.args.get("page"),
            per_page=request.args.get("limit") or request.args.get("per_page"),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
        return jsonify(products_service.product_dict(product, include_batches=True)), 200
    except LedgerError as e:
        return error_response(e)


@products_bp.get("/<int:product_id>/stock")
def product_stock_route(product_id: int):
    try:
        product = stock_service.get_product(product_id)
        return jsonify(stock_service.stock_info(product)), 200
    except LedgerError as e:
        return error_response(e)


@products_bp.post("")
@require_auth
def create_product_route():
    """
    Body: catalog fields plus optional "batches":
    [{"quantity", "unit_cost_cents", "supplier", "batch_number", "purchase_date"}].
    Opening batches enter warehouse stock.
    """
    try:
        product = products_service.create_product(request.get_json(silent=True) or {}, user_id=current_user_id())
        return jsonify(products_service.product_dict(product, include_batches=True)), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    try:
        product = products_service.update_product(product_id, request.get_json(silent=True) or {})
        return jsonify(products_service.product_dict(product)), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/<int:product_id>/batches/<int:batch_id>")
@require_auth
def update_batch_route(product_id: int, batch_id: int):
    try:
        batch = products_service.update_batch(product_id, batch_id, request.get_json(silent=True) or {})
        return jsonify(batch.to_dict()), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update batch")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_SUPER_ADMIN, ROLE_ADMIN, ROLE_MANAGER)
def delete_product_route(product_id: int):
    try:
        product = products_service.delete_product(product_id)
        return jsonify({"message": "Product deleted", "product_id": product.id}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/import")
@require_auth
def import_products_route():
    """Body: {"products": [row, ...]}. Always 200 with per-row errors."""
    data = request.get_json(silent=True) or {}
    try:
        result = import_service.import_products(data.get("products"), user_id=current_user_id())
        return jsonify(result), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to import products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/bulk-update")
@require_auth
def bulk_update_products_route():
    """Body: {"updates": [row, ...]}. Always 200 with per-row errors."""
    data = request.get_json(silent=True) or {}
    try:
        result = catalog_update_service.update_products(data.get("updates"))
        return jsonify(result), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to bulk update products")
        return jsonify({"error": "Internal server error"}), 500
