# Overview: Flask API routes for product categories.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth
from ..errors import LedgerError, error_response
from ..services import category_service


categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
def list_categories_route():
    return jsonify({"categories": category_service.list_categories()}), 200


@categories_bp.post("")
@require_auth
def create_category_route():
    data = request.get_json(silent=True) or {}
    try:
        category = category_service.create_category(
            name=data.get("name"),
            description=data.get("description"),
            image_url=data.get("image_url"),
        )
        return jsonify(category.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.get("/<int:category_id>")
def get_category_route(category_id: int):
    try:
        return jsonify(category_service.get_category(category_id).to_dict()), 200
    except LedgerError as e:
        return error_response(e)
