# Overview: Flask API routes for customers aggregated from sales.

from flask import Blueprint, request, jsonify

from ..errors import LedgerError, error_response
from ..services import customer_service


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
def list_customers_route():
    """Query params: search, status (all|due|paid), sort (due|recent|spent|name), page, limit."""
    try:
        result = customer_service.list_customers(
            search=request.args.get("search"),
            status=request.args.get("status"),
            sort=request.args.get("sort"),
            page=request.args.get("page"),
            per_page=request.args.get("limit") or request.args.get("per_page"),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return error_response(e)


@customers_bp.get("/detail")
def customer_detail_route():
    """Query params: name (required), mobile."""
    try:
        result = customer_service.get_customer(
            name=request.args.get("name"),
            mobile=request.args.get("mobile"),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return error_response(e)
