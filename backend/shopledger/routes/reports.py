# Overview: Flask API routes for analytics and profit reports.

from flask import Blueprint, request, jsonify

from ..errors import LedgerError, error_response
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/summary")
def summary_route():
    try:
        return jsonify(reporting_service.analytics_summary(request.args.get("period", "month"))), 200
    except LedgerError as e:
        return error_response(e)


@reports_bp.get("/sales-trend")
def sales_trend_route():
    try:
        days = request.args.get("days", 30, type=int)
        return jsonify({"trend": reporting_service.sales_trend(days)}), 200
    except LedgerError as e:
        return error_response(e)


@reports_bp.get("/payment-methods")
def payment_methods_route():
    try:
        methods = reporting_service.payment_methods(request.args.get("period", "month"))
        return jsonify({"payment_methods": methods}), 200
    except LedgerError as e:
        return error_response(e)


@reports_bp.get("/top-products")
def top_products_route():
    try:
        products = reporting_service.top_products(
            request.args.get("period", "month"),
            limit=min(request.args.get("limit", 5, type=int), 50),
        )
        return jsonify({"products": products}), 200
    except LedgerError as e:
        return error_response(e)


@reports_bp.get("/profit")
def profit_route():
    try:
        report = reporting_service.profit_report(
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify(report), 200
    except LedgerError as e:
        return error_response(e)


@reports_bp.get("/inventory-valuation")
def inventory_valuation_route():
    return jsonify(reporting_service.inventory_valuation()), 200
