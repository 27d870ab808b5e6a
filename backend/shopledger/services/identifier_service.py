# Overview: SKU sequencing and barcode generation for catalog products.

"""
Identifier service.

SKUs default to ``<SKU_PREFIX><5-digit sequence>`` (e.g. RN-00001). The next
number is one past the highest numeric suffix currently in use, so manually
assigned SKUs with the same prefix are respected.

Generated barcodes are EAN-13 in the 20-29 in-store range with a valid
check digit, unique across products.
"""
from __future__ import annotations

import secrets

from flask import current_app

from ..extensions import db
from ..models import Product


MAX_BARCODE_ATTEMPTS = 20


def ean13_check_digit(first12: str) -> str:
    total = sum(int(d) * (3 if i % 2 else 1) for i, d in enumerate(first12))
    return str((10 - total % 10) % 10)


def barcode_exists(barcode: str) -> bool:
    return db.session.query(Product.id).filter(Product.barcode == barcode).first() is not None


def sku_exists(sku: str) -> bool:
    return db.session.query(Product.id).filter(Product.sku == sku).first() is not None


def generate_barcode() -> str:
    for _ in range(MAX_BARCODE_ATTEMPTS):
        body = "2" + "".join(str(secrets.randbelow(10)) for _ in range(11))
        barcode = body + ean13_check_digit(body)
        if not barcode_exists(barcode):
            return barcode
    raise RuntimeError("Could not generate a unique barcode")


def next_sku(prefix: str | None = None) -> str:
    prefix = prefix if prefix is not None else current_app.config.get("SKU_PREFIX", "RN-")
    rows = db.session.query(Product.sku).filter(Product.sku.like(f"{prefix}%")).all()
    highest = 0
    for (sku,) in rows:
        suffix = sku[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1:05d}"
