# Overview: Product categories; unique names resolved case-insensitively.

from __future__ import annotations

from sqlalchemy import func

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, Product


def list_categories() -> list[dict]:
    counts = dict(
        db.session.query(Product.category_id, func.count(Product.id))
        .filter(Product.is_active.is_(True))
        .group_by(Product.category_id)
        .all()
    )
    categories = db.session.query(Category).order_by(Category.name.asc()).all()
    result = []
    for c in categories:
        data = c.to_dict()
        data["product_count"] = counts.get(c.id, 0)
        result.append(data)
    return result


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError(f"Category {category_id} not found")
    return category


def resolve_category(name: str) -> Category | None:
    if not name or not str(name).strip():
        return None
    return (
        db.session.query(Category)
        .filter(func.lower(Category.name) == str(name).strip().lower())
        .first()
    )


def create_category(*, name: str, description: str | None = None, image_url: str | None = None) -> Category:
    if not name or not str(name).strip():
        raise ValidationError("Category name is required")
    name = str(name).strip()
    if resolve_category(name) is not None:
        raise ConflictError(f"Category '{name}' already exists")

    category = Category(name=name, description=description, image_url=image_url)
    db.session.add(category)
    db.session.commit()
    return category
