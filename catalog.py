"""
Product catalog reads and admin writes.
"""
import re
from datetime import datetime, timezone
from typing import List, Optional

from pymongo import ReturnDocument

from database import create_document, to_object_id
from errors import DuplicateError, NotFoundError
from schemas import Product


def list_products(db, q: Optional[str] = None, category: Optional[str] = None,
                  brand: Optional[str] = None, limit: int = 100) -> List[dict]:
    filt = {}
    if q:
        filt["name"] = {"$regex": re.escape(q), "$options": "i"}
    if category:
        filt["category"] = category
    if brand:
        filt["brand"] = brand
    return list(db["product"].find(filt).sort("createdAt", -1).limit(limit))


def get_product(db, product_id: str) -> dict:
    product = db["product"].find_one({"_id": to_object_id(product_id)})
    if not product:
        raise NotFoundError("Product not found")
    return product


def create_product(db, product: Product) -> dict:
    if db["product"].find_one({"name": product.name}):
        raise DuplicateError(f"A product named '{product.name}' already exists")
    product_id = create_document(db, "product", product)
    return get_product(db, product_id)


def update_product(db, product_id: str, changes: dict) -> dict:
    """Apply admin edits. rating/numReviews belong to the review aggregator."""
    update = {k: v for k, v in changes.items() if k not in ("rating", "numReviews", "user")}
    if "name" in update and db["product"].find_one({"name": update["name"], "_id": {"$ne": to_object_id(product_id)}}):
        raise DuplicateError(f"A product named '{update['name']}' already exists")
    update["updatedAt"] = datetime.now(timezone.utc)
    product = db["product"].find_one_and_update(
        {"_id": to_object_id(product_id)},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    if not product:
        raise NotFoundError("Product not found")
    return product


def delete_product(db, product_id: str):
    res = db["product"].delete_one({"_id": to_object_id(product_id)})
    if res.deleted_count == 0:
        raise NotFoundError("Product not found")


def has_purchased(db, user_id: str, product_id: str) -> bool:
    return db["order"].find_one({"user": user_id, "isPaid": True, "orderItems.product": product_id}) is not None
