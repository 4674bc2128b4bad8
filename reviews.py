"""
Product reviews and the rating aggregate kept on each product.

Every write rescans the product's reviews and stores the rounded mean and
the live count back on the product document.
"""
import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from database import create_document, to_object_id
from errors import DuplicateError, NotFoundError, UnauthorizedError
from schemas import Review

logger = logging.getLogger(__name__)


def recompute_product_rating(db, product_id: str) -> dict:
    ratings = [r["rating"] for r in db["review"].find({"product": product_id}, {"rating": 1})]
    rating = 0
    if ratings:
        mean = Decimal(str(sum(ratings) / len(ratings)))
        rating = float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
    stats = {"rating": rating, "numReviews": len(ratings)}
    db["product"].update_one({"_id": to_object_id(product_id)}, {"$set": stats})
    return stats


def find_review(db, review_id: str) -> dict:
    review = db["review"].find_one({"_id": to_object_id(review_id)})
    if not review:
        raise NotFoundError("Review not found")
    return review


def create_review(db, product_id: str, user: dict, rating: float, comment: str) -> dict:
    if not db["product"].find_one({"_id": to_object_id(product_id)}):
        raise NotFoundError("Product not found")
    if db["review"].find_one({"product": product_id, "user": user["id"]}):
        raise DuplicateError("You have already submitted a review for this product")

    review_id = create_document(db, "review", Review(product=product_id, user=user["id"], rating=rating, comment=comment))
    stats = recompute_product_rating(db, product_id)
    logger.info("Review %s added to product %s, rating now %s (%s)", review_id, product_id,
                stats["rating"], stats["numReviews"])
    return find_review(db, review_id)


def update_review(db, review_id: str, user: dict, rating: Optional[float] = None,
                  comment: Optional[str] = None) -> dict:
    review = find_review(db, review_id)
    if review["user"] != user["id"]:
        raise UnauthorizedError("User not authorized to update this review")

    update = {"updatedAt": datetime.now(timezone.utc)}
    if rating is not None:
        update["rating"] = rating
    if comment:
        update["comment"] = comment
    db["review"].update_one({"_id": review["_id"]}, {"$set": update})
    recompute_product_rating(db, review["product"])
    return find_review(db, review_id)


def delete_review(db, review_id: str, user: dict):
    review = find_review(db, review_id)
    if review["user"] != user["id"] and not user.get("isAdmin"):
        raise UnauthorizedError("User not authorized to delete this review")
    db["review"].delete_one({"_id": review["_id"]})
    recompute_product_rating(db, review["product"])


def _with_names(db, reviews: List[dict]) -> List[dict]:
    user_ids = {r["user"] for r in reviews}
    names = {
        str(u["_id"]): f"{u.get('firstName', '')} {u.get('lastName') or ''}".strip()
        for u in db["user"].find({"_id": {"$in": [to_object_id(i) for i in user_ids]}})
    }
    for r in reviews:
        r["userName"] = names.get(r["user"])
    return reviews


def list_reviews(db, product_id: str) -> List[dict]:
    return _with_names(db, list(db["review"].find({"product": product_id}).sort("createdAt", -1)))


def list_all_reviews(db) -> List[dict]:
    reviews = _with_names(db, list(db["review"].find().sort("createdAt", -1)))
    product_ids = {r["product"] for r in reviews}
    names = {
        str(p["_id"]): p["name"]
        for p in db["product"].find({"_id": {"$in": [to_object_id(i) for i in product_ids]}}, {"name": 1})
    }
    for r in reviews:
        r["productName"] = names.get(r["product"])
    return reviews
