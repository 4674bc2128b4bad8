"""
Order ledger: creation with server-side pricing, lookups and the
paid / delivered transitions.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from pymongo import ReturnDocument

import settings
from database import create_document, to_object_id
from errors import NotFoundError, UnauthorizedError, ValidationError
from schemas import PAYMENT_METHODS, Order, OrderItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricingPolicy:
    shipping_price: float
    free_shipping_over: float
    tax_rate: float

    @classmethod
    def from_settings(cls) -> "PricingPolicy":
        return cls(
            shipping_price=settings.SHIPPING_PRICE,
            free_shipping_over=settings.FREE_SHIPPING_OVER,
            tax_rate=settings.TAX_RATE,
        )

    def shipping_for(self, items_price: float) -> float:
        return 0.0 if items_price > self.free_shipping_over else self.shipping_price

    def tax_for(self, items_price: float) -> float:
        return items_price * self.tax_rate


def round2(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def compute_prices(items: List[OrderItem], policy: PricingPolicy) -> dict:
    items_price = round2(sum(i.qty * i.price for i in items))
    shipping_price = round2(policy.shipping_for(items_price))
    tax_price = round2(policy.tax_for(items_price))
    return {
        "itemsPrice": items_price,
        "shippingPrice": shipping_price,
        "taxPrice": tax_price,
        "totalPrice": round2(items_price + shipping_price + tax_price),
    }


def create_order(db, user: dict, items: List[dict], shipping_address: dict, payment_method: str,
                 policy: Optional[PricingPolicy] = None) -> dict:
    """Validate the requested items against the catalog and persist an unpaid order.

    ``items`` are ``{"product": id, "qty": n}``; name and unit price are
    snapshotted from the product as it is now.
    """
    if not items:
        raise ValidationError("No order items")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method. Must be one of: {', '.join(PAYMENT_METHODS)}")
    policy = policy or PricingPolicy.from_settings()

    order_items = []
    for item in items:
        qty = int(item["qty"])
        if qty < 1:
            raise ValidationError("Quantity must be at least 1")
        product = db["product"].find_one({"_id": to_object_id(item["product"])})
        if not product:
            raise ValidationError(f"Product not found for ID: {item['product']}")
        if qty > product.get("countInStock", 0):
            raise ValidationError(f"Insufficient stock for {product['name']}")
        order_items.append(OrderItem(name=product["name"], qty=qty, price=float(product["price"]),
                                     product=str(product["_id"])))

    order = Order(
        user=user["id"],
        orderItems=order_items,
        shippingAddress=shipping_address,
        paymentMethod=payment_method,
        **compute_prices(order_items, policy),
    )
    order_id = create_document(db, "order", order)
    logger.info("Order %s created for user %s (total %.2f)", order_id, user["id"], order.totalPrice)
    return db["order"].find_one({"_id": to_object_id(order_id)})


def find_order(db, order_id: str) -> dict:
    order = db["order"].find_one({"_id": to_object_id(order_id)})
    if not order:
        raise NotFoundError("Order not found")
    return order


def ensure_owner_or_admin(order: dict, user: dict, action: str = "access"):
    if order["user"] != user["id"] and not user.get("isAdmin"):
        raise UnauthorizedError(f"Not authorized to {action} this order")


def get_order(db, order_id: str) -> dict:
    """Order with its owner and each line item's product resolved."""
    order = find_order(db, order_id)
    owner = db["user"].find_one({"_id": to_object_id(order["user"])}, {"firstName": 1, "lastName": 1, "email": 1})
    if owner:
        order["user"] = {
            "id": str(owner["_id"]),
            "firstName": owner.get("firstName"),
            "lastName": owner.get("lastName"),
            "email": owner.get("email"),
        }
    else:
        order["user"] = {"id": order["user"]}
    for item in order["orderItems"]:
        product = db["product"].find_one({"_id": to_object_id(item["product"])}, {"name": 1, "images": 1})
        item["productDetails"] = (
            {"id": str(product["_id"]), "name": product["name"], "images": product.get("images", [])}
            if product else None
        )
    return order


def list_user_orders(db, user_id: str, is_paid: Optional[bool] = None) -> List[dict]:
    filt = {"user": user_id}
    if is_paid is not None:
        filt["isPaid"] = is_paid
    return list(db["order"].find(filt).sort("createdAt", -1))


def list_orders(db, is_paid: Optional[bool] = None, is_delivered: Optional[bool] = None,
                user_id: Optional[str] = None, payment_method: Optional[str] = None,
                page: int = 1, page_size: int = 10, oldest_first: bool = False) -> dict:
    filt = {}
    if is_paid is not None:
        filt["isPaid"] = is_paid
    if is_delivered is not None:
        filt["isDelivered"] = is_delivered
    if user_id:
        filt["user"] = user_id
    if payment_method:
        filt["paymentMethod"] = payment_method

    page = max(page, 1)
    count = db["order"].count_documents(filt)
    cursor = (
        db["order"].find(filt)
        .sort("createdAt", 1 if oldest_first else -1)
        .skip(page_size * (page - 1))
        .limit(page_size)
    )
    return {
        "orders": list(cursor),
        "page": page,
        "pages": math.ceil(count / page_size) if page_size else 0,
        "totalOrders": count,
    }


def mark_paid(db, order_id: str) -> dict:
    """Flag the order paid. Re-applying only refreshes paidAt."""
    now = datetime.now(timezone.utc)
    order = db["order"].find_one_and_update(
        {"_id": to_object_id(order_id)},
        {"$set": {"isPaid": True, "paidAt": now, "updatedAt": now}},
        return_document=ReturnDocument.AFTER,
    )
    if not order:
        raise NotFoundError("Order not found")
    logger.info("Order %s marked paid", order_id)
    return order


def mark_delivered(db, order_id: str) -> dict:
    now = datetime.now(timezone.utc)
    order = db["order"].find_one_and_update(
        {"_id": to_object_id(order_id)},
        {"$set": {"isDelivered": True, "deliveredAt": now, "updatedAt": now}},
        return_document=ReturnDocument.AFTER,
    )
    if not order:
        raise NotFoundError("Order not found")
    logger.info("Order %s marked delivered", order_id)
    return order


def delete_order(db, order_id: str, user: dict):
    order = find_order(db, order_id)
    ensure_owner_or_admin(order, user, "delete")
    if order.get("isPaid"):
        raise ValidationError("Cannot delete a paid order")
    if order.get("isDelivered"):
        raise ValidationError("Cannot delete a delivered order")
    db["order"].delete_one({"_id": order["_id"]})
    logger.info("Order %s deleted by %s", order_id, user["id"])
