"""
Stripe integration: hosted checkout sessions and the webhook that marks
orders paid.

The webhook is the only unauthenticated writer in the API; the Stripe
signature over the raw body is its sole guard.
"""
import hashlib
import json
import logging

import stripe

import settings
from database import to_object_id
from errors import PaymentProviderError, ValidationError
from notifications import send_invoice
from orders import ensure_owner_or_admin, find_order, mark_paid

logger = logging.getLogger(__name__)

COMPLETED_EVENT = "checkout.session.completed"


def build_line_items(db, order: dict) -> list:
    line_items = []
    for item in order["orderItems"]:
        product = db["product"].find_one({"_id": to_object_id(item["product"])})
        if not product:
            raise ValidationError("Product not found for one of the order items.")
        product_data = {"name": product["name"], "images": product.get("images", [])[:8]}
        if product.get("description"):
            product_data["description"] = product["description"]
        line_items.append({
            "price_data": {
                "currency": settings.STRIPE_CURRENCY,
                "product_data": product_data,
                "unit_amount": int(round(float(item["price"]) * 100)),
            },
            "quantity": int(item["qty"]),
        })
    return line_items


def _open_session(order: dict):
    session_id = order.get("checkoutSessionId")
    if not session_id:
        return None
    try:
        session = stripe.checkout.Session.retrieve(session_id, api_key=settings.STRIPE_SECRET_KEY)
    except stripe.StripeError as exc:
        logger.warning("Could not retrieve checkout session %s: %s", session_id, exc)
        return None
    return session if session.status == "open" else None


def idempotency_key(order_id: str, line_items: list) -> str:
    digest = hashlib.sha256(json.dumps(line_items, sort_keys=True).encode()).hexdigest()[:16]
    return f"checkout-{order_id}-{digest}"


def _session_response(session) -> dict:
    return {
        "id": session.id,
        "checkoutUrl": session.url,
        "publishableKey": settings.STRIPE_PUBLISHABLE_KEY,
    }


def create_checkout_session(db, order_id: str, user: dict) -> dict:
    order = find_order(db, order_id)
    ensure_owner_or_admin(order, user, "pay for")
    if order.get("isPaid"):
        raise ValidationError("Order is already paid")
    line_items = build_line_items(db, order)

    session = _open_session(order)
    if session is not None:
        logger.info("Reusing open checkout session %s for order %s", session.id, order_id)
        return _session_response(session)

    try:
        session = stripe.checkout.Session.create(
            api_key=settings.STRIPE_SECRET_KEY,
            idempotency_key=idempotency_key(order_id, line_items),
            payment_method_types=["card"],
            line_items=line_items,
            mode="payment",
            success_url=f"{settings.FRONTEND_URL}/order/{order_id}/success",
            cancel_url=f"{settings.FRONTEND_URL}/placeorder",
            metadata={"orderId": order_id},
        )
    except stripe.StripeError as exc:
        logger.error("Stripe rejected checkout session for order %s: %s", order_id, exc)
        raise PaymentProviderError(f"Payment provider error: {exc.user_message or exc}")

    db["order"].update_one({"_id": order["_id"]}, {"$set": {"checkoutSessionId": session.id}})
    logger.info("Checkout session %s created for order %s", session.id, order_id)
    return _session_response(session)


def verify_event(payload: bytes, signature: str) -> dict:
    try:
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"), signature or "", settings.STRIPE_WEBHOOK_SECRET,
            stripe.Webhook.DEFAULT_TOLERANCE,
        )
        return json.loads(payload)
    except (stripe.SignatureVerificationError, ValueError) as exc:
        logger.warning("Webhook signature verification failed: %s", exc)
        raise PaymentProviderError(f"Webhook Error: {exc}", status_code=400)


def handle_webhook(db, payload: bytes, signature: str) -> dict:
    event = verify_event(payload, signature)
    event_type = event.get("type")
    if event_type != COMPLETED_EVENT:
        logger.info("Ignoring webhook event %s", event_type)
        return {"received": True, "ignored": event_type}

    session = (event.get("data") or {}).get("object") or {}
    order_id = (session.get("metadata") or {}).get("orderId")
    order = None
    if order_id:
        try:
            order = db["order"].find_one({"_id": to_object_id(order_id)})
        except ValidationError:
            order = None
    if not order:
        logger.error("Webhook %s references unknown order %r", event.get("id"), order_id)
        return {"received": True}

    if order.get("isPaid"):
        logger.info("Order %s already paid, resending invoice", order_id)
    else:
        order = mark_paid(db, order_id)

    user = db["user"].find_one({"_id": to_object_id(order["user"])})
    if user:
        send_invoice(order, user)
    else:
        logger.error("Order %s owner %s not found, invoice not sent", order_id, order["user"])
    return {"received": True}
