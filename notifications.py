"""
Customer e-mails sent around the order lifecycle.

These run after the order state has been committed. Every failure is
logged and reported as ``False``; none of them propagate.
"""
import logging
from html import escape

from invoice import render_invoice
from mailer import EmailError, send_email

logger = logging.getLogger(__name__)


def short_id(order: dict) -> str:
    return str(order.get("_id") or order.get("id"))[-6:]


def _invoice_attachment(order: dict, user: dict):
    pdf = render_invoice(order, user)
    if pdf is None:
        return []
    return [{"filename": f"Invoice_{short_id(order)}.pdf", "content": pdf}]


def _send(to: str, subject: str, html: str, attachments=None) -> bool:
    try:
        send_email(to, subject, html, attachments)
        return True
    except EmailError as exc:
        logger.error("Failed to send '%s' to %s: %s", subject, to, exc)
        return False


def send_invoice(order: dict, user: dict) -> bool:
    """Payment confirmation with the PDF invoice attached when it renders."""
    attachments = _invoice_attachment(order, user)
    subject = f"Payment Confirmation & Invoice: #{short_id(order)}" if attachments else f"Payment Confirmation: #{short_id(order)}"
    html = (
        f"<p>Dear {escape(user.get('firstName', ''))},</p>"
        f"<p>Your payment for order #{short_id(order)} was successfully processed. "
        "Thank you for your purchase!</p>"
    )
    if attachments:
        html += "<p>Please find the attached invoice.</p>"
    return _send(user["email"], subject, html, attachments)


def send_cod_confirmation(order: dict, user: dict) -> bool:
    attachments = _invoice_attachment(order, user)
    order_id = order.get("_id") or order.get("id")
    html = (
        f"<p>Thank you for your COD purchase! Your order (ID: {order_id}) has been successfully placed. "
        "Payment will be collected upon delivery.</p>"
    )
    if attachments:
        html += "<p>Please find the attached invoice.</p>"
    return _send(user["email"], f"Order Confirmation (COD) #{order_id}", html, attachments)


def send_delivery_notice(order: dict, user: dict) -> bool:
    order_id = order.get("_id") or order.get("id")
    items = "".join(f"<li><strong>{escape(str(i.get('name', '')))}</strong></li>" for i in order.get("orderItems", []))
    html = (
        f"<p>Dear {escape(user.get('firstName', ''))},</p>"
        f"<p>We are happy to confirm that your order <strong>#{order_id}</strong> has been successfully delivered!</p>"
        f"<h4>Delivered Items:</h4><ul>{items}</ul>"
        "<p>You can view your complete order details and invoice anytime in your account history.</p>"
        "<p>Regards,<br/>Mobile Mania Team</p>"
    )
    return _send(user["email"], f"Order Successfully Delivered: #{order_id}", html)
