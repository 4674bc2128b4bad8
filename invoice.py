"""
Invoice rendering: a fixed HTML layout converted to PDF with xhtml2pdf.

render_invoice never raises. A failed or empty render is logged and
reported as ``None`` so callers can carry on without an attachment.
"""
import logging
from datetime import datetime
from html import escape
from io import BytesIO
from typing import Optional

from xhtml2pdf import pisa

import settings

logger = logging.getLogger(__name__)

CELL = "padding: 6px; border: 1px solid #dddddd;"


def _money(value) -> str:
    return f"&#8377;{float(value or 0):,.2f}"


def _date(value) -> str:
    if isinstance(value, datetime):
        return value.strftime("%d %b %Y")
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value).strftime("%d %b %Y")
        except ValueError:
            return escape(value)
    return "Pending"


def build_invoice_html(order: dict, user: dict) -> str:
    order_id = escape(str(order.get("_id") or order.get("id") or ""))
    ship = order.get("shippingAddress") or {}
    billed_name = escape(f"{user.get('firstName', '')} {user.get('lastName') or ''}".strip())

    rows = []
    for item in order.get("orderItems", []):
        qty = int(item.get("qty", 0))
        price = float(item.get("price", 0))
        rows.append(
            "<tr>"
            f'<td style="{CELL}">{escape(str(item.get("name", "")))}</td>'
            f'<td style="{CELL} text-align: center;">{qty}</td>'
            f'<td style="{CELL} text-align: right;">{_money(price)}</td>'
            f'<td style="{CELL} text-align: right;">{_money(qty * price)}</td>'
            "</tr>"
        )

    return f"""<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Helvetica, Arial, sans-serif; font-size: 11px; color: #333333;">
  <h1 style="text-align: center;">INVOICE</h1>
  <p style="text-align: center;">Invoice #: {order_id}<br/>Date: {_date(order.get("paidAt"))}</p>
  <h2 style="text-align: center; color: #007bff;">{escape(settings.SHOP_NAME)}</h2>
  <table style="width: 100%; margin-bottom: 16px;">
    <tr>
      <td style="width: 50%; vertical-align: top;">
        <h3>Billed To:</h3>
        <p>{billed_name}<br/>{escape(str(user.get("email", "")))}</p>
      </td>
      <td style="width: 50%; vertical-align: top;">
        <h3>Shipped To:</h3>
        <p>{escape(str(ship.get("name", "")))}<br/>
        {escape(str(ship.get("address", "")))}, {escape(str(ship.get("city", "")))}<br/>
        {escape(str(ship.get("postalCode", "")))}, {escape(str(ship.get("country", "")))}<br/>
        {escape(str(ship.get("mobileNumber", "")))}</p>
      </td>
    </tr>
  </table>
  <table style="width: 100%; border-collapse: collapse;">
    <thead>
      <tr style="background-color: #f2f2f2;">
        <th style="{CELL} text-align: left;">Item</th>
        <th style="{CELL} text-align: center;">Quantity</th>
        <th style="{CELL} text-align: right;">Unit Price</th>
        <th style="{CELL} text-align: right;">Total</th>
      </tr>
    </thead>
    <tbody>
      {"".join(rows)}
    </tbody>
  </table>
  <div style="text-align: right; font-size: 12px; margin-top: 16px;">
    <p>Items: {_money(order.get("itemsPrice"))}</p>
    <p>Shipping: {_money(order.get("shippingPrice"))}</p>
    <p>Tax: {_money(order.get("taxPrice"))}</p>
    <p style="font-weight: bold;">Grand Total: {_money(order.get("totalPrice"))}</p>
  </div>
</body>
</html>"""


def render_invoice(order: dict, user: dict) -> Optional[bytes]:
    try:
        html = build_invoice_html(order, user)
        buffer = BytesIO()
        status = pisa.CreatePDF(html, dest=buffer, encoding="utf-8")
        if status.err:
            raise RuntimeError(f"xhtml2pdf reported {status.err} error(s)")
        data = buffer.getvalue()
        if not data:
            raise RuntimeError("PDF generation resulted in an empty buffer")
        return data
    except Exception:
        logger.exception("Invoice rendering failed for order %s", order.get("_id") or order.get("id"))
        return None
