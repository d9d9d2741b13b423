"""QR codes summarising an invoiced order for the printed receipt."""

from __future__ import annotations

import io

import qrcode
from qrcode.image.svg import SvgPathImage

from ..domain import OrderStatus
from ..errors import ValidationError
from ..schemas import OrderSnapshot


def receipt_text(order: OrderSnapshot, restaurant: str) -> str:
    """Return the plain-text payload encoded in a receipt QR code."""
    placed = order.created_at.strftime("%Y-%m-%d %H:%M")
    paid_by = order.payment_method.value if order.payment_method else "-"
    return "\n".join(
        [
            f"Order #{order.id}",
            f"Table: {order.table_name}",
            f"Total: {order.total:.2f}",
            f"Paid by: {paid_by}",
            f"Placed: {placed}",
            f"Restaurant: {restaurant}",
        ]
    )


def render_receipt_qr(order: OrderSnapshot, restaurant: str) -> bytes:
    """Render the receipt QR code for ``order`` as an SVG document.

    Only invoiced orders have a receipt.
    """
    if order.status is not OrderStatus.INVOICED:
        raise ValidationError(f"order {order.id} is not invoiced yet")
    img = qrcode.make(receipt_text(order, restaurant), image_factory=SvgPathImage)
    buf = io.BytesIO()
    img.save(buf)
    return buf.getvalue()
