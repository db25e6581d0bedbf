from __future__ import annotations

import base64
import io
import json
from datetime import datetime, timezone

from reportlab.graphics import renderPDF, renderSVG
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from app.models.booking import Booking
from app.models.user import User

QR_SIZE = 200  # points


def booking_qr_payload(booking: Booking) -> dict:
    return {"type": "booking", "bookingId": booking.booking_id}


def user_qr_payload(user: User) -> dict:
    return {"type": "user", "userId": user.id}


def _qr_drawing(payload: str, size: int = QR_SIZE) -> Drawing:
    widget = QrCodeWidget(payload)
    x0, y0, x1, y1 = widget.getBounds()
    w, h = x1 - x0, y1 - y0
    d = Drawing(size, size, transform=[size / w, 0, 0, size / h, 0, 0])
    d.add(widget)
    return d


def encode(payload: str) -> bytes:
    """Render ``payload`` as a QR code. Returns SVG bytes. Pure function."""
    return renderSVG.drawToString(_qr_drawing(payload)).encode("utf-8")


def data_uri(payload: str) -> str:
    """The QR for ``payload`` as an inline ``data:image/svg+xml`` URI, ready for an <img> tag."""
    return "data:image/svg+xml;base64," + base64.b64encode(encode(payload)).decode("ascii")


def booking_qr_svg(booking: Booking) -> bytes:
    return encode(json.dumps(booking_qr_payload(booking)))


def user_qr_svg(user: User) -> bytes:
    return encode(json.dumps(user_qr_payload(user)))


def _fmt(dt: datetime | None) -> str:
    return dt.strftime("%Y-%m-%d %H:%M UTC") if dt else "-"


def render_booking_pass_pdf(booking: Booking, floor_name: str, user_name: str) -> bytes:
    """Return an A4 PDF parking pass with the booking QR. Pure function."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    _, h = A4

    c.setFont("Helvetica-Bold", 18)
    c.drawString(40, h - 60, "SmartPark Parking Pass")
    c.setFont("Helvetica", 11)
    c.drawString(40, h - 80, f"Booking ID: {booking.booking_id}")
    c.drawString(40, h - 96, f"Name: {user_name or '(Not provided)'}")

    c.setFont("Helvetica-Bold", 12)
    c.drawString(40, h - 130, "Parking")
    c.setFont("Helvetica", 11)
    c.drawString(40, h - 148, f"Floor: {floor_name}")
    c.drawString(40, h - 164, f"Spot:  {booking.spot_number}")
    c.drawString(40, h - 180, f"Status: {booking.status}")
    c.drawString(40, h - 196, f"Valid until: {_fmt(booking.expires_at)}")
    if booking.entry_time:
        c.drawString(40, h - 212, f"Entry: {_fmt(booking.entry_time)}")
        c.drawString(40, h - 228, f"Expected exit: {_fmt(booking.expected_exit_time)}")

    renderPDF.draw(_qr_drawing(json.dumps(booking_qr_payload(booking))), c, 40, h - 480)

    c.setFont("Helvetica", 9)
    c.drawString(40, 54, "Scan this code at the entry kiosk within 15 minutes of booking.")
    c.drawString(40, 40, "Base rate Rs.40 for 4 hours; fines apply after a 10 minute grace period.")
    c.drawString(40, 26, f"Generated: {datetime.now(timezone.utc).isoformat()}")

    c.showPage()
    c.save()
    return buf.getvalue()
