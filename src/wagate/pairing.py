"""Render the current pairing payload as a scannable PNG."""

from __future__ import annotations

import io

import qrcode
from qrcode.constants import ERROR_CORRECT_M

from wagate.errors import RenderFailure

IMAGE_WIDTH = 300
MARGIN = 2


def render_pairing_png(payload: str, *, width: int = IMAGE_WIDTH, margin: int = MARGIN) -> bytes:
    """Return PNG bytes for *payload*, sized to roughly *width* pixels."""
    try:
        qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, border=margin)
        qr.add_data(payload)
        qr.make(fit=True)
        qr.box_size = max(1, width // (qr.modules_count + 2 * margin))
        image = qr.make_image(fill_color="black", back_color="white")
        buf = io.BytesIO()
        image.save(buf, format="PNG")
    except Exception as exc:
        raise RenderFailure(f"could not render pairing code: {exc}") from exc
    return buf.getvalue()
