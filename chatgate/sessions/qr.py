"""Render pairing QR payloads as PNG data URLs."""
import base64
import io

import qrcode


def qr_to_data_url(payload: str, box_size: int = 10, border: int = 4) -> str:
    """Encode ``payload`` as a QR code and return it as a ``data:image/png`` URL."""
    if not payload:
        raise ValueError("QR payload cannot be empty")
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")
