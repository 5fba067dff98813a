from __future__ import annotations

import base64
from io import BytesIO

import qrcode

from . import config


def url_checkin(clinica_id: str) -> str:
    return f"{config.FRONTEND_URL.rstrip('/')}/checkin/{clinica_id}"


def qr_png(dati: str) -> bytes:
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(dati)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def qr_checkin(clinica_id: str) -> dict[str, str]:
    """QR da stampare in sala d'attesa: punta alla pagina di check-in della clinica."""
    url = url_checkin(clinica_id)
    png = base64.b64encode(qr_png(url)).decode("ascii")
    return {"url": url, "qr": f"data:image/png;base64,{png}"}
