from io import BytesIO

import qrcode
from qrcode import constants


def render_reference_qr(order_reference: str) -> bytes:
    """PNG QR code encoding the order reference printed on the ticket"""

    qr = qrcode.QRCode(
        version=1,
        error_correction=constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(order_reference)
    qr.make(fit=True)

    image = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()
