import base64
from io import BytesIO

import qrcode


def qr_png(data):
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img_buffer = BytesIO()
    qr.make_image(fill_color="black", back_color="white").save(img_buffer, format='PNG')
    return img_buffer.getvalue()


def qr_data_url(data):
    img_str = base64.b64encode(qr_png(data)).decode()
    return f'data:image/png;base64,{img_str}'
