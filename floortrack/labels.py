"""QR labels for order items.

Labels encode ``ORDER-ITEM`` (see ``barcode.label_payload``); the handheld
scanner adds its prefix when it reads one.  SVG is used so labels print
sharply at any size.
"""

import os
from io import BytesIO

import qrcode
import qrcode.image.svg
from werkzeug.utils import secure_filename

from .barcode import label_payload
from .models import OrderItem


def ensure_dir(path: str) -> str:
    os.makedirs(path, exist_ok=True)
    return path


def render_svg(payload: str) -> bytes:
    img = qrcode.make(payload, image_factory=qrcode.image.svg.SvgImage)
    buf = BytesIO()
    img.save(buf)
    return buf.getvalue()


def item_label_svg(item: OrderItem) -> bytes:
    return render_svg(label_payload(item.order.order_number, item.item_ref))


def save_item_label(directory: str, item: OrderItem) -> str:
    """Write the item's label to ``directory`` and return the file path."""
    ensure_dir(directory)
    name = secure_filename(f"{item.order.order_number}-{item.item_ref}.svg")
    fp = os.path.join(directory, name)
    with open(fp, "wb") as fh:
        fh.write(item_label_svg(item))
    return fp
