"""QR code SIMLOK.

Payload QR ditandatangani (itsdangerous) dan membawa id pengajuan serta
rentang tanggal pelaksanaan, sehingga verifikator bisa menolak QR palsu atau
QR yang dipindai di luar periode pelaksanaan.
"""
import logging
from collections import namedtuple
from datetime import date
from io import BytesIO

import qrcode
from flask import current_app
from itsdangerous import BadData, URLSafeSerializer

log = logging.getLogger(__name__)

QrPayload = namedtuple('QrPayload', ['id', 'start_date', 'end_date'])

_SALT = 'simlok-qr'


def _serializer():
    secret = current_app.config.get('QR_SECRET') or current_app.config['SECRET_KEY']
    return URLSafeSerializer(secret, salt=_SALT)


def generate_qr_string(submission):
    start = submission.implementation_start_date
    end = submission.implementation_end_date
    token = _serializer().dumps({
        'i': submission.id,
        's': start.isoformat() if start else None,
        'e': end.isoformat() if end else None,
    })
    return f"{current_app.config['QR_PREFIX']}:{token}"


def parse_qr_string(text):
    """Kembalikan QrPayload, atau None jika format/tanda tangan tidak valid."""
    if not text:
        return None
    prefix, sep, token = text.strip().partition(':')
    if not sep or prefix != current_app.config['QR_PREFIX'] or not token:
        log.warning("QR rejected: unknown format")
        return None

    try:
        data = _serializer().loads(token)
    except BadData:
        log.warning("QR rejected: bad signature")
        return None

    if not isinstance(data, dict) or not isinstance(data.get('i'), int):
        log.warning("QR rejected: malformed payload")
        return None

    try:
        start = date.fromisoformat(data['s']) if data.get('s') else None
        end = date.fromisoformat(data['e']) if data.get('e') else None
    except (TypeError, ValueError):
        log.warning("QR rejected: malformed dates")
        return None

    return QrPayload(data['i'], start, end)


def is_qr_valid_for_date(payload, day):
    if payload.start_date and day < payload.start_date:
        return False
    if payload.end_date and day > payload.end_date:
        return False
    return True


def qr_png(text, box_size=8):
    qr = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_M,
                       box_size=box_size, border=2)
    qr.add_data(text)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
