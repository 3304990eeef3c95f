from datetime import datetime, date, timezone
from zoneinfo import ZoneInfo

from flask import current_app, request

from simlok.errors import SimlokError

BULAN = [
    '', 'Januari', 'Februari', 'Maret', 'April', 'Mei', 'Juni',
    'Juli', 'Agustus', 'September', 'Oktober', 'November', 'Desember'
]


def utcnow():
    # Disimpan naive UTC di database
    return datetime.now(timezone.utc).replace(tzinfo=None)


def app_timezone():
    return ZoneInfo(current_app.config.get('TIMEZONE', 'Asia/Jakarta'))


def local_now():
    return datetime.now(app_timezone())


def local_today():
    return local_now().date()


def local_day_bounds(day):
    """Rentang [awal, akhir) satu hari lokal, dalam naive UTC."""
    tz = app_timezone()
    start = datetime(day.year, day.month, day.day, tzinfo=tz)
    end = datetime.fromordinal(day.toordinal() + 1).replace(tzinfo=tz)
    return (
        start.astimezone(timezone.utc).replace(tzinfo=None),
        end.astimezone(timezone.utc).replace(tzinfo=None),
    )


def to_local_iso(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=timezone.utc).astimezone(app_timezone()).isoformat()
    return value.isoformat()


def parse_date(value):
    if not value:
        return None
    if isinstance(value, date):
        return value
    return datetime.strptime(value, '%Y-%m-%d').date()


def parse_day_arg(value, field):
    try:
        return parse_date(value)
    except ValueError:
        raise SimlokError(f"Format tanggal {field} harus YYYY-MM-DD.")


def format_date_id(value):
    """17 Oktober 2026"""
    if value is None:
        return ''
    return f"{value.day} {BULAN[value.month]} {value.year}"


def get_page_args():
    page = request.args.get('page', 1, type=int)
    per_page = request.args.get('per_page', current_app.config['PER_PAGE'], type=int)
    per_page = max(1, min(per_page, current_app.config['MAX_PER_PAGE']))
    return max(page, 1), per_page


def pagination_dict(pagination):
    return {
        'page': pagination.page,
        'per_page': pagination.per_page,
        'total': pagination.total,
        'pages': pagination.pages,
    }
