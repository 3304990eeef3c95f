"""Log aplikasi: file harian, pembaca, dan streaming SSE.

Setiap record ditulis ke ``all-YYYY-MM-DD.log``, dan record ERROR ke atas juga
ke ``error-YYYY-MM-DD.log``. Tanggal file mengikuti zona waktu aplikasi.
Baris berformat ``[timestamp] [LEVEL] [logger] pesan``; traceback menjadi
baris lanjutan milik record sebelumnya.
"""
import json
import logging
import os
import re
import time
from datetime import datetime, date, timedelta, timezone
from zoneinfo import ZoneInfo

from flask import Blueprint, Response, request, jsonify, current_app
from flask.logging import default_handler
from flask_login import current_user

from simlok.auth import role_required
from simlok.errors import SimlokError
from simlok.models import Role
from simlok.utils import parse_day_arg

log = logging.getLogger(__name__)

bp = Blueprint('logs', __name__)

LOGGER_NAME = 'simlok'
LOG_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s'
LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')

LINE_RE = re.compile(
    r'^\[(?P<timestamp>[^\]]+)\] \[(?P<level>[A-Z]+)\] \[(?P<context>[^\]]*)\] ?(?P<message>.*)$'
)
FILE_RE = re.compile(r'^(?P<prefix>all|error)-(?P<day>\d{4}-\d{2}-\d{2})\.log$')


def log_filename(prefix, day):
    return f"{prefix}-{day.isoformat()}.log"


class LocalTimeFormatter(logging.Formatter):
    def __init__(self, fmt, tz):
        super().__init__(fmt)
        self.tz = tz

    def formatTime(self, record, datefmt=None):
        created = datetime.fromtimestamp(record.created, self.tz)
        return created.strftime('%Y-%m-%d %H:%M:%S') + f'.{int(record.msecs):03d}'


class DailyFileHandler(logging.Handler):
    """Append ke file ``<prefix>-<tanggal>.log``; file baru tiap hari."""

    def __init__(self, log_dir, prefix, tz, level=logging.NOTSET):
        super().__init__(level)
        self.log_dir = log_dir
        self.prefix = prefix
        self.tz = tz

    def current_path(self):
        today = datetime.now(self.tz).date()
        return os.path.join(self.log_dir, log_filename(self.prefix, today))

    def emit(self, record):
        try:
            msg = self.format(record)
            with open(self.current_path(), 'a', encoding='utf-8') as f:
                f.write(msg + '\n')
        except Exception:
            self.handleError(record)


def cleanup_old_logs(log_dir, retention_days, today):
    cutoff = today - timedelta(days=retention_days)
    removed = []
    for name in os.listdir(log_dir):
        match = FILE_RE.match(name)
        if match and date.fromisoformat(match.group('day')) < cutoff:
            os.remove(os.path.join(log_dir, name))
            removed.append(name)
    return removed


def configure_logging(app):
    log_dir = app.config['LOG_DIR']
    os.makedirs(log_dir, exist_ok=True)
    tz = ZoneInfo(app.config['TIMEZONE'])
    level = logging.getLevelName(app.config['LOG_LEVEL'].upper())

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, DailyFileHandler):
            logger.removeHandler(handler)
            handler.close()

    formatter = LocalTimeFormatter(LOG_FORMAT, tz)
    all_handler = DailyFileHandler(log_dir, 'all', tz, level)
    error_handler = DailyFileHandler(log_dir, 'error', tz, logging.ERROR)
    for handler in (all_handler, error_handler):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level)

    if app.debug and default_handler not in logger.handlers:
        logger.addHandler(default_handler)

    removed = cleanup_old_logs(log_dir, app.config['LOG_RETENTION_DAYS'], datetime.now(tz).date())
    if removed:
        logger.info("Removed %d log files older than %d days", len(removed),
                    app.config['LOG_RETENTION_DAYS'])


# ---------- reader ----------

def parse_log_line(line):
    match = LINE_RE.match(line.rstrip('\n'))
    if not match:
        return None
    return match.groupdict()


def _log_files_between(log_dir, prefix, start, end):
    """File ``<prefix>-`` yang tanggalnya dalam [start, end], urut tanggal."""
    if not os.path.isdir(log_dir):
        return []
    paths = []
    for name in sorted(os.listdir(log_dir)):
        match = FILE_RE.match(name)
        if not match or match.group('prefix') != prefix:
            continue
        if start <= date.fromisoformat(match.group('day')) <= end:
            paths.append(os.path.join(log_dir, name))
    return paths


def read_logs(log_dir, start, end, level=None, search=None):
    """Entri log dari file ``all-`` dalam rentang tanggal, urutan sesuai file."""
    entries = []
    for path in _log_files_between(log_dir, 'all', start, end):
        with open(path, encoding='utf-8', errors='replace') as f:
            for line in f:
                entry = parse_log_line(line)
                if entry is not None:
                    entries.append(entry)
                elif entries and line.strip():
                    entries[-1]['message'] += '\n' + line.rstrip('\n')

    if level:
        entries = [e for e in entries if e['level'] == level.upper()]
    if search:
        needle = search.lower()
        entries = [e for e in entries
                   if needle in e['message'].lower() or needle in e['context'].lower()]
    return entries


def list_log_files(log_dir, tz=timezone.utc):
    files = []
    if not os.path.isdir(log_dir):
        return files
    for name in sorted(os.listdir(log_dir), reverse=True):
        if not FILE_RE.match(name):
            continue
        stat = os.stat(os.path.join(log_dir, name))
        files.append({
            'name': name,
            'size': stat.st_size,
            'modified': datetime.fromtimestamp(stat.st_mtime, tz).isoformat(),
        })
    return files


def clear_logs(log_dir, start=None, end=None):
    deleted = []
    if not os.path.isdir(log_dir):
        return deleted
    for name in sorted(os.listdir(log_dir)):
        match = FILE_RE.match(name)
        if not match:
            continue
        day = date.fromisoformat(match.group('day'))
        if start and day < start:
            continue
        if end and day > end:
            continue
        os.remove(os.path.join(log_dir, name))
        deleted.append(name)
    return deleted


# ---------- streaming ----------

def _sse(data, event=None):
    head = f"event: {event}\n" if event else ""
    return f"{head}data: {json.dumps(data)}\n\n"


def follow_logs(log_dir, poll_interval, heartbeat_interval,
                sleep=time.sleep, clock=time.monotonic, today=None):
    """Generator SSE yang mengikuti file ``all-`` hari ini.

    Isi lama tidak dikirim ulang. File yang mengecil (dipotong/dihapus)
    dibaca lagi dari awal.
    """
    if today is None:
        today = date.today

    day = today()
    path = os.path.join(log_dir, log_filename('all', day))
    position = os.path.getsize(path) if os.path.exists(path) else 0
    pending = b''
    last_beat = clock()

    yield _sse({'message': 'connected', 'file': os.path.basename(path)}, event='connected')

    while True:
        current = today()
        if current != day:
            day = current
            path = os.path.join(log_dir, log_filename('all', day))
            position, pending = 0, b''

        size = os.path.getsize(path) if os.path.exists(path) else 0
        if size < position:
            position, pending = 0, b''
        if size > position:
            with open(path, 'rb') as f:
                f.seek(position)
                chunk = f.read(size - position)
            position += len(chunk)
            pending += chunk
            *lines, pending = pending.split(b'\n')
            for raw in lines:
                line = raw.decode('utf-8', errors='replace')
                if not line.strip():
                    continue
                entry = parse_log_line(line) or {
                    'timestamp': None, 'level': None, 'context': None, 'message': line,
                }
                yield _sse(entry)

        if clock() - last_beat >= heartbeat_interval:
            last_beat = clock()
            yield ": heartbeat\n\n"

        sleep(poll_interval)


# ---------- endpoints ----------

def _date_range(args, required):
    start_raw = (args.get('start_date') or '').strip()
    end_raw = (args.get('end_date') or '').strip()
    if required and (not start_raw or not end_raw):
        raise SimlokError('start_date dan end_date wajib diisi.')

    start = parse_day_arg(start_raw, 'start_date') if start_raw else None
    end = parse_day_arg(end_raw, 'end_date') if end_raw else None
    if start and end and end < start:
        raise SimlokError('end_date tidak boleh sebelum start_date.')
    return start, end


@bp.route('/', strict_slashes=False, methods=['GET'])
@role_required(Role.SUPER_ADMIN)
def view_logs():
    start, end = _date_range(request.args, required=True)
    level = request.args.get('level', '').strip().upper() or None
    if level and level not in LEVELS:
        raise SimlokError('Level log tidak dikenal.', allowed=list(LEVELS))

    entries = read_logs(current_app.config['LOG_DIR'], start, end,
                        level=level, search=request.args.get('search', '').strip() or None)
    entries.reverse()
    return jsonify(logs=entries, total=len(entries),
                   start_date=start.isoformat(), end_date=end.isoformat())


@bp.route('/files', methods=['GET'])
@role_required(Role.SUPER_ADMIN)
def log_files():
    tz = ZoneInfo(current_app.config['TIMEZONE'])
    return jsonify(files=list_log_files(current_app.config['LOG_DIR'], tz))


@bp.route('/', strict_slashes=False, methods=['DELETE'])
@role_required(Role.SUPER_ADMIN)
def delete_logs():
    args = request.get_json(silent=True) or request.args
    start, end = _date_range(args, required=False)
    deleted = clear_logs(current_app.config['LOG_DIR'], start, end)
    log.warning("User %s deleted %d log files (%s to %s)", current_user.id, len(deleted),
                start or 'awal', end or 'akhir')
    return jsonify(message='Log berhasil dihapus.', deleted=deleted)


@bp.route('/stream', methods=['GET'])
@role_required(Role.SUPER_ADMIN)
def stream_logs():
    tz = ZoneInfo(current_app.config['TIMEZONE'])
    generator = follow_logs(
        current_app.config['LOG_DIR'],
        current_app.config['LOG_STREAM_POLL_INTERVAL'],
        current_app.config['LOG_STREAM_HEARTBEAT_INTERVAL'],
        today=lambda: datetime.now(tz).date(),
    )
    log.info("User %s opened log stream", current_user.id)
    return Response(generator, mimetype='text/event-stream', headers={
        'Cache-Control': 'no-cache',
        'X-Accel-Buffering': 'no',
    })
