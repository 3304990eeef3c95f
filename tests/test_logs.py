import json
import logging
import os
from datetime import date, timedelta

from simlok.logs import (
    parse_log_line, read_logs, list_log_files, clear_logs, follow_logs, configure_logging,
    DailyFileHandler,
)

DAY = date(2021, 3, 9)


def write_log(log_dir, day, lines, prefix='all'):
    os.makedirs(log_dir, exist_ok=True)
    with open(os.path.join(log_dir, f'{prefix}-{day.isoformat()}.log'), 'a', encoding='utf-8') as f:
        for line in lines:
            f.write(line + '\n')


def test_parse_log_line():
    entry = parse_log_line('[2021-03-09 08:00:01.123] [INFO] [simlok.workflow] Submission 3 created')
    assert entry == {
        'timestamp': '2021-03-09 08:00:01.123',
        'level': 'INFO',
        'context': 'simlok.workflow',
        'message': 'Submission 3 created',
    }
    assert parse_log_line('Traceback (most recent call last):') is None


def test_read_logs_joins_continuation_lines(tmp_path):
    write_log(tmp_path, DAY, [
        '[2021-03-09 08:00:00.000] [INFO] [simlok] start',
        '[2021-03-09 08:00:01.000] [ERROR] [simlok.errors] Database error: boom',
        'Traceback (most recent call last):',
        '  File "x.py", line 1',
        '[2021-03-09 08:00:02.000] [WARNING] [simlok.auth] Failed login for a@b.c',
    ])

    entries = read_logs(str(tmp_path), DAY, DAY)
    assert [e['level'] for e in entries] == ['INFO', 'ERROR', 'WARNING']
    assert entries[1]['message'].endswith('line 1')
    assert 'Traceback' in entries[1]['message']


def test_read_logs_filters_and_range(tmp_path):
    write_log(tmp_path, DAY - timedelta(days=1), ['[2021-03-08 23:59:00.000] [INFO] [simlok] kemarin'])
    write_log(tmp_path, DAY, [
        '[2021-03-09 09:00:00.000] [INFO] [simlok.scans] Submission 1 scanned',
        '[2021-03-09 09:01:00.000] [ERROR] [simlok] gagal',
    ])
    write_log(tmp_path, DAY, ['[2021-03-09 09:01:00.000] [ERROR] [simlok] gagal'], prefix='error')

    assert len(read_logs(str(tmp_path), DAY - timedelta(days=1), DAY)) == 3
    assert len(read_logs(str(tmp_path), DAY, DAY)) == 2
    assert [e['message'] for e in read_logs(str(tmp_path), DAY, DAY, level='error')] == ['gagal']
    assert [e['context'] for e in read_logs(str(tmp_path), DAY, DAY, search='SCANNED')] == ['simlok.scans']
    assert read_logs(str(tmp_path), DAY + timedelta(days=1), DAY + timedelta(days=3)) == []


def test_read_logs_wide_range_lists_directory_once(tmp_path, monkeypatch):
    write_log(tmp_path, DAY, ['[2021-03-09 09:00:00.000] [INFO] [simlok] satu'])
    write_log(tmp_path, DAY + timedelta(days=400), ['[2022-04-13 09:00:00.000] [INFO] [simlok] dua'])
    write_log(tmp_path, DAY, ['[2021-03-09 09:00:00.000] [ERROR] [simlok] satu'], prefix='error')

    lookups = []
    real_exists = os.path.exists
    monkeypatch.setattr(os.path, 'exists', lambda p: lookups.append(p) or real_exists(p))

    entries = read_logs(str(tmp_path), date(1, 1, 1), date(9999, 12, 31))

    assert [e['message'] for e in entries] == ['satu', 'dua']
    assert len(lookups) < 5


def test_list_and_clear_log_files(tmp_path):
    for offset in range(3):
        write_log(tmp_path, DAY - timedelta(days=offset), ['[x] [INFO] [simlok] a'])
    (tmp_path / 'catatan.txt').write_text('bukan log')

    names = [f['name'] for f in list_log_files(str(tmp_path))]
    assert names == ['all-2021-03-09.log', 'all-2021-03-08.log', 'all-2021-03-07.log']

    deleted = clear_logs(str(tmp_path), start=DAY - timedelta(days=1), end=DAY - timedelta(days=1))
    assert deleted == ['all-2021-03-08.log']
    assert sorted(clear_logs(str(tmp_path))) == ['all-2021-03-07.log', 'all-2021-03-09.log']
    assert (tmp_path / 'catatan.txt').exists()


def test_configure_logging_writes_daily_files_once(app, tmp_path):
    configure_logging(app)
    configure_logging(app)

    logger = logging.getLogger('simlok')
    assert sum(isinstance(h, DailyFileHandler) for h in logger.handlers) == 2

    logging.getLogger('simlok.test').info('halo info')
    logging.getLogger('simlok.test').error('halo error')

    log_dir = app.config['LOG_DIR']
    all_file = [n for n in os.listdir(log_dir) if n.startswith('all-')]
    error_file = [n for n in os.listdir(log_dir) if n.startswith('error-')]
    assert len(all_file) == 1 and len(error_file) == 1

    with open(os.path.join(log_dir, all_file[0]), encoding='utf-8') as f:
        lines = [l for l in f.read().splitlines() if 'halo' in l]
    assert len(lines) == 2
    assert parse_log_line(lines[0])['context'] == 'simlok.test'

    with open(os.path.join(log_dir, error_file[0]), encoding='utf-8') as f:
        content = f.read()
    assert 'halo error' in content
    assert 'halo info' not in content


def test_configure_logging_removes_expired_files(app):
    log_dir = app.config['LOG_DIR']
    old = date.today() - timedelta(days=app.config['LOG_RETENTION_DAYS'] + 5)
    write_log(log_dir, old, ['[x] [INFO] [simlok] lama'])

    configure_logging(app)
    assert not os.path.exists(os.path.join(log_dir, f'all-{old.isoformat()}.log'))


# ---------- streaming ----------

class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_follow_logs_streams_only_new_lines(tmp_path):
    write_log(tmp_path, DAY, ['[2021-03-09 07:00:00.000] [INFO] [simlok] lama'])
    clock = FakeClock()
    stream = follow_logs(str(tmp_path), 1, 30, sleep=lambda s: None, clock=clock, today=lambda: DAY)

    assert next(stream).startswith('event: connected')

    write_log(tmp_path, DAY, [
        '[2021-03-09 07:00:01.000] [INFO] [simlok.workflow] baru',
        'lanjutan traceback',
    ])
    first = next(stream)
    assert first.startswith('data: ')
    assert json.loads(first[len('data: '):])['message'] == 'baru'

    second = json.loads(next(stream)[len('data: '):])
    assert second['level'] is None
    assert second['message'] == 'lanjutan traceback'


def test_follow_logs_heartbeat(tmp_path):
    clock = FakeClock()

    def sleep(seconds):
        clock.now += seconds

    stream = follow_logs(str(tmp_path), 10, 30, sleep=sleep, clock=clock, today=lambda: DAY)
    next(stream)

    assert next(stream) == ': heartbeat\n\n'
    assert clock.now >= 30


def test_follow_logs_rereads_truncated_file(tmp_path):
    write_log(tmp_path, DAY, ['[2021-03-09 07:00:00.000] [INFO] [simlok] baris lama yang cukup panjang sebelum file dipotong'])
    path = tmp_path / f'all-{DAY.isoformat()}.log'
    stream = follow_logs(str(tmp_path), 1, 1000, sleep=lambda s: None, clock=FakeClock(),
                         today=lambda: DAY)
    next(stream)

    path.write_text('[2021-03-09 08:00:00.000] [INFO] [simlok] setelah')
    with open(path, 'a', encoding='utf-8') as f:
        f.write(' dipotong\n')

    event = json.loads(next(stream)[len('data: '):])
    assert event['message'] == 'setelah dipotong'


def test_follow_logs_switches_file_at_midnight(tmp_path):
    days = iter([DAY, DAY + timedelta(days=1)])
    current = {'day': next(days)}
    stream = follow_logs(str(tmp_path), 1, 1000, sleep=lambda s: None, clock=FakeClock(),
                         today=lambda: current['day'])
    next(stream)

    current['day'] = next(days)
    write_log(tmp_path, current['day'], ['[2021-03-10 00:00:01.000] [INFO] [simlok] hari baru'])

    event = json.loads(next(stream)[len('data: '):])
    assert event['message'] == 'hari baru'


# ---------- endpoints ----------

def test_log_endpoints_are_admin_only(login_as):
    for role in ('vendor', 'reviewer', 'approver', 'verifier'):
        client = login_as(role)
        assert client.get('/api/logs/?start_date=2021-03-09&end_date=2021-03-09').status_code == 403
        assert client.get('/api/logs/files').status_code == 403
        assert client.delete('/api/logs/').status_code == 403
        assert client.get('/api/logs/stream').status_code == 403


def test_view_logs_requires_dates(login_as):
    admin = login_as('admin')
    assert admin.get('/api/logs/').status_code == 400
    assert admin.get('/api/logs/?start_date=2021-03-09').status_code == 400
    assert admin.get('/api/logs/?start_date=2021-03-10&end_date=2021-03-09').status_code == 400
    assert admin.get('/api/logs/?start_date=2021-03-09&end_date=2021-03-09&level=LOUD').status_code == 400


def test_view_logs(app, login_as):
    write_log(app.config['LOG_DIR'], DAY, [
        '[2021-03-09 09:00:00.000] [INFO] [simlok.scans] pertama',
        '[2021-03-09 09:05:00.000] [ERROR] [simlok] kedua',
    ])
    admin = login_as('admin')

    body = admin.get('/api/logs/?start_date=2021-03-09&end_date=2021-03-09').get_json()
    assert body['total'] == 2
    assert body['logs'][0]['message'] == 'kedua'

    body = admin.get('/api/logs/?start_date=2021-03-09&end_date=2021-03-09&level=INFO&search=pert').get_json()
    assert [e['message'] for e in body['logs']] == ['pertama']

    files = admin.get('/api/logs/files').get_json()['files']
    assert 'all-2021-03-09.log' in [f['name'] for f in files]


def test_delete_logs_is_logged(app, login_as):
    write_log(app.config['LOG_DIR'], DAY, ['[2021-03-09 09:00:00.000] [INFO] [simlok] lama'])
    admin = login_as('admin')

    resp = admin.delete('/api/logs/', json={'start_date': '2021-03-09', 'end_date': '2021-03-09'})
    assert resp.status_code == 200
    assert resp.get_json()['deleted'] == ['all-2021-03-09.log']

    entries = []
    for name in os.listdir(app.config['LOG_DIR']):
        if name.startswith('all-'):
            with open(os.path.join(app.config['LOG_DIR'], name), encoding='utf-8') as f:
                entries.extend(f.read().splitlines())
    assert any('deleted 1 log files' in line for line in entries)


def test_stream_endpoint(login_as):
    resp = login_as('admin').get('/api/logs/stream')

    assert resp.status_code == 200
    assert resp.mimetype == 'text/event-stream'
    assert resp.headers['Cache-Control'] == 'no-cache'
    first = next(iter(resp.response))
    if isinstance(first, bytes):
        first = first.decode()
    assert first.startswith('event: connected')
    resp.close()


def test_view_logs_accepts_very_wide_range(app, login_as):
    write_log(app.config['LOG_DIR'], DAY, ['[2021-03-09 09:00:00.000] [INFO] [simlok.scans] pertama'])

    resp = login_as('admin').get('/api/logs?start_date=0001-01-01&end_date=9999-12-31')

    assert resp.status_code == 200
    assert 'pertama' in [e['message'] for e in resp.get_json()['logs']]
