from datetime import date, timedelta
from types import SimpleNamespace

from simlok.models import QrScan
from simlok.qr import generate_qr_string, parse_qr_string, is_qr_valid_for_date, qr_png, QrPayload


def _fake_submission(id, start=None, end=None):
    return SimpleNamespace(id=id, implementation_start_date=start, implementation_end_date=end)


# ---------- qr module ----------

def test_qr_string_roundtrip(ctx):
    text = generate_qr_string(_fake_submission(7, date(2026, 10, 1), date(2026, 10, 31)))

    assert text.startswith('SL:')
    assert parse_qr_string(text) == QrPayload(7, date(2026, 10, 1), date(2026, 10, 31))


def test_qr_without_dates(ctx):
    payload = parse_qr_string(generate_qr_string(_fake_submission(3)))
    assert payload == QrPayload(3, None, None)
    assert is_qr_valid_for_date(payload, date(2030, 1, 1))


def test_tampered_or_foreign_qr_is_rejected(ctx, app):
    text = generate_qr_string(_fake_submission(7))

    assert parse_qr_string(text[:-2] + 'xx') is None
    assert parse_qr_string('XX:' + text.split(':', 1)[1]) is None
    assert parse_qr_string('bukan qr simlok') is None
    assert parse_qr_string('') is None

    app.config['QR_SECRET'] = 'rahasia-lain'
    assert parse_qr_string(text) is None


def test_qr_validity_window():
    payload = QrPayload(1, date(2026, 10, 10), date(2026, 10, 20))

    assert not is_qr_valid_for_date(payload, date(2026, 10, 9))
    assert is_qr_valid_for_date(payload, date(2026, 10, 10))
    assert is_qr_valid_for_date(payload, date(2026, 10, 20))
    assert not is_qr_valid_for_date(payload, date(2026, 10, 21))


def test_qr_png_is_image():
    assert qr_png('SL:abc').startswith(b'\x89PNG')


# ---------- verify endpoint ----------

def _approved_qr(api_submission, api_approve, **overrides):
    submission = api_approve(api_submission(**overrides))
    return submission['id'], submission['qrcode']


def test_verify_records_scan(app, login_as, api_submission, api_approve, user_id):
    submission_id, qrcode = _approved_qr(api_submission, api_approve)

    resp = login_as('verifier').post('/api/qr/verify', json={'qr_data': qrcode})

    assert resp.status_code == 200
    body = resp.get_json()
    assert body['submission']['id'] == submission_id
    assert body['submission']['scan_count'] == 1
    assert body['scan']['scan_location'] == 'Pos Jaga Utama'
    assert body['scan']['scanner_name'] == 'Vera Putri'

    with app.app_context():
        scan = QrScan.query.one()
        assert scan.scanned_by_id == user_id('verifier')


def test_duplicate_scan_same_day(login_as, api_submission, api_approve):
    _, qrcode = _approved_qr(api_submission, api_approve)
    verifier = login_as('verifier')

    assert verifier.post('/api/qr/verify', json={'qr_data': qrcode}).status_code == 200
    resp = verifier.post('/api/qr/verify', json={'qr_data': qrcode, 'scan_location': 'Gerbang 2'})

    assert resp.status_code == 409
    assert resp.get_json()['code'] == 'duplicate_scan_same_day'

    # Verifier lain tetap boleh scan di hari yang sama
    resp = login_as('verifier2').post('/api/qr/verify', json={'qr_data': qrcode, 'scan_location': 'Gerbang 2'})
    assert resp.status_code == 200
    assert resp.get_json()['scan']['scan_location'] == 'Gerbang 2'


def test_verify_rejects_invalid_qr(login_as):
    resp = login_as('verifier').post('/api/qr/verify', json={'qr_data': 'SL:palsu'})
    assert resp.status_code == 400
    assert resp.get_json()['code'] == 'invalid_qr'


def test_verify_outside_period(login_as, api_submission, api_approve):
    start = date.today() + timedelta(days=10)
    _, qrcode = _approved_qr(api_submission, api_approve,
                             implementation_start_date=start.isoformat(),
                             implementation_end_date=(start + timedelta(days=5)).isoformat())

    resp = login_as('verifier').post('/api/qr/verify', json={'qr_data': qrcode})
    assert resp.status_code == 400
    assert resp.get_json()['code'] == 'outside_period'


def test_verify_unapproved_submission(app, login_as, api_submission):
    submission_id = api_submission()
    with app.app_context():
        qrcode = generate_qr_string(_fake_submission(submission_id))

    resp = login_as('verifier').post('/api/qr/verify', json={'qr_data': qrcode})
    assert resp.status_code == 400
    assert resp.get_json()['code'] == 'not_approved'


def test_verify_unknown_submission(app, login_as):
    with app.app_context():
        qrcode = generate_qr_string(_fake_submission(4242))

    resp = login_as('verifier').post('/api/qr/verify', json={'qr_data': qrcode})
    assert resp.status_code == 404


def test_verify_stale_qr_is_rejected(app, login_as, api_submission, api_approve):
    submission_id, _ = _approved_qr(api_submission, api_approve)
    with app.app_context():
        other = generate_qr_string(_fake_submission(submission_id))

    resp = login_as('verifier').post('/api/qr/verify', json={'qr_data': other})
    assert resp.status_code == 400
    assert resp.get_json()['code'] == 'qr_mismatch'


def test_only_verifier_and_admin_can_scan(login_as, api_submission, api_approve):
    _, qrcode = _approved_qr(api_submission, api_approve)

    for role in ('vendor', 'reviewer', 'approver', 'visitor'):
        assert login_as(role).post('/api/qr/verify', json={'qr_data': qrcode}).status_code == 403, role
    assert login_as('admin').post('/api/qr/verify', json={'qr_data': qrcode}).status_code == 200


# ---------- history ----------

def test_scan_history_scoping(login_as, api_submission, api_approve):
    first_id, first_qr = _approved_qr(api_submission, api_approve)
    second_id, second_qr = _approved_qr(api_submission, api_approve, vendor='vendor2',
                                        vendor_name='CV Sumber Rejeki')

    verifier = login_as('verifier')
    verifier.post('/api/qr/verify', json={'qr_data': first_qr})
    verifier.post('/api/qr/verify', json={'qr_data': second_qr})
    login_as('verifier2').post('/api/qr/verify', json={'qr_data': first_qr})

    own = verifier.get('/api/scan-history').get_json()
    assert own['pagination']['total'] == 2

    admin = login_as('admin')
    assert admin.get('/api/scan-history').get_json()['pagination']['total'] == 3
    assert admin.get(f'/api/scan-history?submission_id={first_id}').get_json()['pagination']['total'] == 2
    assert admin.get('/api/scan-history?q=sumber').get_json()['pagination']['total'] == 1

    assert login_as('vendor').get('/api/scan-history').status_code == 403

    detail = login_as('reviewer').get(f'/api/submissions/{first_id}/scans').get_json()
    assert detail['total_scans'] == 2
    assert detail['unique_scanners'] == 2
    assert login_as('vendor').get(f'/api/submissions/{second_id}/scans').status_code == 403
