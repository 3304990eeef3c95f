"""
Pytest configuration and fixtures for SIMLOK tests.

Every test gets a fresh app on a temporary SQLite file, with its own log and
upload folders, and one verified user per role.
"""
from datetime import date, timedelta

import pytest

from config import TestingConfig
from simlok import create_app, db
from simlok import workflow
from simlok.models import User, Role, VerificationStatus
from simlok.schemas import SubmissionSchema
from simlok.utils import utcnow

PASSWORD = "rahasia123"

USERS = {
    'vendor': dict(email='vendor@simlok.test', role=Role.VENDOR, officer_name='Andi Wijaya',
                   vendor_name='PT Maju Jaya', phone_number='081234567890'),
    'vendor2': dict(email='vendor2@simlok.test', role=Role.VENDOR, officer_name='Sari Dewi',
                    vendor_name='CV Sumber Rejeki'),
    'reviewer': dict(email='reviewer@simlok.test', role=Role.REVIEWER, officer_name='Rina Lestari'),
    'approver': dict(email='approver@simlok.test', role=Role.APPROVER, officer_name='Budi Santoso',
                     position='Head of Security Region I'),
    'verifier': dict(email='verifier@simlok.test', role=Role.VERIFIER, officer_name='Vera Putri',
                     address='Pos Jaga Utama'),
    'verifier2': dict(email='verifier2@simlok.test', role=Role.VERIFIER, officer_name='Agus Salim'),
    'admin': dict(email='admin@simlok.test', role=Role.SUPER_ADMIN, officer_name='Super Admin'),
    'visitor': dict(email='visitor@simlok.test', role=Role.VISITOR, officer_name='Tamu'),
}


def submission_payload(**overrides):
    """Body JSON pengajuan yang valid; tanggal pelaksanaan mencakup hari ini."""
    today = date.today()
    payload = {
        'vendor_name': 'PT Maju Jaya',
        'based_on': 'Surat Permohonan No. 001/MJ/2026',
        'officer_name': 'Andi Wijaya',
        'job_description': 'Perbaikan pipa distribusi',
        'work_location': 'Area Tangki T-12',
        'working_hours': '08:00 - 17:00 WIB',
        'work_facilities': 'Peralatan las dan APD lengkap',
        'implementation_start_date': (today - timedelta(days=2)).isoformat(),
        'implementation_end_date': (today + timedelta(days=7)).isoformat(),
        'other_notes': 'Izin kerja panas\nWajib didampingi HSE',
        'workers': [
            {'worker_name': 'Joko Susilo', 'hsse_pass_number': 'HSSE-001'},
            {'worker_name': 'Bambang Hartono', 'hsse_pass_number': 'HSSE-002'},
        ],
        'support_documents': [{
            'document_type': 'SIMJA',
            'document_number': 'SIMJA/2026/014',
            'document_date': today.isoformat(),
            'document_upload': '/api/files/1/document/simja.pdf',
        }],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def app(tmp_path):
    app = create_app(TestingConfig, overrides={
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'simlok-test.db'}",
        'LOG_DIR': str(tmp_path / 'logs'),
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
    })

    with app.app_context():
        db.create_all()
        for data in USERS.values():
            user = User(verification_status=VerificationStatus.VERIFIED, verified_at=utcnow(), **data)
            user.set_password(PASSWORD)
            db.session.add(user)
        db.session.commit()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ctx(app):
    """App context untuk test yang memanggil fungsi langsung (tanpa HTTP)."""
    with app.app_context():
        yield


@pytest.fixture
def users(ctx):
    return {key: User.query.filter_by(email=data['email']).one() for key, data in USERS.items()}


def login(client, email, password=PASSWORD):
    return client.post('/api/auth/login', json={'email': email, 'password': password})


@pytest.fixture
def login_as(app):
    """Client baru yang sudah login sebagai user fixture tertentu."""
    def _login_as(key):
        client = app.test_client()
        resp = login(client, USERS[key]['email'])
        assert resp.status_code == 200, resp.get_json()
        return client
    return _login_as


@pytest.fixture
def user_id(app):
    def _user_id(key):
        with app.app_context():
            return User.query.filter_by(email=USERS[key]['email']).one().id
    return _user_id


@pytest.fixture
def make_submission(ctx, users):
    def _make(vendor='vendor', **overrides):
        data = SubmissionSchema().load(submission_payload(**overrides))
        return workflow.create_submission(users[vendor], data)
    return _make


@pytest.fixture
def approved_submission(ctx, users, make_submission):
    def _approved(**overrides):
        submission = make_submission(**overrides)
        workflow.review_submission(users['reviewer'], submission,
                                   {'review_status': 'MEETS_REQUIREMENTS'})
        return workflow.finalize_submission(users['approver'], submission,
                                            {'approval_status': 'APPROVED'})
    return _approved


@pytest.fixture
def api_submission(app, login_as):
    """Buat pengajuan lewat API sebagai vendor; kembalikan id-nya."""
    def _create(vendor='vendor', **overrides):
        resp = login_as(vendor).post('/api/submissions/', json=submission_payload(**overrides))
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()['submission']['id']
    return _create


@pytest.fixture
def api_approve(login_as):
    """Jalankan review MEETS + APPROVED lewat API."""
    def _approve(submission_id):
        reviewer = login_as('reviewer')
        resp = reviewer.patch(f'/api/submissions/{submission_id}/review',
                              json={'review_status': 'MEETS_REQUIREMENTS'})
        assert resp.status_code == 200, resp.get_json()
        approver = login_as('approver')
        resp = approver.patch(f'/api/submissions/{submission_id}/approve',
                              json={'approval_status': 'APPROVED'})
        assert resp.status_code == 200, resp.get_json()
        return resp.get_json()['submission']
    return _approve
