import logging
from functools import wraps

from flask import Blueprint, request, jsonify, session
from flask_login import login_required, current_user

from simlok import db
from simlok.errors import Forbidden, Conflict
from simlok.models import User, Role, VerificationStatus
from simlok.schemas import SignupSchema, LoginSchema
from simlok import sessions as session_store
from simlok import notifications

log = logging.getLogger(__name__)

auth = Blueprint('auth', __name__)

STAFF_ROLES = (Role.REVIEWER, Role.APPROVER, Role.VERIFIER, Role.SUPER_ADMIN)


def role_required(*roles):
    def decorator(f):
        @wraps(f)
        @login_required
        def decorated_function(*args, **kwargs):
            if current_user.role not in roles:
                raise Forbidden("Anda tidak memiliki akses ke fitur ini.")
            return f(*args, **kwargs)
        return decorated_function
    return decorator


@auth.route('/signup', methods=['POST'])
def signup():
    data = SignupSchema().load(request.get_json(silent=True) or {})

    if User.query.filter_by(email=data['email'].lower()).first():
        raise Conflict('Email sudah digunakan.')

    user = User(
        email=data['email'].lower(),
        officer_name=data['officer_name'],
        vendor_name=data['vendor_name'],
        phone_number=data['phone_number'],
        address=data['address'],
        role=Role.VENDOR,
        verification_status=VerificationStatus.PENDING,
    )
    user.set_password(data['password'])
    db.session.add(user)
    db.session.flush()
    notifications.notify_new_vendor(user)
    db.session.commit()

    log.info("Vendor signed up: %s (%s)", user.email, user.vendor_name)
    return jsonify(message='Registrasi berhasil, menunggu verifikasi.', user=user.to_dict()), 201


@auth.route('/login', methods=['POST'])
def login():
    data = LoginSchema().load(request.get_json(silent=True) or {})
    user = User.query.filter_by(email=data['email'].lower()).first()

    if not user or not user.check_password(data['password']):
        log.warning("Failed login for %s from %s", data['email'], request.remote_addr)
        return jsonify(error='Login gagal. Periksa email/password.'), 401

    if not user.is_active:
        raise Forbidden('Akun dinonaktifkan.')

    if not user.is_verified:
        raise Forbidden('Akun belum diverifikasi.',
                        verification_status=user.verification_status.value)

    user_session = session_store.create_session(
        user,
        ip_address=request.remote_addr,
        user_agent=request.headers.get('User-Agent'),
    )
    session.clear()
    session['session_token'] = user_session.session_token
    session.permanent = True

    log.info("User %s logged in (role=%s)", user.id, user.role.value)
    return jsonify(message='Login berhasil!', user=user.to_dict())


@auth.route('/logout', methods=['POST'])
@login_required
def logout():
    user_id = current_user.id
    # Hapus semua sesi user: semua perangkat langsung ter-logout
    deleted = session_store.delete_all_user_sessions(user_id)
    session.clear()
    log.info("User %s logged out", user_id)
    return jsonify(message='Logout berhasil.', sessions_deleted=deleted)


@auth.route('/me')
@login_required
def me():
    return jsonify(user=current_user.to_dict())


@auth.route('/sessions')
@login_required
def list_sessions():
    current_token = session.get('session_token')
    items = []
    for s in session_store.active_sessions(current_user.id):
        entry = s.to_dict()
        entry['current'] = s.session_token == current_token
        items.append(entry)
    return jsonify(sessions=items)
