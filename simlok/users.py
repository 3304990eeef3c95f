import logging

from flask import Blueprint, request, jsonify, session
from flask_login import login_required, current_user
from sqlalchemy import or_

from simlok import db
from simlok.auth import role_required
from simlok.errors import SimlokError, NotFound, Forbidden, Conflict
from simlok.models import User, Role, VerificationStatus
from simlok.schemas import (
    UserCreateSchema, UserUpdateSchema, ProfileSchema, PasswordChangeSchema, VerifyUserSchema,
)
from simlok.sessions import delete_all_user_sessions
from simlok.utils import get_page_args, pagination_dict, utcnow
from simlok import notifications

log = logging.getLogger(__name__)

bp = Blueprint('users', __name__)

PROFILE_FIELDS = ('officer_name', 'vendor_name', 'phone_number', 'address', 'profile_photo')


def get_user_or_404(id):
    user = db.session.get(User, id)
    if user is None:
        raise NotFound('User tidak ditemukan.')
    return user


@bp.route('/', strict_slashes=False, methods=['GET'])
@role_required(Role.SUPER_ADMIN)
def users():
    page, per_page = get_page_args()
    query = User.query

    search_query = request.args.get('q', '').strip()
    if search_query:
        like = f'%{search_query}%'
        query = query.filter(or_(
            User.officer_name.ilike(like),
            User.vendor_name.ilike(like),
            User.email.ilike(like),
        ))

    role = request.args.get('role', '').strip()
    if role:
        try:
            query = query.filter(User.role == Role(role))
        except ValueError:
            raise SimlokError('Filter role tidak dikenal.')

    verification_status = request.args.get('verification_status', '').strip()
    if verification_status:
        try:
            query = query.filter(User.verification_status == VerificationStatus(verification_status))
        except ValueError:
            raise SimlokError('Filter verification_status tidak dikenal.')

    result = query.order_by(User.created_at.desc(), User.id.desc()) \
        .paginate(page=page, per_page=per_page, error_out=False)
    return jsonify(users=[u.to_dict() for u in result.items], pagination=pagination_dict(result))


@bp.route('/', strict_slashes=False, methods=['POST'])
@role_required(Role.SUPER_ADMIN)
def add_user():
    data = UserCreateSchema().load(request.get_json(silent=True) or {})
    email = data['email'].lower()

    if User.query.filter_by(email=email).first():
        raise Conflict('Email sudah digunakan.')

    # User yang dibuat admin langsung terverifikasi
    user = User(
        email=email,
        officer_name=data['officer_name'],
        vendor_name=data.get('vendor_name'),
        phone_number=data.get('phone_number'),
        address=data.get('address'),
        position=data.get('position'),
        role=data['role'],
        verification_status=VerificationStatus.VERIFIED,
        verified_at=utcnow(),
        verified_by_id=current_user.id,
    )
    user.set_password(data['password'])
    db.session.add(user)
    db.session.commit()

    log.info("User %s (%s) created by admin %s", user.id, user.role.value, current_user.id)
    return jsonify(message='User berhasil ditambahkan.', user=user.to_dict()), 201


@bp.route('/<int:id>', methods=['GET'])
@role_required(Role.SUPER_ADMIN)
def get_user(id):
    return jsonify(user=get_user_or_404(id).to_dict())


@bp.route('/<int:id>', methods=['PUT', 'PATCH'])
@role_required(Role.SUPER_ADMIN)
def edit_user(id):
    user = get_user_or_404(id)
    data = UserUpdateSchema().load(request.get_json(silent=True) or {})

    if 'email' in data and data['email'].lower() != user.email:
        if User.query.filter_by(email=data['email'].lower()).first():
            raise Conflict('Email sudah digunakan.')
        user.email = data['email'].lower()

    if user.id == current_user.id and (data.get('is_active') is False or
                                      data.get('role', Role.SUPER_ADMIN) != Role.SUPER_ADMIN):
        raise Forbidden('Anda tidak dapat menonaktifkan atau mengubah role akun sendiri.')

    drop_sessions = False
    if 'role' in data and data['role'] != user.role:
        user.role = data['role']
        drop_sessions = True
    if 'is_active' in data and data['is_active'] != user.is_active:
        user.is_active = data['is_active']
        drop_sessions = drop_sessions or not data['is_active']

    for key in ('officer_name', 'vendor_name', 'phone_number', 'address', 'position'):
        if key in data:
            setattr(user, key, data[key])
    if data.get('password'):
        user.set_password(data['password'])

    db.session.commit()
    if drop_sessions:
        delete_all_user_sessions(user.id)

    log.info("User %s updated by admin %s", user.id, current_user.id)
    return jsonify(message='User berhasil diperbarui.', user=user.to_dict())


@bp.route('/<int:id>', methods=['DELETE'])
@role_required(Role.SUPER_ADMIN)
def delete_user(id):
    user = get_user_or_404(id)
    if user.id == current_user.id:
        raise Forbidden('Anda tidak dapat menghapus akun sendiri.')

    db.session.delete(user)
    db.session.commit()
    log.info("User %s deleted by admin %s", id, current_user.id)
    return jsonify(message='User berhasil dihapus.')


@bp.route('/pending-vendors', methods=['GET'])
@role_required(Role.REVIEWER, Role.SUPER_ADMIN)
def pending_vendors():
    page, per_page = get_page_args()
    result = User.query.filter(User.role == Role.VENDOR,
                               User.verification_status == VerificationStatus.PENDING) \
        .order_by(User.created_at.asc(), User.id.asc()) \
        .paginate(page=page, per_page=per_page, error_out=False)
    return jsonify(users=[u.to_dict() for u in result.items], pagination=pagination_dict(result))


@bp.route('/<int:id>/verify', methods=['POST'])
@role_required(Role.REVIEWER, Role.SUPER_ADMIN)
def verify_user(id):
    user = get_user_or_404(id)
    data = VerifyUserSchema().load(request.get_json(silent=True) or {})

    if user.role != Role.VENDOR:
        raise SimlokError('Hanya akun vendor yang perlu diverifikasi.')

    if data['action'] == 'VERIFY':
        user.verification_status = VerificationStatus.VERIFIED
        user.rejection_reason = None
    else:
        user.verification_status = VerificationStatus.REJECTED
        user.rejection_reason = data.get('note')
    user.verified_at = utcnow()
    user.verified_by_id = current_user.id

    notifications.notify_vendor_verified(user)
    db.session.commit()
    if user.verification_status == VerificationStatus.REJECTED:
        delete_all_user_sessions(user.id)

    log.info("Vendor %s %s by %s", user.id, user.verification_status.value, current_user.id)
    return jsonify(message='Status verifikasi berhasil diperbarui.', user=user.to_dict())


@bp.route('/profile', methods=['GET'])
@login_required
def profile():
    return jsonify(user=current_user.to_dict())


@bp.route('/profile', methods=['PUT', 'PATCH'])
@login_required
def update_profile():
    data = ProfileSchema().load(request.get_json(silent=True) or {})
    for key in PROFILE_FIELDS:
        if key in data:
            setattr(current_user, key, data[key])
    db.session.commit()
    return jsonify(message='Profil berhasil diperbarui.', user=current_user.to_dict())


@bp.route('/profile/password', methods=['POST'])
@login_required
def change_password():
    data = PasswordChangeSchema().load(request.get_json(silent=True) or {})
    if not current_user.check_password(data['current_password']):
        raise SimlokError('Password saat ini salah.')

    current_user.set_password(data['new_password'])
    db.session.commit()
    # Sesi di perangkat lain dibatalkan, sesi ini tetap aktif
    dropped = delete_all_user_sessions(current_user.id, except_token=session.get('session_token'))

    log.info("User %s changed password", current_user.id)
    return jsonify(message='Password berhasil diubah.', sessions_deleted=dropped)
