import logging

from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from sqlalchemy import and_, false

from simlok import db
from simlok.errors import NotFound
from simlok.models import Notification, NotificationRead, NotificationScope, Role
from simlok.utils import get_page_args, pagination_dict, utcnow

log = logging.getLogger(__name__)

bp = Blueprint('notifications', __name__)

ROLE_SCOPES = {
    Role.SUPER_ADMIN: NotificationScope.admin,
    Role.REVIEWER: NotificationScope.reviewer,
    Role.APPROVER: NotificationScope.approver,
    Role.VENDOR: NotificationScope.vendor,
}


def _push(scope, type_, title, message, submission=None, vendor_id=None, **data):
    notification = Notification(
        scope=scope,
        vendor_id=vendor_id,
        submission_id=submission.id if submission is not None else None,
        type=type_,
        title=title,
        message=message,
        data=data or None,
    )
    db.session.add(notification)
    log.info("Notification %s -> %s%s", type_, scope.value,
             f" (vendor {vendor_id})" if vendor_id else "")
    return notification


# ---------- producers ----------

def notify_new_submission(submission):
    message = f"{submission.vendor_name} mengajukan SIMLOK baru: {submission.job_description}"
    for scope in (NotificationScope.reviewer, NotificationScope.admin):
        _push(scope, 'new_submission', 'Pengajuan Baru', message, submission=submission)


def notify_reviewed(submission, reviewer):
    _push(NotificationScope.approver, 'submission_reviewed', 'Pengajuan Telah Direview',
          f"Pengajuan {submission.vendor_name} telah direview oleh {reviewer.officer_name}",
          submission=submission, review_status=submission.review_status.value)
    if submission.user_id and submission.review_status.value == 'NOT_MEETS_REQUIREMENTS':
        _push(NotificationScope.vendor, 'submission_needs_revision', 'Pengajuan Perlu Perbaikan',
              submission.note_for_vendor or 'Pengajuan Anda tidak memenuhi persyaratan.',
              submission=submission, vendor_id=submission.user_id)


def notify_vendor_status(submission):
    if not submission.user_id:
        return
    if submission.approval_status.value == 'APPROVED':
        title = 'Pengajuan Disetujui'
        message = f"SIMLOK {submission.simlok_number} telah disetujui."
    else:
        title = 'Pengajuan Ditolak'
        message = submission.note_for_vendor or 'Pengajuan Anda ditolak.'
    _push(NotificationScope.vendor, 'status_change', title, message,
          submission=submission, vendor_id=submission.user_id,
          approval_status=submission.approval_status.value)


def notify_submission_approved(submission):
    _push(NotificationScope.reviewer, 'submission_approved', 'Pengajuan Disetujui',
          f"Pengajuan {submission.vendor_name} disetujui dengan nomor {submission.simlok_number}",
          submission=submission)


def notify_resubmitted(submission):
    _push(NotificationScope.reviewer, 'submission_resubmitted', 'Pengajuan Dikirim Ulang',
          f"{submission.vendor_name} telah memperbaiki dan mengirim ulang pengajuan",
          submission=submission)


def notify_new_vendor(user):
    message = f"Vendor baru mendaftar: {user.vendor_name} ({user.email})"
    for scope in (NotificationScope.admin, NotificationScope.reviewer):
        _push(scope, 'new_vendor', 'Vendor Baru', message, user_id=user.id)


def notify_vendor_verified(user):
    if user.verification_status.value == 'VERIFIED':
        title, message = 'Akun Terverifikasi', 'Akun Anda telah diverifikasi. Silakan login.'
    else:
        title = 'Verifikasi Ditolak'
        message = user.rejection_reason or 'Pendaftaran akun Anda ditolak.'
    _push(NotificationScope.vendor, 'vendor_verification', title, message, vendor_id=user.id)


def remove_submission_notifications(submission_id):
    ids = [n.id for n in Notification.query.with_entities(Notification.id)
           .filter_by(submission_id=submission_id)]
    if ids:
        NotificationRead.query.filter(NotificationRead.notification_id.in_(ids)).delete(
            synchronize_session=False)
        Notification.query.filter(Notification.id.in_(ids)).delete(synchronize_session=False)
    return len(ids)


# ---------- consumers ----------

def visible_notifications(user):
    scope = ROLE_SCOPES.get(user.role)
    if scope is None:
        return Notification.query.filter(false())
    if scope == NotificationScope.vendor:
        return Notification.query.filter(and_(Notification.scope == scope,
                                              Notification.vendor_id == user.id))
    return Notification.query.filter(Notification.scope == scope)


def _read_ids(user_id, notification_ids):
    if not notification_ids:
        return set()
    rows = (NotificationRead.query
            .with_entities(NotificationRead.notification_id)
            .filter(NotificationRead.user_id == user_id,
                    NotificationRead.notification_id.in_(notification_ids)))
    return {r.notification_id for r in rows}


def _unread_query(user):
    read_subq = (db.session.query(NotificationRead.notification_id)
                 .filter(NotificationRead.user_id == user.id))
    return visible_notifications(user).filter(~Notification.id.in_(read_subq))


@bp.route('/', strict_slashes=False, methods=['GET'])
@login_required
def list_notifications():
    page, per_page = get_page_args()
    if request.args.get('unread') == 'true':
        query = _unread_query(current_user)
    else:
        query = visible_notifications(current_user)

    pagination = query.order_by(Notification.created_at.desc(), Notification.id.desc()) \
        .paginate(page=page, per_page=per_page, error_out=False)
    read = _read_ids(current_user.id, [n.id for n in pagination.items])

    return jsonify(
        notifications=[n.to_dict(is_read=n.id in read) for n in pagination.items],
        unread_count=_unread_query(current_user).count(),
        pagination=pagination_dict(pagination),
    )


@bp.route('/<int:id>/read', methods=['POST'])
@login_required
def mark_read(id):
    notification = visible_notifications(current_user).filter(Notification.id == id).first()
    if notification is None:
        raise NotFound('Notifikasi tidak ditemukan.')

    exists = NotificationRead.query.filter_by(notification_id=id, user_id=current_user.id).first()
    if not exists:
        db.session.add(NotificationRead(notification_id=id, user_id=current_user.id, read_at=utcnow()))
        db.session.commit()
    return jsonify(message='Notifikasi ditandai sudah dibaca.')


@bp.route('/read-all', methods=['POST'])
@login_required
def mark_all_read():
    now = utcnow()
    unread = _unread_query(current_user).all()
    for n in unread:
        db.session.add(NotificationRead(notification_id=n.id, user_id=current_user.id, read_at=now))
    db.session.commit()
    return jsonify(message='Semua notifikasi ditandai sudah dibaca.', updated=len(unread))
