"""Alur pengajuan SIMLOK.

Status review (diisi reviewer) dan status approval (diisi approver) adalah dua
sumbu terpisah. Keputusan akhir hanya boleh diambil untuk pengajuan yang sudah
MEETS_REQUIREMENTS. Nomor SIMLOK dan QR hanya dibuat sekali, saat APPROVED.
"""
import logging

from sqlalchemy.exc import IntegrityError

from flask import current_app

from simlok import db
from simlok import notifications
from simlok.errors import Forbidden, InvalidTransition, NotFound
from simlok.models import (
    Submission, WorkerList, SupportDocument, Role, ReviewStatus, ApprovalStatus,
)
from simlok.qr import generate_qr_string
from simlok.utils import utcnow, local_today

log = logging.getLogger(__name__)

MAX_NUMBER_ATTEMPTS = 3

SUBMISSION_FIELDS = (
    'vendor_name', 'vendor_phone', 'based_on', 'officer_name', 'job_description',
    'work_location', 'implementation', 'implementation_start_date',
    'implementation_end_date', 'working_hours', 'holiday_working_hours',
    'work_facilities', 'worker_names', 'worker_count', 'other_notes', 'content',
)

REVIEW_FIELDS = (
    'working_hours', 'holiday_working_hours', 'implementation', 'content',
    'implementation_start_date', 'implementation_end_date',
)


def visible_submissions(user):
    query = Submission.query
    if user.role == Role.VENDOR:
        return query.filter(Submission.user_id == user.id)
    if user.role in (Role.REVIEWER, Role.SUPER_ADMIN):
        return query
    if user.role == Role.APPROVER:
        return query.filter(Submission.review_status != ReviewStatus.PENDING_REVIEW)
    if user.role == Role.VERIFIER:
        return query.filter(Submission.approval_status == ApprovalStatus.APPROVED)
    raise Forbidden("Anda tidak memiliki akses ke data pengajuan.")


def _set_workers(submission, workers):
    submission.workers = [WorkerList(**w) for w in workers]


def _set_documents(submission, documents, uploaded_by):
    submission.support_documents = [
        SupportDocument(uploaded_by_id=uploaded_by.id, **d) for d in documents
    ]


def _sync_worker_summary(submission, data):
    if not data.get('worker_names') and submission.workers:
        submission.worker_names = '\n'.join(w.worker_name for w in submission.workers)
    if data.get('worker_count') is None and submission.workers:
        submission.worker_count = len(submission.workers)


def create_submission(vendor, data):
    if vendor.role != Role.VENDOR:
        raise Forbidden("Hanya vendor yang dapat membuat pengajuan.")

    submission = Submission(
        user_id=vendor.id,
        review_status=ReviewStatus.PENDING_REVIEW,
        approval_status=ApprovalStatus.PENDING_APPROVAL,
        **{k: data.get(k) for k in SUBMISSION_FIELDS if k in data}
    )
    _set_workers(submission, data.get('workers') or [])
    _set_documents(submission, data.get('support_documents') or [], vendor)
    _sync_worker_summary(submission, data)

    db.session.add(submission)
    db.session.flush()
    notifications.notify_new_submission(submission)
    db.session.commit()

    log.info("Submission %s created by vendor %s", submission.id, vendor.id)
    return submission


def update_submission(user, submission, data):
    if user.role == Role.VENDOR:
        if submission.user_id != user.id:
            raise Forbidden("Anda hanya dapat mengubah pengajuan milik sendiri.")
    elif user.role != Role.SUPER_ADMIN:
        raise Forbidden("Anda tidak memiliki akses untuk mengubah pengajuan.")

    if submission.approval_status != ApprovalStatus.PENDING_APPROVAL:
        raise InvalidTransition("Pengajuan yang sudah diputuskan tidak dapat diubah.",
                                approval_status=submission.approval_status.value)

    for key in SUBMISSION_FIELDS:
        if key in data:
            setattr(submission, key, data[key])
    if 'workers' in data:
        _set_workers(submission, data['workers'] or [])
    if 'support_documents' in data:
        _set_documents(submission, data['support_documents'] or [], user)
    if 'workers' in data:
        _sync_worker_summary(submission, data)

    start, end = submission.implementation_start_date, submission.implementation_end_date
    if start and end and end < start:
        raise InvalidTransition("Tanggal selesai tidak boleh sebelum tanggal mulai.")

    # Isi yang diubah vendor setelah direview harus direview ulang
    if user.role == Role.VENDOR and submission.review_status != ReviewStatus.PENDING_REVIEW:
        _reset_review(submission)
        notifications.notify_resubmitted(submission)

    db.session.commit()
    log.info("Submission %s updated by user %s", submission.id, user.id)
    return submission


def _reset_review(submission):
    submission.review_status = ReviewStatus.PENDING_REVIEW
    submission.reviewed_at = None
    submission.reviewed_by_id = None
    submission.note_for_approver = None
    submission.note_for_vendor = None


def resubmit_submission(vendor, submission):
    if submission.user_id != vendor.id:
        raise Forbidden("Anda hanya dapat mengirim ulang pengajuan milik sendiri.")
    if submission.approval_status != ApprovalStatus.PENDING_APPROVAL:
        raise InvalidTransition("Pengajuan sudah diputuskan.",
                                approval_status=submission.approval_status.value)
    if submission.review_status != ReviewStatus.NOT_MEETS_REQUIREMENTS:
        raise InvalidTransition("Hanya pengajuan yang tidak memenuhi syarat yang dapat dikirim ulang.",
                                review_status=submission.review_status.value)

    _reset_review(submission)
    notifications.notify_resubmitted(submission)
    db.session.commit()
    log.info("Submission %s resubmitted by vendor %s", submission.id, vendor.id)
    return submission


def review_submission(reviewer, submission, data):
    if reviewer.role not in (Role.REVIEWER, Role.SUPER_ADMIN):
        raise Forbidden("Hanya reviewer yang dapat mereview pengajuan.")
    if submission.approval_status != ApprovalStatus.PENDING_APPROVAL:
        raise InvalidTransition("Pengajuan sudah diputuskan dan tidak dapat direview ulang.",
                                approval_status=submission.approval_status.value)

    for key in REVIEW_FIELDS:
        if data.get(key) is not None:
            setattr(submission, key, data[key])

    start, end = submission.implementation_start_date, submission.implementation_end_date
    if start and end and end < start:
        raise InvalidTransition("Tanggal selesai tidak boleh sebelum tanggal mulai.")

    submission.review_status = ReviewStatus(data['review_status'])
    submission.note_for_approver = data.get('note_for_approver')
    submission.note_for_vendor = data.get('note_for_vendor')
    submission.reviewed_at = utcnow()
    submission.reviewed_by_id = reviewer.id

    notifications.notify_reviewed(submission, reviewer)
    db.session.commit()
    log.info("Submission %s reviewed by %s: %s", submission.id, reviewer.id,
             submission.review_status.value)
    return submission


def next_simlok_number(year):
    """Nomor berikutnya untuk tahun tersebut, format YYYY/NNNN/<suffix>."""
    suffix = current_app.config['SIMLOK_NUMBER_SUFFIX']
    issued = (db.session.query(Submission.simlok_number)
              .filter(Submission.simlok_number.like(f'{year}/%'))
              .all())

    last = 0
    for (number,) in issued:
        parts = number.split('/')
        if len(parts) > 1 and parts[1].isdigit():
            last = max(last, int(parts[1]))
    return f"{year}/{last + 1:04d}/{suffix}"


def _check_can_finalize(submission):
    if submission.approval_status != ApprovalStatus.PENDING_APPROVAL:
        raise InvalidTransition("Pengajuan sudah diputuskan.",
                                approval_status=submission.approval_status.value)
    if submission.review_status != ReviewStatus.MEETS_REQUIREMENTS:
        raise InvalidTransition("Pengajuan harus memenuhi syarat sebelum diputuskan.",
                                review_status=submission.review_status.value)


def _load_for_decision(submission_id):
    # Selalu baca baris terbaru; objek milik pemanggil bisa sudah basi
    submission = (db.session.query(Submission)
                  .filter_by(id=submission_id)
                  .with_for_update()
                  .populate_existing()
                  .one_or_none())
    if submission is None:
        raise NotFound("Pengajuan tidak ditemukan.")
    return submission


def _claim_pending(submission_id, decision):
    """Pindahkan status hanya jika baris masih menunggu keputusan."""
    claimed = (db.session.query(Submission)
               .filter(Submission.id == submission_id,
                       Submission.approval_status == ApprovalStatus.PENDING_APPROVAL,
                       Submission.review_status == ReviewStatus.MEETS_REQUIREMENTS)
               .update({Submission.approval_status: decision}, synchronize_session=False))
    return claimed == 1


def finalize_submission(approver, submission, data):
    if approver.role not in (Role.APPROVER, Role.SUPER_ADMIN):
        raise Forbidden("Hanya approver yang dapat menyetujui pengajuan.")

    decision = ApprovalStatus(data['approval_status'])
    submission_id = submission.id

    for attempt in range(1, MAX_NUMBER_ATTEMPTS + 1):
        submission = _load_for_decision(submission_id)
        _check_can_finalize(submission)

        if not _claim_pending(submission_id, decision):
            db.session.rollback()
            _check_can_finalize(_load_for_decision(submission_id))
            raise InvalidTransition("Pengajuan sudah diputuskan.")

        now = utcnow()
        submission.approval_status = decision
        submission.approved_at = now
        submission.approved_by_id = approver.id
        if data.get('note_for_vendor') is not None:
            submission.note_for_vendor = data['note_for_vendor']

        if decision == ApprovalStatus.APPROVED:
            simlok_date = data.get('simlok_date') or local_today()
            # Urutan nomor mengikuti tahun tanggal SIMLOK
            submission.simlok_number = next_simlok_number(simlok_date.year)
            submission.simlok_date = simlok_date
            submission.signer_name = approver.officer_name
            submission.signer_position = approver.position
            submission.qrcode = generate_qr_string(submission)
            notifications.notify_submission_approved(submission)
        notifications.notify_vendor_status(submission)

        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            log.warning("SIMLOK number collision on submission %s (attempt %d)",
                        submission_id, attempt)
            continue

        log.info("Submission %s %s by %s%s", submission.id, decision.value, approver.id,
                 f" as {submission.simlok_number}" if submission.simlok_number else "")
        return submission

    log.error("Failed to assign SIMLOK number for submission %s", submission_id)
    raise InvalidTransition("Gagal membuat nomor SIMLOK, silakan coba lagi.", status_code=409)


def delete_submission(user, submission):
    if submission.approval_status == ApprovalStatus.APPROVED:
        raise InvalidTransition("Pengajuan yang sudah disetujui tidak dapat dihapus.")

    if user.role == Role.VENDOR:
        if submission.user_id != user.id:
            raise Forbidden("Anda hanya dapat menghapus pengajuan milik sendiri.")
        if submission.approval_status != ApprovalStatus.PENDING_APPROVAL:
            raise InvalidTransition("Pengajuan yang sudah diputuskan tidak dapat dihapus.")
    elif user.role != Role.SUPER_ADMIN:
        raise Forbidden("Anda tidak memiliki akses untuk menghapus pengajuan.")

    submission_id = submission.id
    notifications.remove_submission_notifications(submission_id)
    db.session.delete(submission)
    db.session.commit()
    log.info("Submission %s deleted by user %s", submission_id, user.id)
