import logging

from flask import Blueprint, request, jsonify
from flask_login import current_user
from sqlalchemy import and_, or_

from simlok import db
from simlok.auth import role_required
from simlok.errors import SimlokError, NotFound, Conflict
from simlok.models import QrScan, Submission, Role, ApprovalStatus
from simlok.qr import parse_qr_string, is_qr_valid_for_date
from simlok.schemas import QrVerifySchema
from simlok.utils import get_page_args, pagination_dict, local_today, local_day_bounds, utcnow, parse_day_arg

log = logging.getLogger(__name__)

bp = Blueprint('scans', __name__)

SCAN_HISTORY_ROLES = (Role.VERIFIER, Role.REVIEWER, Role.APPROVER, Role.SUPER_ADMIN)


@bp.route('/qr/verify', methods=['POST'])
@role_required(Role.VERIFIER, Role.SUPER_ADMIN)
def verify_qr():
    data = QrVerifySchema().load(request.get_json(silent=True) or {})

    payload = parse_qr_string(data['qr_data'])
    if payload is None:
        raise SimlokError('QR code tidak valid.', code='invalid_qr')

    today = local_today()
    if not is_qr_valid_for_date(payload, today):
        raise SimlokError('QR code tidak berlaku untuk tanggal hari ini.', code='outside_period',
                          start_date=payload.start_date.isoformat() if payload.start_date else None,
                          end_date=payload.end_date.isoformat() if payload.end_date else None)

    submission = db.session.get(Submission, payload.id)
    if submission is None:
        raise NotFound('Pengajuan tidak ditemukan.', code='not_found')

    if submission.approval_status != ApprovalStatus.APPROVED:
        raise SimlokError('SIMLOK belum disetujui.', code='not_approved',
                          approval_status=submission.approval_status.value)
    if submission.qrcode != data['qr_data'].strip():
        raise SimlokError('QR code tidak cocok dengan data SIMLOK.', code='qr_mismatch')

    start, end = local_day_bounds(today)
    existing = QrScan.query.filter(
        QrScan.submission_id == submission.id,
        QrScan.scanned_by_id == current_user.id,
        QrScan.scanned_at >= start,
        QrScan.scanned_at < end,
    ).first()
    if existing:
        log.info("Duplicate scan of submission %s by verifier %s", submission.id, current_user.id)
        raise Conflict('SIMLOK ini sudah Anda scan hari ini.', code='duplicate_scan_same_day',
                       previous_scan=existing.to_dict())

    scan = QrScan(
        submission_id=submission.id,
        scanned_by_id=current_user.id,
        scanner_name=current_user.officer_name,
        scan_location=data.get('scan_location') or current_user.address,
        scanned_at=utcnow(),
    )
    db.session.add(scan)
    db.session.commit()

    log.info("Submission %s scanned by verifier %s", submission.id, current_user.id)
    return jsonify(
        message='QR code valid.',
        scan=scan.to_dict(),
        submission=submission.to_dict(detail=True),
    )


def _scan_query():
    query = QrScan.query.join(Submission, QrScan.submission_id == Submission.id)
    if current_user.role == Role.VERIFIER:
        query = query.filter(QrScan.scanned_by_id == current_user.id)

    submission_id = request.args.get('submission_id', type=int)
    date_from = request.args.get('date_from', '').strip()
    date_to = request.args.get('date_to', '').strip()
    search_query = request.args.get('q', '').strip()

    filters = []
    if submission_id:
        filters.append(QrScan.submission_id == submission_id)
    if date_from:
        start, _ = local_day_bounds(parse_day_arg(date_from, 'date_from'))
        filters.append(QrScan.scanned_at >= start)
    if date_to:
        _, end = local_day_bounds(parse_day_arg(date_to, 'date_to'))
        filters.append(QrScan.scanned_at < end)
    if search_query:
        like = f'%{search_query}%'
        filters.append(or_(
            Submission.vendor_name.ilike(like),
            Submission.simlok_number.ilike(like),
            QrScan.scanner_name.ilike(like),
            QrScan.scan_location.ilike(like),
        ))

    if filters:
        query = query.filter(and_(*filters))
    return query.order_by(QrScan.scanned_at.desc(), QrScan.id.desc())


@bp.route('/scan-history', methods=['GET'])
@role_required(*SCAN_HISTORY_ROLES)
def scan_history():
    page, per_page = get_page_args()
    scans = _scan_query().paginate(page=page, per_page=per_page, error_out=False)
    return jsonify(scans=[s.to_dict() for s in scans.items], pagination=pagination_dict(scans))


@bp.route('/submissions/<int:id>/scans', methods=['GET'])
@role_required(Role.REVIEWER, Role.APPROVER, Role.VERIFIER, Role.SUPER_ADMIN)
def submission_scans(id):
    submission = db.session.get(Submission, id)
    if submission is None:
        raise NotFound('Pengajuan tidak ditemukan.')

    scans = (QrScan.query
             .filter(QrScan.submission_id == id)
             .order_by(QrScan.scanned_at.desc(), QrScan.id.desc())
             .all())
    scanners = {s.scanned_by_id for s in scans if s.scanned_by_id}
    return jsonify(
        submission_id=id,
        simlok_number=submission.simlok_number,
        total_scans=len(scans),
        unique_scanners=len(scanners),
        scans=[s.to_dict() for s in scans],
    )
