import logging
from io import BytesIO

import pandas as pd
from flask import Blueprint, request, jsonify, send_file
from flask_login import login_required, current_user
from sqlalchemy import and_, or_, func

from simlok import db
from simlok.auth import role_required
from simlok.errors import SimlokError, NotFound, Forbidden
from simlok.models import (
    Submission, WorkerList, Role, ReviewStatus, ApprovalStatus,
)
from simlok.pdf import render_simlok_pdf
from simlok.qr import qr_png
from simlok.schemas import SubmissionSchema, ReviewSchema, ApprovalSchema
from simlok.utils import get_page_args, pagination_dict, local_day_bounds, local_now, to_local_iso, parse_day_arg
from simlok import workflow

log = logging.getLogger(__name__)

bp = Blueprint('submissions', __name__)

SORT_COLUMNS = {
    'created_at': Submission.created_at,
    'updated_at': Submission.updated_at,
    'vendor_name': Submission.vendor_name,
    'job_description': Submission.job_description,
    'reviewed_at': Submission.reviewed_at,
    'approved_at': Submission.approved_at,
    'simlok_number': Submission.simlok_number,
}


def get_submission_or_404(id):
    submission = db.session.get(Submission, id)
    if submission is None:
        raise NotFound('Pengajuan tidak ditemukan.')
    return submission


def get_visible_submission(id):
    """Ambil pengajuan yang boleh dilihat user saat ini."""
    submission = workflow.visible_submissions(current_user) \
        .filter(Submission.id == id).first()
    if submission is None:
        # Bedakan "tidak ada" dengan "bukan hak akses"
        if db.session.get(Submission, id) is None:
            raise NotFound('Pengajuan tidak ditemukan.')
        raise Forbidden('Anda tidak memiliki akses ke pengajuan ini.')
    return submission


def _apply_filters(query):
    search_query = request.args.get('q', '').strip()
    review_status = request.args.get('review_status', '').strip()
    approval_status = request.args.get('approval_status', '').strip()
    vendor = request.args.get('vendor', '').strip()
    date_from = request.args.get('date_from', '').strip()
    date_to = request.args.get('date_to', '').strip()

    if search_query:
        like = f'%{search_query}%'
        worker_match = WorkerList.query.with_entities(WorkerList.submission_id) \
            .filter(WorkerList.worker_name.ilike(like))
        query = query.filter(or_(
            Submission.vendor_name.ilike(like),
            Submission.officer_name.ilike(like),
            Submission.job_description.ilike(like),
            Submission.work_location.ilike(like),
            Submission.worker_names.ilike(like),
            Submission.simlok_number.ilike(like),
            Submission.id.in_(worker_match),
        ))

    filters = []

    if review_status:
        try:
            filters.append(Submission.review_status == ReviewStatus(review_status))
        except ValueError:
            raise SimlokError('Filter review_status tidak dikenal.')
    if approval_status:
        try:
            filters.append(Submission.approval_status == ApprovalStatus(approval_status))
        except ValueError:
            raise SimlokError('Filter approval_status tidak dikenal.')
    if vendor:
        filters.append(Submission.vendor_name.ilike(f'%{vendor}%'))
    if date_from:
        start, _ = local_day_bounds(parse_day_arg(date_from, 'date_from'))
        filters.append(Submission.created_at >= start)
    if date_to:
        _, end = local_day_bounds(parse_day_arg(date_to, 'date_to'))
        filters.append(Submission.created_at < end)

    if filters:
        query = query.filter(and_(*filters))

    sort_by = request.args.get('sort_by', 'created_at')
    column = SORT_COLUMNS.get(sort_by, Submission.created_at)
    if request.args.get('sort_order', 'desc').lower() == 'asc':
        query = query.order_by(column.asc(), Submission.id.asc())
    else:
        query = query.order_by(column.desc(), Submission.id.desc())
    return query


def _status_counts():
    rows = db.session.query(Submission.approval_status, func.count(Submission.id)) \
        .group_by(Submission.approval_status).all()
    counts = {s.value: 0 for s in ApprovalStatus}
    for status, total in rows:
        counts[status.value] = total
    counts['total'] = sum(counts.values())
    return counts


@bp.route('/', strict_slashes=False, methods=['GET'])
@login_required
def index():
    page, per_page = get_page_args()
    query = _apply_filters(workflow.visible_submissions(current_user))
    submissions = query.paginate(page=page, per_page=per_page, error_out=False)

    result = {
        'submissions': [s.to_dict() for s in submissions.items],
        'pagination': pagination_dict(submissions),
    }
    if request.args.get('stats') == 'true' and current_user.role == Role.SUPER_ADMIN:
        result['statistics'] = _status_counts()
    return jsonify(result)


@bp.route('/', strict_slashes=False, methods=['POST'])
@role_required(Role.VENDOR)
def add():
    data = SubmissionSchema().load(request.get_json(silent=True) or {})
    submission = workflow.create_submission(current_user, data)
    return jsonify(message='Pengajuan berhasil dibuat.', submission=submission.to_dict(detail=True)), 201


@bp.route('/<int:id>', methods=['GET'])
@login_required
def detail(id):
    submission = get_visible_submission(id)
    return jsonify(submission=submission.to_dict(detail=True))


@bp.route('/<int:id>', methods=['PUT', 'PATCH'])
@role_required(Role.VENDOR, Role.SUPER_ADMIN)
def edit(id):
    submission = get_submission_or_404(id)
    partial = request.method == 'PATCH'
    data = SubmissionSchema(partial=partial).load(request.get_json(silent=True) or {})
    submission = workflow.update_submission(current_user, submission, data)
    return jsonify(message='Pengajuan berhasil diperbarui.', submission=submission.to_dict(detail=True))


@bp.route('/<int:id>', methods=['DELETE'])
@login_required
def delete(id):
    submission = get_submission_or_404(id)
    workflow.delete_submission(current_user, submission)
    return jsonify(message='Pengajuan berhasil dihapus.')


@bp.route('/<int:id>/review', methods=['PATCH'])
@role_required(Role.REVIEWER, Role.SUPER_ADMIN)
def review(id):
    submission = get_submission_or_404(id)
    data = ReviewSchema().load(request.get_json(silent=True) or {})
    submission = workflow.review_submission(current_user, submission, data)
    return jsonify(message='Review berhasil disimpan.', submission=submission.to_dict(detail=True))


@bp.route('/<int:id>/approve', methods=['PATCH'])
@role_required(Role.APPROVER, Role.SUPER_ADMIN)
def approve(id):
    submission = get_submission_or_404(id)
    data = ApprovalSchema().load(request.get_json(silent=True) or {})
    submission = workflow.finalize_submission(current_user, submission, data)
    return jsonify(message='Keputusan berhasil disimpan.', submission=submission.to_dict(detail=True))


@bp.route('/<int:id>/resubmit', methods=['PATCH'])
@role_required(Role.VENDOR)
def resubmit(id):
    submission = get_submission_or_404(id)
    submission = workflow.resubmit_submission(current_user, submission)
    return jsonify(message='Pengajuan berhasil dikirim ulang.', submission=submission.to_dict(detail=True))


@bp.route('/<int:id>/pdf', methods=['GET'])
@login_required
def download_pdf(id):
    submission = get_visible_submission(id)
    if current_user.role == Role.VENDOR and submission.approval_status != ApprovalStatus.APPROVED:
        raise Forbidden('PDF hanya tersedia untuk pengajuan yang sudah disetujui.')

    output = BytesIO(render_simlok_pdf(submission))
    name = (submission.simlok_number or f'draft-{submission.id}').replace('/', '-')
    return send_file(
        output,
        mimetype='application/pdf',
        download_name=f'SIMLOK_{name}.pdf',
        as_attachment=request.args.get('download') == 'true',
    )


@bp.route('/<int:id>/qr.png', methods=['GET'])
@login_required
def qr_image(id):
    submission = get_visible_submission(id)
    if submission.approval_status != ApprovalStatus.APPROVED or not submission.qrcode:
        raise NotFound('QR code belum tersedia.')
    return send_file(BytesIO(qr_png(submission.qrcode)), mimetype='image/png')


@bp.route('/export', methods=['GET'])
@role_required(Role.REVIEWER, Role.APPROVER, Role.SUPER_ADMIN)
def download_excel():
    query = _apply_filters(workflow.visible_submissions(current_user))
    submissions = query.all()

    data = []
    for s in submissions:
        data.append({
            'ID': s.id,
            'Nomor SIMLOK': s.simlok_number or '',
            'Tanggal SIMLOK': s.simlok_date.strftime('%Y-%m-%d') if s.simlok_date else '',
            'Vendor': s.vendor_name,
            'Petugas': s.officer_name,
            'Berdasarkan': s.based_on,
            'Pekerjaan': s.job_description,
            'Lokasi Kerja': s.work_location,
            'Pelaksanaan': s.implementation or '',
            'Mulai': s.implementation_start_date.strftime('%Y-%m-%d') if s.implementation_start_date else '',
            'Selesai': s.implementation_end_date.strftime('%Y-%m-%d') if s.implementation_end_date else '',
            'Jam Kerja': s.working_hours,
            'Jumlah Pekerja': s.worker_count or len(s.workers),
            'Status Review': s.review_status.value,
            'Status Approval': s.approval_status.value,
            'Dibuat': to_local_iso(s.created_at)[:16].replace('T', ' '),
        })

    columns = ['ID', 'Nomor SIMLOK', 'Tanggal SIMLOK', 'Vendor', 'Petugas', 'Berdasarkan',
               'Pekerjaan', 'Lokasi Kerja', 'Pelaksanaan', 'Mulai', 'Selesai', 'Jam Kerja',
               'Jumlah Pekerja', 'Status Review', 'Status Approval', 'Dibuat']
    df = pd.DataFrame(data, columns=columns)
    output = BytesIO()
    with pd.ExcelWriter(output, engine='xlsxwriter') as writer:
        df.to_excel(writer, index=False, sheet_name='SIMLOK')

        workbook = writer.book
        worksheet = writer.sheets['SIMLOK']
        wrap_format = workbook.add_format({'text_wrap': True, 'valign': 'top'})

        for idx, col in enumerate(df.columns):
            longest = df[col].astype(str).map(len).max() if len(df) else 0
            max_len = min(max(longest, len(col)) + 2, 50)

            # Kolom teks panjang dibungkus
            if col in ['Berdasarkan', 'Pekerjaan', 'Pelaksanaan']:
                worksheet.set_column(idx, idx, max_len, wrap_format)
            else:
                worksheet.set_column(idx, idx, max_len)
    output.seek(0)

    filename = f'simlok_{local_now().strftime("%Y%m%d_%H%M%S")}.xlsx'
    log.info("User %s exported %d submissions", current_user.id, len(data))

    return send_file(
        output,
        mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        download_name=filename,
        as_attachment=True
    )
