from collections import Counter

from flask import Blueprint, jsonify
from flask_login import login_required, current_user
from sqlalchemy import func

from simlok import db
from simlok.models import (
    User, Submission, QrScan, Role, VerificationStatus, ReviewStatus, ApprovalStatus,
)
from simlok.utils import local_today, local_day_bounds

bp = Blueprint('dashboard', __name__)


def _count_by(column, *filters):
    rows = db.session.query(column, func.count()).filter(*filters).group_by(column).all()
    return Counter({key.value: total for key, total in rows})


def vendor_stats(user):
    own = Submission.user_id == user.id
    review = _count_by(Submission.review_status, own)
    approval = _count_by(Submission.approval_status, own)
    return {
        'total': sum(approval.values()),
        'pending_review': review[ReviewStatus.PENDING_REVIEW.value],
        'needs_revision': review[ReviewStatus.NOT_MEETS_REQUIREMENTS.value],
        'pending_approval': approval[ApprovalStatus.PENDING_APPROVAL.value],
        'approved': approval[ApprovalStatus.APPROVED.value],
        'rejected': approval[ApprovalStatus.REJECTED.value],
    }


def reviewer_stats(user):
    open_ = Submission.approval_status == ApprovalStatus.PENDING_APPROVAL
    review = _count_by(Submission.review_status, open_)
    pending_vendors = User.query.filter(User.role == Role.VENDOR,
                                        User.verification_status == VerificationStatus.PENDING).count()
    return {
        'pending_review': review[ReviewStatus.PENDING_REVIEW.value],
        'meets_requirements': review[ReviewStatus.MEETS_REQUIREMENTS.value],
        'not_meets_requirements': review[ReviewStatus.NOT_MEETS_REQUIREMENTS.value],
        'pending_vendor_verifications': pending_vendors,
    }


def approver_stats(user):
    approval = _count_by(Submission.approval_status,
                         Submission.review_status != ReviewStatus.PENDING_REVIEW)
    ready = Submission.query.filter(
        Submission.review_status == ReviewStatus.MEETS_REQUIREMENTS,
        Submission.approval_status == ApprovalStatus.PENDING_APPROVAL,
    ).count()
    return {
        'pending_approval': ready,
        'approved': approval[ApprovalStatus.APPROVED.value],
        'rejected': approval[ApprovalStatus.REJECTED.value],
    }


def verifier_stats(user):
    start, end = local_day_bounds(local_today())
    return {
        'total_scans': QrScan.query.count(),
        'my_scans_today': QrScan.query.filter(QrScan.scanned_by_id == user.id,
                                              QrScan.scanned_at >= start,
                                              QrScan.scanned_at < end).count(),
        'approved_submissions': Submission.query.filter(
            Submission.approval_status == ApprovalStatus.APPROVED).count(),
    }


def admin_stats(user):
    users_by_role = _count_by(User.role)
    approval = _count_by(Submission.approval_status)
    review = _count_by(Submission.review_status)
    return {
        'users': {r.value: users_by_role[r.value] for r in Role},
        'total_users': sum(users_by_role.values()),
        'submissions': {
            **{s.value: approval[s.value] for s in ApprovalStatus},
            **{s.value: review[s.value] for s in ReviewStatus},
        },
        'total_submissions': sum(approval.values()),
    }


ROLE_STATS = {
    Role.VENDOR: vendor_stats,
    Role.REVIEWER: reviewer_stats,
    Role.APPROVER: approver_stats,
    Role.VERIFIER: verifier_stats,
    Role.SUPER_ADMIN: admin_stats,
    Role.VISITOR: admin_stats,
}


@bp.route('/stats')
@login_required
def stats():
    return jsonify(role=current_user.role.value, stats=ROLE_STATS[current_user.role](current_user))
