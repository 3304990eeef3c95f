import enum

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from simlok import db
from simlok.utils import utcnow, to_local_iso


class Role(str, enum.Enum):
    VENDOR = "VENDOR"
    REVIEWER = "REVIEWER"
    APPROVER = "APPROVER"
    VERIFIER = "VERIFIER"
    SUPER_ADMIN = "SUPER_ADMIN"
    VISITOR = "VISITOR"


class VerificationStatus(str, enum.Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class ReviewStatus(str, enum.Enum):
    PENDING_REVIEW = "PENDING_REVIEW"
    MEETS_REQUIREMENTS = "MEETS_REQUIREMENTS"
    NOT_MEETS_REQUIREMENTS = "NOT_MEETS_REQUIREMENTS"


class ApprovalStatus(str, enum.Enum):
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class DocumentType(str, enum.Enum):
    SIMJA = "SIMJA"
    SIKA = "SIKA"
    WORK_ORDER = "WORK_ORDER"
    KONTRAK_KERJA = "KONTRAK_KERJA"
    JSA = "JSA"


class NotificationScope(str, enum.Enum):
    admin = "admin"
    reviewer = "reviewer"
    approver = "approver"
    vendor = "vendor"


def _enum(enum_cls):
    return db.Enum(enum_cls, native_enum=False, length=32, validate_strings=True)


class User(db.Model, UserMixin):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(150), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    officer_name = db.Column(db.String(150), nullable=False)
    vendor_name = db.Column(db.String(150), nullable=True)
    phone_number = db.Column(db.String(30), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    position = db.Column(db.String(150), nullable=True)  # jabatan penandatangan (approver)
    profile_photo = db.Column(db.String(255), nullable=True)
    role = db.Column(_enum(Role), nullable=False, default=Role.VENDOR)
    verification_status = db.Column(_enum(VerificationStatus), nullable=False,
                                    default=VerificationStatus.PENDING)
    verified_at = db.Column(db.DateTime, nullable=True)
    verified_by_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='SET NULL'), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    last_active_at = db.Column(db.DateTime, nullable=True)

    sessions = db.relationship('UserSession', backref='user', lazy=True,
                               cascade='all, delete-orphan')
    submissions = db.relationship('Submission', backref='owner', lazy=True,
                                  foreign_keys='Submission.user_id')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def is_verified(self):
        return self.verification_status == VerificationStatus.VERIFIED

    def has_role(self, *roles):
        return self.role in roles

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'officer_name': self.officer_name,
            'vendor_name': self.vendor_name,
            'phone_number': self.phone_number,
            'address': self.address,
            'position': self.position,
            'profile_photo': self.profile_photo,
            'role': self.role.value,
            'verification_status': self.verification_status.value,
            'verified_at': to_local_iso(self.verified_at),
            'rejection_reason': self.rejection_reason,
            'is_active': self.is_active,
            'created_at': to_local_iso(self.created_at),
            'last_active_at': to_local_iso(self.last_active_at),
        }


class UserSession(db.Model):
    __tablename__ = 'user_session'
    id = db.Column(db.Integer, primary_key=True)
    session_token = db.Column(db.String(64), unique=True, nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    expires = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    last_activity_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'expires': to_local_iso(self.expires),
            'created_at': to_local_iso(self.created_at),
            'last_activity_at': to_local_iso(self.last_activity_at),
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
        }


class Submission(db.Model):
    __tablename__ = 'submission'
    id = db.Column(db.Integer, primary_key=True)
    vendor_name = db.Column(db.String(150), nullable=False)
    vendor_phone = db.Column(db.String(30), nullable=True)
    based_on = db.Column(db.Text, nullable=False)
    officer_name = db.Column(db.String(150), nullable=False)
    job_description = db.Column(db.Text, nullable=False)
    work_location = db.Column(db.String(255), nullable=False)
    implementation = db.Column(db.Text, nullable=True)
    implementation_start_date = db.Column(db.Date, nullable=True)
    implementation_end_date = db.Column(db.Date, nullable=True)
    working_hours = db.Column(db.String(100), nullable=False)
    holiday_working_hours = db.Column(db.String(100), nullable=True)
    work_facilities = db.Column(db.Text, nullable=False)
    worker_names = db.Column(db.Text, nullable=False)
    worker_count = db.Column(db.Integer, nullable=True)
    other_notes = db.Column(db.Text, nullable=True)
    content = db.Column(db.Text, nullable=True)

    review_status = db.Column(_enum(ReviewStatus), nullable=False,
                              default=ReviewStatus.PENDING_REVIEW, index=True)
    approval_status = db.Column(_enum(ApprovalStatus), nullable=False,
                                default=ApprovalStatus.PENDING_APPROVAL, index=True)
    note_for_approver = db.Column(db.Text, nullable=True)
    note_for_vendor = db.Column(db.Text, nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    reviewed_by_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='SET NULL'), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    approved_by_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='SET NULL'), nullable=True)

    # Hanya diisi saat transisi ke APPROVED
    simlok_number = db.Column(db.String(50), unique=True, nullable=True)
    simlok_date = db.Column(db.Date, nullable=True)
    signer_name = db.Column(db.String(150), nullable=True)
    signer_position = db.Column(db.String(150), nullable=True)
    qrcode = db.Column(db.Text, nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='SET NULL'), nullable=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    workers = db.relationship('WorkerList', backref='submission', lazy=True,
                              cascade='all, delete-orphan', order_by='WorkerList.id')
    support_documents = db.relationship('SupportDocument', backref='submission', lazy=True,
                                        cascade='all, delete-orphan', order_by='SupportDocument.id')
    scans = db.relationship('QrScan', backref='submission', lazy=True,
                            cascade='all, delete-orphan')
    reviewed_by = db.relationship('User', foreign_keys=[reviewed_by_id])
    approved_by = db.relationship('User', foreign_keys=[approved_by_id])

    def document(self, document_type):
        for doc in self.support_documents:
            if doc.document_type == document_type:
                return doc
        return None

    def to_dict(self, detail=False):
        data = {
            'id': self.id,
            'vendor_name': self.vendor_name,
            'vendor_phone': self.vendor_phone,
            'based_on': self.based_on,
            'officer_name': self.officer_name,
            'job_description': self.job_description,
            'work_location': self.work_location,
            'implementation': self.implementation,
            'implementation_start_date': to_local_iso(self.implementation_start_date),
            'implementation_end_date': to_local_iso(self.implementation_end_date),
            'working_hours': self.working_hours,
            'holiday_working_hours': self.holiday_working_hours,
            'work_facilities': self.work_facilities,
            'worker_names': self.worker_names,
            'worker_count': self.worker_count,
            'other_notes': self.other_notes,
            'content': self.content,
            'review_status': self.review_status.value,
            'approval_status': self.approval_status.value,
            'note_for_approver': self.note_for_approver,
            'note_for_vendor': self.note_for_vendor,
            'reviewed_at': to_local_iso(self.reviewed_at),
            'reviewed_by': self.reviewed_by.officer_name if self.reviewed_by else None,
            'approved_at': to_local_iso(self.approved_at),
            'approved_by': self.approved_by.officer_name if self.approved_by else None,
            'simlok_number': self.simlok_number,
            'simlok_date': to_local_iso(self.simlok_date),
            'signer_name': self.signer_name,
            'signer_position': self.signer_position,
            'user_id': self.user_id,
            'created_at': to_local_iso(self.created_at),
            'updated_at': to_local_iso(self.updated_at),
        }
        if detail:
            data['qrcode'] = self.qrcode
            data['workers'] = [w.to_dict() for w in self.workers]
            data['support_documents'] = [d.to_dict() for d in self.support_documents]
            data['scan_count'] = len(self.scans)
        return data


class WorkerList(db.Model):
    __tablename__ = 'worker_list'
    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(db.Integer, db.ForeignKey('submission.id', ondelete='CASCADE'), nullable=False, index=True)
    worker_name = db.Column(db.String(150), nullable=False)
    worker_photo = db.Column(db.String(255), nullable=True)
    hsse_pass_number = db.Column(db.String(100), nullable=True)
    hsse_pass_valid_thru = db.Column(db.Date, nullable=True)
    hsse_pass_document_upload = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'worker_name': self.worker_name,
            'worker_photo': self.worker_photo,
            'hsse_pass_number': self.hsse_pass_number,
            'hsse_pass_valid_thru': to_local_iso(self.hsse_pass_valid_thru),
            'hsse_pass_document_upload': self.hsse_pass_document_upload,
        }


class SupportDocument(db.Model):
    __tablename__ = 'support_document'
    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(db.Integer, db.ForeignKey('submission.id', ondelete='CASCADE'), nullable=False, index=True)
    document_type = db.Column(_enum(DocumentType), nullable=False)
    document_subtype = db.Column(db.String(150), nullable=True)
    document_number = db.Column(db.String(100), nullable=True)
    document_date = db.Column(db.Date, nullable=True)
    document_upload = db.Column(db.String(255), nullable=False)
    uploaded_by_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='SET NULL'), nullable=True)
    uploaded_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'document_type': self.document_type.value,
            'document_subtype': self.document_subtype,
            'document_number': self.document_number,
            'document_date': to_local_iso(self.document_date),
            'document_upload': self.document_upload,
            'uploaded_at': to_local_iso(self.uploaded_at),
        }


class QrScan(db.Model):
    __tablename__ = 'qr_scan'
    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(db.Integer, db.ForeignKey('submission.id', ondelete='CASCADE'), nullable=False, index=True)
    scanned_by_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='SET NULL'), nullable=True, index=True)
    scanner_name = db.Column(db.String(150), nullable=True)
    scan_location = db.Column(db.String(255), nullable=True)
    scanned_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    scanner = db.relationship('User', backref='qr_scans')

    def to_dict(self):
        submission = self.submission
        return {
            'id': self.id,
            'submission_id': self.submission_id,
            'simlok_number': submission.simlok_number if submission else None,
            'vendor_name': submission.vendor_name if submission else None,
            'scanned_by': self.scanned_by_id,
            'scanner_name': self.scanner_name,
            'scan_location': self.scan_location,
            'scanned_at': to_local_iso(self.scanned_at),
        }


class Notification(db.Model):
    __tablename__ = 'notification'
    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(_enum(NotificationScope), nullable=False, index=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=True, index=True)
    submission_id = db.Column(db.Integer, db.ForeignKey('submission.id', ondelete='CASCADE'), nullable=True, index=True)
    type = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    data = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    reads = db.relationship('NotificationRead', backref='notification', lazy=True,
                            cascade='all, delete-orphan')

    def to_dict(self, is_read=False):
        return {
            'id': self.id,
            'scope': self.scope.value,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'data': self.data or {},
            'submission_id': self.submission_id,
            'is_read': is_read,
            'created_at': to_local_iso(self.created_at),
        }


class NotificationRead(db.Model):
    __tablename__ = 'notification_read'
    __table_args__ = (db.UniqueConstraint('notification_id', 'user_id'),)
    id = db.Column(db.Integer, primary_key=True)
    notification_id = db.Column(db.Integer, db.ForeignKey('notification.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    read_at = db.Column(db.DateTime, nullable=False, default=utcnow)
