from marshmallow import Schema, fields, validate, validates_schema, ValidationError, EXCLUDE

from simlok.models import Role, DocumentType

WAJIB = "Field wajib diisi"


class BaseSchema(Schema):
    class Meta:
        unknown = EXCLUDE


class SignupSchema(BaseSchema):
    email = fields.Email(required=True)
    password = fields.String(required=True, validate=validate.Length(min=8))
    officer_name = fields.String(required=True, validate=validate.Length(min=1, max=150))
    vendor_name = fields.String(required=True, validate=validate.Length(min=1, max=150))
    phone_number = fields.String(load_default=None)
    address = fields.String(load_default=None)


class LoginSchema(BaseSchema):
    email = fields.Email(required=True)
    password = fields.String(required=True)


class WorkerSchema(BaseSchema):
    worker_name = fields.String(required=True, validate=validate.Length(min=1, max=150))
    worker_photo = fields.String(load_default=None)
    hsse_pass_number = fields.String(load_default=None)
    hsse_pass_valid_thru = fields.Date(load_default=None)
    hsse_pass_document_upload = fields.String(load_default=None)


class SupportDocumentSchema(BaseSchema):
    document_type = fields.Enum(DocumentType, required=True)
    document_subtype = fields.String(load_default=None)
    document_number = fields.String(load_default=None)
    document_date = fields.Date(load_default=None)
    document_upload = fields.String(required=True, validate=validate.Length(min=1))


class SubmissionSchema(BaseSchema):
    vendor_name = fields.String(required=True, validate=validate.Length(min=1, max=150))
    based_on = fields.String(required=True, validate=validate.Length(min=1))
    officer_name = fields.String(required=True, validate=validate.Length(min=1, max=150))
    job_description = fields.String(required=True, validate=validate.Length(min=1))
    work_location = fields.String(required=True, validate=validate.Length(min=1, max=255))
    working_hours = fields.String(required=True, validate=validate.Length(min=1, max=100))
    work_facilities = fields.String(required=True, validate=validate.Length(min=1))
    holiday_working_hours = fields.String(allow_none=True)
    implementation = fields.String(allow_none=True)
    implementation_start_date = fields.Date(allow_none=True)
    implementation_end_date = fields.Date(allow_none=True)
    worker_names = fields.String(allow_none=True)
    worker_count = fields.Integer(allow_none=True, validate=validate.Range(min=0))
    other_notes = fields.String(allow_none=True)
    content = fields.String(allow_none=True)
    vendor_phone = fields.String(allow_none=True)
    workers = fields.List(fields.Nested(WorkerSchema))
    support_documents = fields.List(fields.Nested(SupportDocumentSchema))

    @validates_schema
    def check_dates(self, data, **kwargs):
        start = data.get('implementation_start_date')
        end = data.get('implementation_end_date')
        if start and end and end < start:
            raise ValidationError("Tanggal selesai tidak boleh sebelum tanggal mulai",
                                  field_name='implementation_end_date')

    @validates_schema
    def check_workers(self, data, partial=False, **kwargs):
        if partial:
            return
        if not data.get('worker_names') and not data.get('workers'):
            raise ValidationError(WAJIB, field_name='workers')


class ReviewSchema(BaseSchema):
    review_status = fields.String(required=True, validate=validate.OneOf(
        ['MEETS_REQUIREMENTS', 'NOT_MEETS_REQUIREMENTS']))
    note_for_approver = fields.String(allow_none=True)
    note_for_vendor = fields.String(allow_none=True)
    working_hours = fields.String(allow_none=True)
    holiday_working_hours = fields.String(allow_none=True)
    implementation = fields.String(allow_none=True)
    content = fields.String(allow_none=True)
    implementation_start_date = fields.Date(allow_none=True)
    implementation_end_date = fields.Date(allow_none=True)


class ApprovalSchema(BaseSchema):
    approval_status = fields.String(required=True, validate=validate.OneOf(['APPROVED', 'REJECTED']))
    note_for_vendor = fields.String(allow_none=True)
    simlok_date = fields.Date(allow_none=True)


class QrVerifySchema(BaseSchema):
    qr_data = fields.String(required=True, validate=validate.Length(min=1))
    scan_location = fields.String(allow_none=True)


class UserCreateSchema(BaseSchema):
    email = fields.Email(required=True)
    password = fields.String(required=True, validate=validate.Length(min=8))
    officer_name = fields.String(required=True, validate=validate.Length(min=1, max=150))
    role = fields.Enum(Role, required=True)
    vendor_name = fields.String(allow_none=True)
    phone_number = fields.String(allow_none=True)
    address = fields.String(allow_none=True)
    position = fields.String(allow_none=True)

    @validates_schema
    def vendor_needs_name(self, data, **kwargs):
        if data.get('role') == Role.VENDOR and not data.get('vendor_name'):
            raise ValidationError(WAJIB, field_name='vendor_name')


class UserUpdateSchema(BaseSchema):
    email = fields.Email()
    password = fields.String(validate=validate.Length(min=8))
    officer_name = fields.String(validate=validate.Length(min=1, max=150))
    role = fields.Enum(Role)
    vendor_name = fields.String(allow_none=True)
    phone_number = fields.String(allow_none=True)
    address = fields.String(allow_none=True)
    position = fields.String(allow_none=True)
    is_active = fields.Boolean()


class ProfileSchema(BaseSchema):
    officer_name = fields.String(validate=validate.Length(min=1, max=150))
    vendor_name = fields.String(allow_none=True)
    phone_number = fields.String(allow_none=True)
    address = fields.String(allow_none=True)
    profile_photo = fields.String(allow_none=True)


class PasswordChangeSchema(BaseSchema):
    current_password = fields.String(required=True)
    new_password = fields.String(required=True, validate=validate.Length(min=8))


class VerifyUserSchema(BaseSchema):
    action = fields.String(required=True, validate=validate.OneOf(['VERIFY', 'REJECT']))
    note = fields.String(allow_none=True)
