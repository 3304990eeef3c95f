from datetime import date, timedelta
import random

from simlok import create_app, db
from simlok.models import User, Role, VerificationStatus, DocumentType
from simlok.utils import utcnow
from simlok import workflow

PASSWORD = "password123"

JOBS = [
    ("Perbaikan pipa distribusi", "Area Tangki T-12"),
    ("Pemasangan instalasi listrik panel", "Gedung Utilitas"),
    ("Pengecatan ulang struktur baja", "Dermaga 2"),
    ("Inspeksi dan kalibrasi alat ukur", "Control Room"),
    ("Pembersihan saluran drainase", "Area Parkir Timur"),
]


def get_or_create_user(email, role, officer_name, **extra):
    user = User.query.filter_by(email=email).first()
    if user:
        return user
    user = User(email=email, role=role, officer_name=officer_name,
                verification_status=VerificationStatus.VERIFIED, verified_at=utcnow(), **extra)
    user.set_password(PASSWORD)
    db.session.add(user)
    db.session.commit()
    return user


app = create_app()

with app.app_context():
    db.create_all()

    get_or_create_user("admin@simlok.test", Role.SUPER_ADMIN, "Super Admin")
    reviewer = get_or_create_user("reviewer@simlok.test", Role.REVIEWER, "Rina Reviewer")
    approver = get_or_create_user("approver@simlok.test", Role.APPROVER, "Budi Santoso",
                                  position="Head of Security Region I")
    get_or_create_user("verifier@simlok.test", Role.VERIFIER, "Vera Verifier", address="Pos Jaga Utama")
    get_or_create_user("visitor@simlok.test", Role.VISITOR, "Tamu")
    vendors = [
        get_or_create_user(f"vendor{i}@simlok.test", Role.VENDOR, f"Petugas Vendor {i}",
                           vendor_name=f"PT Mitra Karya {i}", phone_number=f"08123456{i:04d}")
        for i in range(1, 4)
    ]

    for i in range(15):
        vendor = random.choice(vendors)
        job, location = random.choice(JOBS)
        start = date.today() + timedelta(days=random.randint(-5, 10))
        workers = [{"worker_name": f"Pekerja {i}-{n}", "hsse_pass_number": f"HSSE-{i:03d}{n}"}
                   for n in range(1, random.randint(2, 5))]

        submission = workflow.create_submission(vendor, {
            "vendor_name": vendor.vendor_name,
            "vendor_phone": vendor.phone_number,
            "based_on": f"Surat Permohonan No. {100 + i}/MK/{start.year}",
            "officer_name": vendor.officer_name,
            "job_description": job,
            "work_location": location,
            "implementation_start_date": start,
            "implementation_end_date": start + timedelta(days=random.randint(1, 14)),
            "working_hours": "08:00 - 17:00 WIB",
            "work_facilities": "Peralatan kerja standar dan APD lengkap",
            "other_notes": "Izin kerja panas (hot work)\nWajib didampingi HSE",
            "workers": workers,
            "support_documents": [{
                "document_type": DocumentType.SIMJA,
                "document_number": f"SIMJA/{start.year}/{i + 1:03d}",
                "document_date": start - timedelta(days=3),
                "document_upload": f"/api/files/{vendor.id}/document/simja-{i}.pdf",
            }],
        })

        # Sebagian diproses sampai tahap review / keputusan
        step = random.choice(["baru", "review", "tidak_memenuhi", "disetujui", "ditolak"])
        if step == "baru":
            continue
        if step == "tidak_memenuhi":
            workflow.review_submission(reviewer, submission, {
                "review_status": "NOT_MEETS_REQUIREMENTS",
                "note_for_vendor": "Lengkapi dokumen JSA.",
            })
            continue
        workflow.review_submission(reviewer, submission, {
            "review_status": "MEETS_REQUIREMENTS",
            "note_for_approver": "Dokumen lengkap.",
        })
        if step == "disetujui":
            workflow.finalize_submission(approver, submission, {"approval_status": "APPROVED"})
        elif step == "ditolak":
            workflow.finalize_submission(approver, submission, {
                "approval_status": "REJECTED",
                "note_for_vendor": "Jadwal bentrok dengan shutdown pabrik.",
            })

    print(f"Data dummy SIMLOK berhasil ditambahkan! (password semua user: {PASSWORD})")
