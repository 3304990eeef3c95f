import logging
from io import BytesIO

from flask import current_app
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from simlok.models import DocumentType
from simlok.qr import qr_png
from simlok.utils import format_date_id

log = logging.getLogger(__name__)

MARGIN = 50
FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
FONT_SIZE = 11
LINE_GAP = 15
LABEL_WIDTH = 130


class _PageWriter:
    """Menulis baris dari atas ke bawah, pindah halaman jika ruang habis."""

    def __init__(self, c):
        self.c = c
        self.width, self.height = A4
        self.y = self.height - MARGIN

    def ensure_space(self, needed=LINE_GAP):
        if self.y - needed < MARGIN:
            self.c.showPage()
            self.y = self.height - MARGIN

    def text(self, value, x, y=None, size=FONT_SIZE, bold=False):
        self.c.setFont(FONT_BOLD if bold else FONT, size)
        self.c.drawString(x, self.y if y is None else y, value)

    def center(self, value, y, size=FONT_SIZE, bold=False):
        self.c.setFont(FONT_BOLD if bold else FONT, size)
        self.c.drawCentredString(self.width / 2, y, value)

    def wrap(self, value, x, width, size=FONT_SIZE):
        for line in simpleSplit(value or '', FONT, size, width) or ['']:
            self.ensure_space()
            self.text(line, x, size=size)
            self.y -= LINE_GAP

    def numbered_row(self, number, label, value):
        self.ensure_space()
        self.text(f"{number}. {label}", MARGIN)
        self.text(":", MARGIN + LABEL_WIDTH - 8)
        value_x = MARGIN + LABEL_WIDTH
        self.wrap(value, value_x, self.width - MARGIN - value_x)

    def bullet_rows(self, number, label, lines):
        self.ensure_space()
        self.text(f"{number}. {label}", MARGIN)
        self.text(":", MARGIN + LABEL_WIDTH - 8)
        value_x = MARGIN + LABEL_WIDTH
        if not lines:
            self.y -= LINE_GAP
        for line in lines:
            self.wrap(f"- {line}", value_x, self.width - MARGIN - value_x)


def _based_on(submission):
    simja = submission.document(DocumentType.SIMJA)
    if simja and simja.document_number:
        tanggal = format_date_id(simja.document_date)
        return f"{simja.document_number} Tgl. {tanggal}" if tanggal else simja.document_number
    return submission.based_on or ''


def _implementation(submission):
    if submission.implementation:
        return ' '.join(submission.implementation.split())
    start, end = submission.implementation_start_date, submission.implementation_end_date
    if start and end:
        return f"Terhitung mulai tanggal {format_date_id(start)} sampai {format_date_id(end)}"
    return ''


def _worker_names(submission):
    if submission.workers:
        return [w.worker_name for w in submission.workers]
    return [n.strip() for n in (submission.worker_names or '').splitlines() if n.strip()]


def render_simlok_pdf(submission):
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(f"SIMLOK {submission.simlok_number or submission.id}")
    k = _PageWriter(c)
    width, height = A4

    k.center("SURAT IZIN MASUK LOKASI", height - 100, size=16, bold=True)
    c.line(185, height - 105, width - 185, height - 105)
    k.center(f"SIMLOK NO-{submission.simlok_number or '[DRAFT]'}", height - 122, size=13)

    k.text("Dengan ini diberikan izin memasuki lokasi kepada:", MARGIN, height - 160)
    k.y = height - 190

    k.numbered_row(1, "Nama", submission.vendor_name)
    k.numbered_row(2, "Berdasarkan", _based_on(submission))
    k.numbered_row(3, "Pekerjaan", submission.job_description)
    k.numbered_row(4, "Lokasi Kerja", submission.work_location)
    k.numbered_row(5, "Pelaksanaan", _implementation(submission))
    k.numbered_row(6, "Jam Kerja", f"Mulai pukul {submission.working_hours}")
    notes = [l.strip() for l in (submission.other_notes or '').splitlines() if l.strip()]
    k.bullet_rows(7, "Lain-lain", notes)
    k.numbered_row(8, "Sarana Kerja", submission.work_facilities)

    if submission.content and submission.content.strip():
        k.y -= 10
        k.wrap(' '.join(submission.content.split()), MARGIN, width - 2 * MARGIN)

    # Blok tanda tangan
    workers = _worker_names(submission)
    k.y -= 20
    k.ensure_space(170)
    sign_x = width - 230
    sign_y = k.y

    place = current_app.config['SIMLOK_ISSUE_PLACE']
    k.text(f"Dikeluarkan di : {place}", sign_x, sign_y)
    k.text(f"Pada tanggal : {format_date_id(submission.simlok_date)}", sign_x, sign_y - 20)
    k.text(submission.signer_position or "[Jabatan Penandatangan]", sign_x, sign_y - 50)
    k.text(submission.signer_name or "[Nama Penandatangan]", sign_x, sign_y - 110, bold=True)

    if submission.qrcode:
        qr_image = ImageReader(BytesIO(qr_png(submission.qrcode, box_size=4)))
        c.drawImage(qr_image, MARGIN, sign_y - 110, width=100, height=100)
    k.y = sign_y - 140

    # Daftar pekerja boleh berlanjut ke halaman berikutnya
    if workers:
        names_x = width - 200
        k.ensure_space(20 + LINE_GAP)
        k.text("Nama pekerja:", names_x)
        k.y -= 20
        for i, name in enumerate(workers, 1):
            k.wrap(f"{i}. {name}", names_x + 10, width - MARGIN - names_x - 10)

    c.showPage()
    c.save()
    log.info("Rendered PDF for submission %s (%d workers)", submission.id, len(workers))
    return buf.getvalue()
