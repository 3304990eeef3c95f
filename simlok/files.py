import logging
import os
import uuid

from flask import Blueprint, request, jsonify, current_app, send_from_directory, url_for
from flask_login import login_required, current_user
from werkzeug.utils import secure_filename

from simlok.errors import SimlokError, NotFound, Forbidden
from simlok.models import Role

log = logging.getLogger(__name__)

bp = Blueprint('files', __name__)

ALLOWED_EXTENSIONS = {
    'worker-photo': {'.jpg', '.jpeg', '.png'},
    'hsse-pass': {'.jpg', '.jpeg', '.png', '.pdf'},
    'document': {'.pdf', '.doc', '.docx', '.jpg', '.jpeg', '.png', '.gif'},
}

FILE_READER_ROLES = (Role.REVIEWER, Role.APPROVER, Role.VERIFIER, Role.SUPER_ADMIN)


def _category_dir(user_id, category):
    return os.path.join(current_app.config['UPLOAD_FOLDER'], str(user_id), category)


@bp.route('/upload', methods=['POST'])
@login_required
def upload():
    category = request.form.get('category', 'document')
    if category not in ALLOWED_EXTENSIONS:
        raise SimlokError('Kategori file tidak dikenal.', allowed=sorted(ALLOWED_EXTENSIONS))

    file = request.files.get('file')
    if file is None or not file.filename:
        raise SimlokError('File wajib diunggah.')

    original = secure_filename(file.filename)
    ext = os.path.splitext(original)[1].lower()
    allowed = ALLOWED_EXTENSIONS[category]
    if not original or ext not in allowed:
        raise SimlokError(f"Ekstensi file tidak valid. Ekstensi yang diperbolehkan: {', '.join(sorted(allowed))}")

    folder = _category_dir(current_user.id, category)
    os.makedirs(folder, exist_ok=True)
    filename = f"{uuid.uuid4().hex}_{original}"
    path = os.path.join(folder, filename)
    file.save(path)
    size = os.path.getsize(path)

    log.info("User %s uploaded %s (%d bytes, %s)", current_user.id, filename, size, category)
    url = url_for('files.serve_file', user_id=current_user.id, category=category, filename=filename)
    return jsonify(url=url, filename=filename, original_name=file.filename, size=size), 201


@bp.route('/files/<int:user_id>/<category>/<path:filename>', methods=['GET'])
@login_required
def serve_file(user_id, category, filename):
    if category not in ALLOWED_EXTENSIONS:
        raise NotFound('File tidak ditemukan.')
    if current_user.id != user_id and current_user.role not in FILE_READER_ROLES:
        raise Forbidden('Anda tidak memiliki akses ke file ini.')

    folder = _category_dir(user_id, category)
    if not os.path.isfile(os.path.join(folder, secure_filename(filename))):
        raise NotFound('File tidak ditemukan.')
    return send_from_directory(folder, secure_filename(filename))
