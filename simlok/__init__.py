import os
import sqlite3

from flask import Flask, jsonify, session
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite mengabaikan ON DELETE tanpa pragma ini
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_app(config_object=None, overrides=None):
    app = Flask(__name__)

    if config_object is None:
        from config import get_config
        config_object = get_config()
    app.config.from_object(config_object)
    if overrides:
        app.config.update(overrides)

    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)

    from simlok.logs import configure_logging
    configure_logging(app)

    # Inisialisasi ekstensi
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    # Import model di sini agar dikenali oleh Alembic (penting untuk autogenerate)
    from simlok import models  # noqa: F401

    from simlok.auth import auth as auth_bp
    from simlok.routes import bp as submissions_bp
    from simlok.scans import bp as scans_bp
    from simlok.users import bp as users_bp
    from simlok.notifications import bp as notifications_bp
    from simlok.files import bp as files_bp
    from simlok.dashboard import bp as dashboard_bp
    from simlok.logs import bp as logs_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(submissions_bp, url_prefix='/api/submissions')
    app.register_blueprint(scans_bp, url_prefix='/api')
    app.register_blueprint(users_bp, url_prefix='/api/users')
    app.register_blueprint(notifications_bp, url_prefix='/api/notifications')
    app.register_blueprint(files_bp, url_prefix='/api')
    app.register_blueprint(dashboard_bp, url_prefix='/api/dashboard')
    app.register_blueprint(logs_bp, url_prefix='/api/logs')

    from simlok.errors import register_error_handlers
    register_error_handlers(app)

    from simlok.commands import register_commands
    register_commands(app)

    @app.get('/api/health')
    def health():
        return {"ok": True}

    app.logger.info("SIMLOK app started (env=%s)", config_object.__name__)
    return app


@login_manager.request_loader
def load_user_from_request(request):
    from simlok.sessions import validate_session

    token = session.get('session_token')
    if not token:
        return None

    user_session = validate_session(token)
    if user_session is None:
        session.pop('session_token', None)
        return None
    return user_session.user


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify(error='Unauthorized'), 401
