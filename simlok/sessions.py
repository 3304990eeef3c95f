"""Session store di database.

Database adalah satu-satunya sumber kebenaran untuk validitas sesi. Cookie
hanya membawa token acak; menghapus baris sesi langsung membatalkan token itu
pada request berikutnya.
"""
import logging
import secrets

from flask import current_app

from simlok import db
from simlok.models import User, UserSession
from simlok.utils import utcnow

log = logging.getLogger(__name__)


def create_session(user, ip_address=None, user_agent=None):
    now = utcnow()
    user_session = UserSession(
        session_token=secrets.token_hex(32),
        user_id=user.id,
        expires=now + current_app.config['SESSION_MAX_AGE'],
        created_at=now,
        last_activity_at=now,
        ip_address=ip_address,
        user_agent=(user_agent or '')[:255] or None,
    )
    db.session.add(user_session)
    user.last_active_at = now
    db.session.flush()

    _prune_sessions(user.id, current_app.config['MAX_SESSIONS_PER_USER'])
    db.session.commit()
    log.info("Session created for user %s", user.id)
    return user_session


def _prune_sessions(user_id, keep):
    stale = (UserSession.query
             .filter_by(user_id=user_id)
             .order_by(UserSession.created_at.desc(), UserSession.id.desc())
             .offset(keep)
             .all())
    for s in stale:
        db.session.delete(s)
    if stale:
        log.info("Pruned %d old sessions for user %s", len(stale), user_id)


def validate_session(token):
    """Kembalikan UserSession yang valid, atau None."""
    user_session = UserSession.query.filter_by(session_token=token).first()
    if user_session is None:
        return None

    now = utcnow()
    if user_session.expires < now:
        log.info("Session expired for user %s", user_session.user_id)
        _drop(user_session)
        return None

    if now - user_session.last_activity_at > current_app.config['SESSION_IDLE_TIMEOUT']:
        log.info("Session idle timeout for user %s", user_session.user_id)
        _drop(user_session)
        return None

    # Ambil ulang user untuk memastikan status verifikasi dan role terbaru
    user = db.session.get(User, user_session.user_id)
    if user is None or not user.is_active or not user.is_verified:
        return None

    if now - user_session.last_activity_at > current_app.config['SESSION_ACTIVITY_UPDATE_INTERVAL']:
        user_session.last_activity_at = now
        user.last_active_at = now
        db.session.commit()

    return user_session


def _drop(user_session):
    db.session.delete(user_session)
    db.session.commit()


def delete_session(token):
    count = UserSession.query.filter_by(session_token=token).delete()
    db.session.commit()
    return count


def delete_all_user_sessions(user_id, except_token=None):
    query = UserSession.query.filter(UserSession.user_id == user_id)
    if except_token:
        query = query.filter(UserSession.session_token != except_token)
    count = query.delete(synchronize_session=False)
    db.session.commit()
    log.info("Deleted %d sessions for user %s", count, user_id)
    return count


def active_sessions(user_id):
    return (UserSession.query
            .filter(UserSession.user_id == user_id, UserSession.expires > utcnow())
            .order_by(UserSession.last_activity_at.desc())
            .all())


def cleanup_expired_sessions():
    count = UserSession.query.filter(UserSession.expires < utcnow()).delete(synchronize_session=False)
    db.session.commit()
    log.info("Cleaned up %d expired sessions", count)
    return count
