# Overview: Bearer session tokens.

"""
Session Token Management

- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute timeout from Config.SESSION_TTL_HOURS
- Revocable on logout
"""

import secrets
import hashlib
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from backoffice.time_utils import utcnow


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy). Never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    Tokens are already high-entropy (unlike passwords), so a fast hash is
    sufficient.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(user_id: int) -> tuple[SessionToken, str]:
    """
    Create a session for the user.

    Returns (session_record, plaintext_token). Client receives the plaintext
    token; the database stores only the hash. Raises ValueError for unknown
    or archived users.
    """
    user = db.session.get(User, user_id)
    if not user or user.is_deleted:
        raise ValueError("User not found")

    plaintext_token = generate_token()
    now = utcnow()
    ttl = timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 12))

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        expires_at=now + ttl,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> User | None:
    """
    Return the user for a live token, or None.

    None when the token is unknown, revoked, expired, or its user has been
    archived since login.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        revoked_at=None,
    ).first()

    if not session:
        return None

    if session.expires_at < utcnow():
        return None

    user = session.user
    if not user or user.is_deleted:
        return None

    return user


def revoke_session(token: str) -> bool:
    """Revoke a token. Returns False if it was not found or already revoked."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        revoked_at=None,
    ).first()

    if not session:
        return False

    session.revoked_at = utcnow()
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int) -> int:
    """
    Revoke all active sessions for a user (archive, password reset).

    Does not commit; the caller owns the transaction.
    """
    now = utcnow()
    sessions = db.session.query(SessionToken).filter_by(
        user_id=user_id,
        revoked_at=None,
    ).all()
    for session in sessions:
        session.revoked_at = now
    return len(sessions)
