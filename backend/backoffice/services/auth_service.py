# Overview: Password hashing, login and temporary credentials.

"""
Authentication helpers.

WHY: Every financial event is attributed to a user. Passwords are hashed
with bcrypt; the cost factor comes from Config.BCRYPT_ROUNDS so tests can
lower it.

Staff accounts are created by managers with a generated temporary password
(see staff_service). Chosen passwords must pass validate_password_strength.
"""

import logging
import re
import secrets
import string

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from backoffice.time_utils import utcnow


logger = logging.getLogger(__name__)


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class InvalidCredentialsError(Exception):
    """Raised when username/password do not match an active account."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash counts as a
    mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def generate_temporary_password() -> str:
    """Random 12-character password that passes validate_password_strength."""
    alphabet = string.ascii_letters + string.digits
    body = [secrets.choice(alphabet) for _ in range(8)]
    body += [
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.digits),
        secrets.choice("!@#$%&*"),
    ]
    secrets.SystemRandom().shuffle(body)
    return "".join(body)


def authenticate(username: str, password: str) -> User:
    """
    Return the active user matching the credentials.

    Raises InvalidCredentialsError with the same message for unknown users,
    archived users and wrong passwords.
    """
    user = db.session.query(User).filter_by(username=(username or "").strip()).first()
    if not user or user.is_deleted or not verify_password(password or "", user.password_hash):
        logger.warning("Failed login for username=%r", username)
        raise InvalidCredentialsError("Invalid username or password")

    user.last_login_at = utcnow()
    return user
