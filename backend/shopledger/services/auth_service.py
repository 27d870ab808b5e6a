# Overview: Staff accounts; bcrypt password hashing and credential checks.

"""
Authentication service.

Every stock movement is attributed to a user, so there are no shared
logins. Passwords are hashed with bcrypt (BCRYPT_ROUNDS, 12 by default)
and must be at least 8 characters with upper, lower, digit and special
characters.
"""

import bcrypt
import re

from flask import current_app

from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import User
from ..models.auth import ROLES, ROLE_SALESMEN
from ..time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""

    code = "weak_password"


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
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
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    *,
    username: str,
    email: str,
    name: str,
    password: str,
    role: str = ROLE_SALESMEN,
) -> User:
    """
    Create a staff account.

    Raises:
        ValidationError: missing fields, unknown role, weak password
        ConflictError: username or email already taken
    """
    if not username or not email or not name:
        raise ValidationError("username, email and name are required")
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ConflictError("Username or email already exists")

    user = User(
        username=username.strip(),
        email=email.strip().lower(),
        name=name.strip(),
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    current_app.logger.info("User %s created with role %s", user.username, role)
    return user


def authenticate(identifier: str, password: str) -> User | None:
    """
    Check credentials by username or email.

    Returns the active User on success (and stamps last_login_at), None otherwise.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == identifier, User.email == (identifier or "").lower()),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
