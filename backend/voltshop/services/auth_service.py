# Overview: Account creation, password hashing and credential checks.

"""
Authentication Service

Passwords are hashed with bcrypt (cost from the BCRYPT_ROUNDS setting) and
must be at least 8 characters with upper, lower and digit characters.
Session tokens are handled separately in session_service.
"""

import re

import bcrypt
from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import User
from ..models.auth import USER_ROLES
from ..time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    rounds = current_app.config["BCRYPT_ROUNDS"]
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    *,
    role: str = "customer",
    name: str | None = None,
    phone: str | None = None,
    location: str | None = None,
) -> User:
    """
    Create a user account.

    Raises ValidationError if the username/email is taken, the role is
    unknown, or the password is weak.
    """
    if not isinstance(username, str) or not isinstance(email, str):
        raise ValidationError("username and email are required")
    username = username.strip()
    email = email.strip().lower()
    if not username or not email:
        raise ValidationError("username and email are required")
    if role not in USER_ROLES:
        raise ValidationError(f"Invalid role: {role}", details={"allowed": list(USER_ROLES)})

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ValidationError("Username or email already exists")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
        name=name or username,
        phone=phone,
        location=location,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Check credentials (username or email) for an active account.

    Returns the User and stamps last_login_at, or None.
    """
    if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
        return None

    identifier = username.strip()
    user = db.session.query(User).filter(
        db.or_(User.username == identifier, User.email == identifier.lower()),
        User.is_active.is_(True),
    ).first()

    if not user or not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
