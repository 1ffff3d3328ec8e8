# Overview: Service-layer operations for auth; password hashing, user creation and login.

"""
Authentication Service

WHY: Every settlement call must be attributable to an actor. Passwords are
hashed with bcrypt; sessions are managed separately (see session_service.py).

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Inactive users cannot authenticate
"""

import bcrypt
from ..extensions import db
from ..models import User
from ..models.auth import VALID_ROLES
from resale.time_utils import utcnow


MIN_PASSWORD_LENGTH = 8


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed hash verifies as False.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    role: str,
    *,
    referred_by_code: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        PasswordValidationError: weak password
        ValueError: unknown role, or username/email already taken
    """
    if role not in VALID_ROLES:
        raise ValueError(f"role must be one of {VALID_ROLES}")

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ValueError("Username or email already exists")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
        referred_by_code=referred_by_code,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(identifier: str, password: str) -> User | None:
    """
    Authenticate by username or email.

    Returns the User on success, None on bad credentials or inactive account.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == identifier, User.email == identifier)
    ).first()

    if not user or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
