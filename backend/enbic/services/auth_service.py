# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every action must be attributable to a named user. Uses bcrypt for
password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, upper, lower, digit and special character
- Session tokens managed separately (see session_service.py)
- Deactivated users cannot authenticate
"""

import re

import bcrypt

from ..extensions import db
from ..errors import ConflictError, InvalidArgumentError, NotFoundError
from ..models import User
from enbic.time_utils import utcnow
from .access import Actor, VALID_ROLES, ensure_role


class PasswordValidationError(InvalidArgumentError):
    """Raised when password doesn't meet strength requirements."""
    kind = "PasswordValidation"


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

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str, *, rounds: int = 12) -> str:
    """Hash password using bcrypt. Password is validated for strength first."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash never matches.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def get_user(user_id: int) -> User:
    user = db.session.query(User).filter_by(id=user_id).first()
    if user is None:
        raise NotFoundError(f"User {user_id} not found", user_id=user_id)
    return user


def list_users(*, role: str | None = None) -> list[User]:
    q = db.session.query(User)
    if role:
        q = q.filter(User.role == role)
    return q.order_by(User.username).all()


def create_user(
    username: str,
    password: str,
    *,
    role: str,
    full_name: str | None = None,
    actor: Actor | None = None,
    bcrypt_rounds: int = 12,
) -> User:
    """
    Create a user with a bcrypt password hash.

    actor=None is the bootstrap path (CLI); otherwise admin only.

    Raises:
        InvalidArgumentError: missing username, unknown role
        PasswordValidationError: weak password
        ConflictError: username taken
    """
    if actor is not None:
        ensure_role(actor)  # admin only

    username = (username or "").strip()
    if not username:
        raise InvalidArgumentError("username is required")
    if role not in VALID_ROLES:
        raise InvalidArgumentError(f"role must be one of: {', '.join(sorted(VALID_ROLES))}")

    if db.session.query(User.id).filter_by(username=username).first() is not None:
        raise ConflictError(f"Username '{username}' already exists", username=username)

    user = User(
        username=username,
        full_name=(full_name or "").strip() or None,
        password_hash=hash_password(password, rounds=bcrypt_rounds),
        role=role,
        is_active=True,
        created_at=utcnow(),
    )
    db.session.add(user)
    db.session.flush()
    return user


def set_user_active(user_id: int, is_active: bool, *, actor: Actor) -> User:
    ensure_role(actor)  # admin only
    user = get_user(user_id)
    user.is_active = bool(is_active)
    db.session.flush()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Return the active user for valid credentials, else None.

    Updates last_login_at on success (flushed, caller commits).
    """
    user = db.session.query(User).filter(
        User.username == username,
        User.is_active.is_(True),
    ).first()
    if not user:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.flush()
    return user


def actor_for(user: User) -> Actor:
    return Actor(user_id=user.id, role=user.role, name=user.display_name)
