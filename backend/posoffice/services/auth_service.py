# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for password hashing
and validates password strength at signup.

ROLES: the role is decided once, at signup. Emails listed in the
SUPERVISOR_EMAILS config become SUPERVISOR; everyone else is OPERATOR.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, with upper, lower, digit and special characters
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import AuthError, ConflictError, ValidationError
from ..models import User
from ..models.auth import ROLE_OPERATOR, ROLE_SUPERVISOR, ROLES

_EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


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
    if not isinstance(password, str) or len(password) < 8:
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
    """Hash password using bcrypt with cost factor 12 (strength validated first)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email) -> str:
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("Email is required")
    value = email.strip().lower()
    if not _EMAIL_RE.fullmatch(value):
        raise ValidationError("Invalid email address")
    return value


def role_for_email(email: str, supervisor_emails) -> str:
    return ROLE_SUPERVISOR if email in {e.strip().lower() for e in supervisor_emails or ()} else ROLE_OPERATOR


def create_user(email: str, password: str, role: str) -> User:
    """Create a user with an explicit role (CLI and signup both end here)."""
    email = normalize_email(email)
    if role not in ROLES:
        raise ValidationError(f"Invalid role: {role}", details={"allowed": list(ROLES)})
    if db.session.query(User.id).filter_by(email=email).first():
        raise ConflictError("Email already registered", details={"email": email})

    user = User(email=email, password_hash=hash_password(password), role=role, is_active=True)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email already registered", details={"email": email})
    return user


def signup(email: str, password: str, supervisor_emails) -> User:
    email = normalize_email(email)
    return create_user(email, password, role_for_email(email, supervisor_emails))


def authenticate_user(email: str, password: str) -> User:
    """
    Return the active user for these credentials.

    SECURITY: one generic message for unknown email, wrong password and
    inactive account.
    """
    try:
        email = normalize_email(email)
    except ValidationError:
        raise AuthError("Invalid email or password")

    user = db.session.query(User).filter_by(email=email).first()
    if not user or not isinstance(password, str) or not verify_password(password, user.password_hash):
        raise AuthError("Invalid email or password")
    if not user.is_active:
        raise AuthError("Invalid email or password")
    return user
