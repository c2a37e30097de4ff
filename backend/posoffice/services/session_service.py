# Overview: Bearer-token sessions for back-office users: issue, validate, revoke, purge.

"""
Session Service

WHY: The API is stateless apart from this table. A login issues an opaque
bearer token; only its SHA-256 digest is stored, so a leaked database does
not leak usable tokens.

Lifetime rules:
- Absolute expiry: SESSION_ABSOLUTE_TIMEOUT_HOURS after login (default 24).
- Idle expiry: SESSION_IDLE_TIMEOUT_MINUTES since the last request (default
  120). An idle session is revoked the first time it is presented.
- Logout revokes; revoked and expired rows are purged by
  `flask maintenance cleanup-sessions`.
"""

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from posoffice.time_utils import utcnow

TOKEN_BYTES = 32


def _lifetime() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24))


def _idle_limit() -> timedelta:
    return timedelta(minutes=current_app.config.get("SESSION_IDLE_TIMEOUT_MINUTES", 120))


def generate_token() -> str:
    """Opaque token handed to the client once (hex, TOKEN_BYTES of entropy)."""
    return secrets.token_hex(TOKEN_BYTES)


def hash_token(token: str) -> str:
    """
    Digest stored in session_tokens.token_hash.

    WHY plain SHA-256: the token is already random, so a slow KDF adds
    nothing and would tax every request.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _find(token: str) -> SessionToken | None:
    return db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()


def create_session(user_id: int) -> tuple[SessionToken, str]:
    """Persist a new session for user_id. Returns (row, plaintext token)."""
    token = generate_token()
    issued_at = utcnow()

    row = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=issued_at,
        last_used_at=issued_at,
        expires_at=issued_at + _lifetime(),
        is_revoked=False,
    )
    db.session.add(row)
    db.session.commit()
    return row, token


def validate_session(token: str) -> User | None:
    """
    Resolve a bearer token to its active user, or None.

    A successful lookup slides last_used_at forward.
    """
    if not token:
        return None

    row = _find(token)
    if row is None or row.is_revoked:
        return None

    now = utcnow()
    if row.expires_at < now:
        return None
    if now - row.last_used_at > _idle_limit():
        revoke_session(token, reason="Idle timeout")
        return None

    user = db.session.get(User, row.user_id)
    if user is None or not user.is_active:
        return None

    row.last_used_at = now
    db.session.commit()
    return user


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Mark the session revoked. False when unknown or already revoked."""
    row = _find(token)
    if row is None or row.is_revoked:
        return False

    row.is_revoked = True
    row.revoked_at = utcnow()
    row.revoked_reason = reason
    db.session.commit()
    current_app.logger.info("Session for user %s revoked (%s)", row.user_id, reason)
    return True


def cleanup_expired_sessions() -> int:
    """Purge expired or revoked rows. Returns how many were removed."""
    cutoff = utcnow()
    removed = (
        db.session.query(SessionToken)
        .filter(db.or_(SessionToken.expires_at < cutoff, SessionToken.is_revoked.is_(True)))
        .delete(synchronize_session=False)
    )
    db.session.commit()
    if removed:
        current_app.logger.info("Removed %s stale session(s)", removed)
    return removed
