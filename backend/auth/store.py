# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Account store – every read and write of ``users`` / ``refresh_sessions``
goes through here.

There is no cache: each lookup is a query against the request's session.
``save`` commits and, as a side effect, drops the account's expired
refresh sessions, so stale sessions are garbage-collected lazily on the
next write instead of by a background sweep.

Refresh tokens are only ever stored and looked up by their SHA-256 digest.
"""

import re
from typing import Any, Optional

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.clock import utcnow
from core.errors import DuplicateError, ValidationError
from core.logger import logger
from core.security import DeviceInfo, token_digest
from models.audit_log import AuditLog
from models.enums import Role
from models.refresh_session import RefreshSession
from models.user import User

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 128
PHONE_MAX_LENGTH = 32
LANGUAGES = ("vi", "en")

_PHONE_RE = re.compile(r"^[0-9+\-\s()]+$")

PROFILE_FIELDS = ("name", "email", "phone", "avatar", "address", "preferences")


# ---------------------------------------------------------------------------
# Field normalisation / validation
# ---------------------------------------------------------------------------


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def name_error(name: str) -> Optional[str]:
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        return f"name: must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters"
    return None


def email_error(email: str) -> Optional[str]:
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return "email: invalid email address"
    return None


def password_error(password: str, field: str = "password") -> Optional[str]:
    if len(password or "") < PASSWORD_MIN_LENGTH:
        return f"{field}: must be at least {PASSWORD_MIN_LENGTH} characters"
    if len(password) > PASSWORD_MAX_LENGTH:
        return f"{field}: must be at most {PASSWORD_MAX_LENGTH} characters"
    return None


def phone_error(phone: str) -> Optional[str]:
    if phone and (len(phone) > PHONE_MAX_LENGTH or not _PHONE_RE.match(phone)):
        return "phone: invalid phone number"
    return None


def preferences_error(preferences: dict) -> Optional[str]:
    language = preferences.get("language")
    if language is not None and language not in LANGUAGES:
        return f"preferences.language: must be one of {', '.join(LANGUAGES)}"
    return None


def _raise_if_invalid(errors: list) -> None:
    errors = [e for e in errors if e]
    if errors:
        raise ValidationError("Invalid data", errors=errors)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def find_by_name(db: Session, name: str) -> Optional[User]:
    return db.query(User).filter(User.name == name.strip()).first()


def find_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def find_by_id(db: Session, user_id: Optional[str]) -> Optional[User]:
    if not user_id:
        return None
    return db.get(User, user_id)


def find_by_refresh_token(db: Session, token: str) -> Optional[User]:
    """The account owning a *live* (unexpired) session for *token*."""
    return (
        db.query(User)
        .join(RefreshSession, RefreshSession.user_id == User.id)
        .filter(
            RefreshSession.token_hash == token_digest(token),
            RefreshSession.expires_at > utcnow(),
        )
        .first()
    )


# ---------------------------------------------------------------------------
# Create / save / delete
# ---------------------------------------------------------------------------


def create(
    db: Session,
    *,
    name: str,
    email: str,
    password: str,
    role: Role = Role.USER,
    is_email_verified: bool = False,
) -> User:
    """
    Validate, de-duplicate and persist a new account.

    Name collisions are reported before email collisions, each with its own
    message (registration deliberately tells the caller which field is taken).
    """
    name = (name or "").strip()
    email = normalize_email(email)
    _raise_if_invalid([name_error(name), email_error(email), password_error(password)])

    if find_by_name(db, name):
        raise DuplicateError("Name already in use")
    if find_by_email(db, email):
        raise DuplicateError("Email already in use")

    user = User(name=name, email=email, role=role, is_email_verified=is_email_verified)
    user.set_password(password)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race against a concurrent registration
        db.rollback()
        raise DuplicateError("Name or email already in use")
    db.refresh(user)
    logger.info("Account created: id=%s name=%s role=%s", user.id, user.name, user.role)
    return user


def save(db: Session, user: User) -> User:
    pruned = user.prune_expired_sessions()
    if pruned:
        logger.debug("Pruned %d expired session(s) for user %s", pruned, user.id)
    db.commit()
    return user


def delete(db: Session, user: User) -> None:
    db.delete(user)
    db.commit()


def update_profile(db: Session, user: User, updates: dict[str, Any]) -> User:
    """
    Apply a partial profile update.  Only :data:`PROFILE_FIELDS` are
    accepted; the password has its own endpoint.
    """
    changes = {k: v for k, v in updates.items() if k in PROFILE_FIELDS and v is not None}

    if "email" in changes:
        changes["email"] = normalize_email(changes["email"])
        _raise_if_invalid([email_error(changes["email"])])
        if changes["email"] != user.email:
            other = find_by_email(db, changes["email"])
            if other and other.id != user.id:
                raise ValidationError("Email already in use by another account")

    if "phone" in changes:
        changes["phone"] = changes["phone"].strip()
        _raise_if_invalid([phone_error(changes["phone"])])

    if "preferences" in changes:
        _raise_if_invalid([preferences_error(changes["preferences"])])

    if "name" in changes:
        changes["name"] = changes["name"].strip()
        _raise_if_invalid([name_error(changes["name"])])
        if changes["name"] != user.name:
            other = find_by_name(db, changes["name"])
            if other and other.id != user.id:
                raise ValidationError("Name already in use")

    for field, value in changes.items():
        setattr(user, field, value)
    try:
        return save(db, user)
    except IntegrityError:
        db.rollback()
        raise ValidationError("Name or email already in use")


def list_accounts(
    db: Session,
    *,
    page: int = 1,
    limit: int = 10,
    search: str = "",
    role: Optional[Role] = None,
    is_active: Optional[bool] = None,
    is_email_verified: Optional[bool] = None,
) -> tuple[list[User], int]:
    """Newest-first page of accounts matching the filters, plus the total count."""
    q = db.query(User)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    if role is not None:
        q = q.filter(User.role == role)
    if is_active is not None:
        q = q.filter(User.is_active == is_active)
    if is_email_verified is not None:
        q = q.filter(User.is_email_verified == is_email_verified)

    total = q.count()
    users = (
        q.order_by(User.created_at.desc(), User.name)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return users, total


# ---------------------------------------------------------------------------
# Lockout
# ---------------------------------------------------------------------------


def increment_login_attempts(db: Session, user: User) -> User:
    user.register_failed_login()
    if user.is_locked:
        logger.warning("Account %s locked after %d failed logins", user.id, user.login_attempts)
    return save(db, user)


def reset_login_attempts(db: Session, user: User) -> User:
    user.clear_login_attempts()
    return save(db, user)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


def add_session(db: Session, user: User, token: str, expires_at, device: DeviceInfo) -> User:
    user.add_session(token_digest(token), expires_at, device.user_agent, device.ip)
    return save(db, user)


def remove_session(db: Session, user: User, token: str) -> bool:
    removed = user.remove_session(token_digest(token))
    save(db, user)
    return removed


def remove_all_sessions(db: Session, user: User) -> User:
    user.remove_all_sessions()
    return save(db, user)


def consume_session(db: Session, user: User, token: str) -> bool:
    """
    Atomically delete the session for *token*.  Returns True only for the
    caller whose DELETE removed the row, so a refresh token can be spent at
    most once even when two requests present it concurrently.  Not
    committed: the caller commits together with the replacement session.
    """
    deleted = (
        db.query(RefreshSession)
        .filter(
            RefreshSession.user_id == user.id,
            RefreshSession.token_hash == token_digest(token),
        )
        .delete(synchronize_session=False)
    )
    db.expire(user, ["sessions"])
    return deleted == 1


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------


def audit(
    db: Session,
    action: str,
    *,
    target: Optional[User] = None,
    actor: Optional[User] = None,
    detail: Optional[str] = None,
    request_ip: Optional[str] = None,
) -> None:
    """Stage an audit row; it is written by the caller's next commit."""
    db.add(
        AuditLog(
            actor_id=actor.id if actor else (target.id if target else None),
            target_user_id=target.id if target else None,
            action=action,
            detail=detail,
            request_ip=request_ip,
        )
    )
