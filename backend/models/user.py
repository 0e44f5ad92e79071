# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
User ORM model.

The account owns its refresh sessions (``User.sessions``) as an ordered,
capacity-bounded collection: appending past ``max_sessions_per_user`` evicts
the oldest entry by insertion order, and ``delete-orphan`` turns every
eviction/removal into a row delete on the next commit.
"""

import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, JSON, String
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.dialects import mysql
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from core.clock import as_utc, utcnow
from core.config import settings
from core.security import hash_password, verify_password
from database import Base
from models.enums import Role
from models.refresh_session import RefreshSession

# Microsecond precision on MySQL: a token issued in the same second as a
# password change must still compare correctly against its ``iat``.
PreciseDateTime = DateTime(timezone=True).with_variant(mysql.DATETIME(fsp=6), "mysql")


def default_preferences() -> dict:
    return {
        "language": "vi",
        "notifications": {"email": True, "push": True, "sms": False},
        "privacy": {"showEmail": False, "showPhone": False},
    }


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # Login identifier (not the email)
    name = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(
        Enum(Role, name="user_role", values_callable=lambda roles: [r.value for r in roles]),
        nullable=False,
        default=Role.USER,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    is_email_verified = Column(Boolean, nullable=False, default=False)

    # Lockout
    login_attempts = Column(Integer, nullable=False, default=0)
    lock_until = Column(DateTime(timezone=True), nullable=True)

    password_changed_at = Column(PreciseDateTime, nullable=True)
    # SHA-256 hex of the outstanding reset / verification token
    password_reset_token_hash = Column(String(64), nullable=True)
    password_reset_expires = Column(DateTime(timezone=True), nullable=True)
    email_verification_token_hash = Column(String(64), nullable=True)
    email_verification_expires = Column(DateTime(timezone=True), nullable=True)

    # Profile
    phone = Column(String(32), nullable=True)
    avatar = Column(String(1024), nullable=True)
    address = Column(JSON, nullable=True)
    preferences = Column(JSON, nullable=False, default=default_preferences)

    last_login = Column(DateTime(timezone=True), nullable=True)
    last_login_ip = Column(String(45), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    sessions = relationship(
        RefreshSession,
        back_populates="user",
        order_by=RefreshSession.id,
        cascade="all, delete-orphan",
    )

    # -- password ---------------------------------------------------------

    def set_password(self, plain: str) -> None:
        """
        Hash *plain* into ``password_hash``.  Hashing happens here, once, at
        assignment time, so a later save can never hash an existing digest.
        Existing accounts also get ``password_changed_at`` stamped, which
        invalidates every access token issued before this instant.
        """
        is_new = not sa_inspect(self).has_identity
        self.password_hash = hash_password(plain)
        if not is_new:
            self.password_changed_at = utcnow()

    def check_password(self, plain: str) -> bool:
        return verify_password(plain, self.password_hash)

    def changed_password_after(self, issued_at: float) -> bool:
        """True if the password changed after a token's ``iat`` (epoch seconds)."""
        changed = as_utc(self.password_changed_at)
        if changed is None:
            return False
        return issued_at < changed.timestamp()

    # -- lockout ----------------------------------------------------------

    @property
    def is_locked(self) -> bool:
        lock = as_utc(self.lock_until)
        return lock is not None and lock > utcnow()

    def register_failed_login(self) -> None:
        now = utcnow()
        lock = as_utc(self.lock_until)
        # A previous lock that has run out restarts the count at 1
        if lock is not None and lock < now:
            self.login_attempts = 1
            self.lock_until = None
            return

        attempts = (self.login_attempts or 0) + 1
        if attempts >= settings.max_login_attempts and not self.is_locked:
            self.lock_until = now + timedelta(minutes=settings.lock_duration_minutes)
        self.login_attempts = attempts

    def clear_login_attempts(self) -> None:
        self.login_attempts = 0
        self.lock_until = None

    # -- sessions ---------------------------------------------------------

    def add_session(
        self,
        token_hash: str,
        expires_at: datetime,
        user_agent: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> RefreshSession:
        record = RefreshSession(
            token_hash=token_hash,
            expires_at=expires_at,
            user_agent=(user_agent or "Unknown")[:512],
            ip=(ip or "Unknown")[:45],
        )
        self.sessions.append(record)
        # FIFO by insertion order, not by expiry
        while len(self.sessions) > settings.max_sessions_per_user:
            self.sessions.pop(0)
        return record

    def remove_session(self, token_hash: str) -> bool:
        for record in list(self.sessions):
            if record.token_hash == token_hash:
                self.sessions.remove(record)
                return True
        return False

    def remove_all_sessions(self) -> None:
        self.sessions.clear()

    def prune_expired_sessions(self) -> int:
        now = utcnow()
        expired = [s for s in self.sessions if as_utc(s.expires_at) <= now]
        for record in expired:
            self.sessions.remove(record)
        return len(expired)
