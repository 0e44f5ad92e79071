# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""RefreshSession ORM model – one row per live refresh token (i.e. per device)."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from core.clock import utcnow
from database import Base


class RefreshSession(Base):
    __tablename__ = "refresh_sessions"

    # Autoincrement id doubles as the insertion order used for eviction
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # SHA-256 hex of the refresh token; the token itself is never stored
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    # Informational only
    user_agent = Column(String(512), nullable=True)
    ip = Column(String(45), nullable=True)

    user = relationship("User", back_populates="sessions")
