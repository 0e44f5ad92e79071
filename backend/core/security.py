# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Central security module.  All cryptographic primitives and auth guards live
here.  No other module should touch raw crypto directly.

Responsibilities
----------------
1. Password hashing / verification          (passlib pbkdf2_sha256)
2. Token codec – four JWT kinds             (PyJWT / HS256, one secret per kind)
3. FastAPI dependency guards                (get_current_user, get_optional_user,
                                             require_roles, require_verified_email)
4. Request helpers                          (client IP, device info)
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import jwt as _jwt        # PyJWT
from passlib.hash import pbkdf2_sha256 as _pbkdf2  # pure Python, no binary deps
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer

from core.clock import utcnow
from core.config import settings
from core.errors import (
    AuthenticationError,
    AuthorizationError,
    LockedError,
    TokenExpired,
    TokenInvalid,
)
from database import get_db
from models.enums import Role, TokenKind

# ---------------------------------------------------------------------------
# 1.  pbkdf2_sha256 – password hashing
# ---------------------------------------------------------------------------
# passlib embeds algorithm, rounds and salt in the hash string, so raising
# PASSWORD_HASH_ROUNDS later does not invalidate existing hashes.
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """
    Hash a plaintext password with PBKDF2-SHA256.

    A fresh random salt is generated per call, so hashing the same password
    twice yields two different strings that both verify.
    """
    return _pbkdf2.using(rounds=settings.password_hash_rounds).hash(plain)


def verify_password(plain: str, stored_hash: Optional[str]) -> bool:
    """
    Constant-time verification of a plaintext password against a hash
    produced by :func:`hash_password`.  A malformed or foreign hash string
    verifies as False instead of raising.
    """
    if not stored_hash:
        return False
    try:
        return _pbkdf2.verify(plain, stored_hash)
    except (ValueError, TypeError):
        return False


# ---------------------------------------------------------------------------
# 2.  JWT – token codec
# ---------------------------------------------------------------------------

_ALGORITHM = "HS256"

_TOKEN_LABELS = {
    TokenKind.ACCESS: "Access token",
    TokenKind.REFRESH: "Refresh token",
    TokenKind.EMAIL_VERIFICATION: "Email verification token",
    TokenKind.PASSWORD_RESET: "Password reset token",
}


def _secret_for(kind: TokenKind) -> str:
    return {
        TokenKind.ACCESS: settings.jwt_access_secret,
        TokenKind.REFRESH: settings.jwt_refresh_secret,
        TokenKind.EMAIL_VERIFICATION: settings.jwt_email_secret,
        TokenKind.PASSWORD_RESET: settings.jwt_password_reset_secret,
    }[kind]


def default_ttl(kind: TokenKind) -> timedelta:
    return {
        TokenKind.ACCESS: timedelta(minutes=settings.access_token_expire_minutes),
        TokenKind.REFRESH: timedelta(days=settings.refresh_token_expire_days),
        TokenKind.EMAIL_VERIFICATION: timedelta(hours=settings.email_token_expire_hours),
        TokenKind.PASSWORD_RESET: timedelta(minutes=settings.password_reset_expire_minutes),
    }[kind]


def issue_token(kind: TokenKind, claims: dict, ttl: Optional[timedelta] = None) -> str:
    """
    Sign *claims* as a token of the given kind.

    ``type``, ``iat``, ``exp``, ``iss`` and ``aud`` are added automatically.
    ``iat`` keeps sub-second precision so that a password change in the same
    second as a login still orders correctly against the token.
    """
    now = utcnow()
    payload = dict(claims)
    payload.update(
        {
            "type": kind.value,
            "iat": now.timestamp(),
            "exp": now + (ttl if ttl is not None else default_ttl(kind)),
            "iss": settings.jwt_issuer,
            "aud": settings.jwt_audience,
        }
    )
    return _jwt.encode(payload, _secret_for(kind), algorithm=_ALGORITHM)


def verify_token(kind: TokenKind, token: str) -> dict:
    """
    Verify signature, expiry, issuer, audience and ``type`` of *token*.

    Raises
    ------
    TokenExpired   ``exp`` has passed (even if the signature is valid).
    TokenInvalid   bad signature, malformed structure, wrong issuer/audience
                   or a ``type`` claim that is not *kind*.
    """
    label = _TOKEN_LABELS[kind]
    try:
        claims = _jwt.decode(
            token,
            _secret_for(kind),
            algorithms=[_ALGORITHM],
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            leeway=settings.jwt_leeway_seconds,
            options={"require": ["exp", "iat", "iss", "aud"]},
        )
    except _jwt.ExpiredSignatureError as exc:
        raise TokenExpired(f"{label} expired") from exc
    except _jwt.InvalidTokenError as exc:
        raise TokenInvalid(f"Invalid {label.lower()}") from exc

    if claims.get("type") != kind.value:
        raise TokenInvalid("Invalid token type")
    return claims


def decode_token(token: str) -> Optional[dict]:
    """
    Decode *token* WITHOUT verifying anything.  Advisory use only (expiry
    display, debugging) – never base an authorization decision on it.
    """
    try:
        return _jwt.decode(token, options={"verify_signature": False})
    except _jwt.PyJWTError:
        return None


def token_expiration(token: str) -> Optional[datetime]:
    claims = decode_token(token)
    if not claims or "exp" not in claims:
        return None
    return datetime.fromtimestamp(claims["exp"], tz=timezone.utc)


def is_token_expired(token: str) -> bool:
    expiration = token_expiration(token)
    if expiration is None:
        return True
    return expiration < utcnow()


def token_digest(token: str) -> str:
    """SHA-256 hex digest used to store refresh / reset / verification tokens."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_random_token(length: int = 32) -> str:
    return secrets.token_hex(length)


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int                # access token lifetime, seconds
    refresh_expires_at: datetime

    def as_dict(self) -> dict:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresIn": self.expires_in,
        }


def create_token_pair(user) -> TokenPair:
    """
    Issue a fresh access + refresh token pair for *user*.

    Every refresh token carries a random ``sid`` so two pairs issued in the
    same instant still hash to different session records.
    """
    access_ttl = default_ttl(TokenKind.ACCESS)
    access = issue_token(
        TokenKind.ACCESS,
        {"id": user.id, "email": user.email, "role": Role(user.role).value},
        access_ttl,
    )
    refresh = issue_token(
        TokenKind.REFRESH,
        {"id": user.id, "email": user.email, "sid": generate_random_token(16)},
    )
    return TokenPair(
        access_token=access,
        refresh_token=refresh,
        expires_in=int(access_ttl.total_seconds()),
        refresh_expires_at=token_expiration(refresh),
    )


# ---------------------------------------------------------------------------
# 3.  FastAPI dependency guards
# ---------------------------------------------------------------------------

# The tokenUrl here is only used by the auto-generated OpenAPI docs.
# auto_error is off so a missing header goes through our own 401 message.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def authenticate_access_token(token: Optional[str], db):
    """
    Resolve a bearer token to an active, unlocked User whose password has
    not changed since the token was issued.

    Raises AuthenticationError (401) or LockedError (423).
    """
    if not token:
        raise AuthenticationError("Access token not provided")

    try:
        claims = verify_token(TokenKind.ACCESS, token)
    except (TokenExpired, TokenInvalid) as exc:
        raise AuthenticationError(str(exc)) from exc

    # Lazy import to avoid circular dependency at module load time
    from models.user import User  # noqa: E402

    user_id = claims.get("id")
    user = db.get(User, user_id) if user_id else None
    if not user:
        raise AuthenticationError("User no longer exists")
    if not user.is_active:
        raise AuthenticationError("Account has been disabled")
    if user.is_locked:
        raise LockedError("Account is locked due to too many failed login attempts")
    if user.changed_password_after(float(claims["iat"])):
        raise AuthenticationError("Password was changed. Please log in again")
    return user


def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db=Depends(get_db),
):
    """
    Dependency: verify the bearer access token and load the User row.
    The user is also attached to ``request.state.user`` for middleware and
    downstream handlers.
    """
    user = authenticate_access_token(token, db)
    request.state.user = user
    return user


def get_optional_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db=Depends(get_db),
):
    """
    Dependency: like :func:`get_current_user` but never rejects – any
    failure yields an anonymous (``None``) identity.
    """
    try:
        user = authenticate_access_token(token, db)
    except (AuthenticationError, LockedError):
        user = None
    request.state.user = user
    return user


def has_role(user, roles: Iterable[Role]) -> bool:
    """Capability check: does *user* hold one of *roles*?"""
    return user is not None and Role(user.role) in set(roles)


def require_roles(*roles: Role):
    """
    Dependency factory: wraps :func:`get_current_user` and asserts the
    user's role is one of *roles*.  Raises 403 otherwise.
    """

    def _guard(current_user=Depends(get_current_user)):
        if not has_role(current_user, roles):
            raise AuthorizationError("You do not have permission to access this resource")
        return current_user

    return _guard


require_admin = require_roles(Role.ADMIN)


def require_verified_email(current_user=Depends(get_current_user)):
    """Dependency: the authenticated user must have a verified email."""
    if not current_user.is_email_verified:
        raise AuthorizationError(
            "Please verify your email before performing this action",
            extra={"needEmailVerification": True},
        )
    return current_user


# ---------------------------------------------------------------------------
# 4.  Request helpers
# ---------------------------------------------------------------------------


@dataclass
class DeviceInfo:
    user_agent: str
    ip: str


def get_client_ip(request: Request) -> str:
    """
    Extract the client IP address from the request.
    Checks X-Forwarded-For header first (for proxies), then falls back to client host.
    Returns the IP address as a string (supports both IPv4 and IPv6).
    """
    # X-Forwarded-For can contain multiple IPs, take the first (original client)
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"


def get_device_info(request: Request) -> DeviceInfo:
    """Dependency: informational device fingerprint stored with each session."""
    return DeviceInfo(
        user_agent=request.headers.get("User-Agent") or "Unknown",
        ip=get_client_ip(request),
    )
