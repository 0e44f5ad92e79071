# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Email verification and password reset.

Both flows hand the user a signed token by mail.  Password-reset tokens are
additionally pinned on the account as a SHA-256 digest with its own expiry,
so a reset needs the codec signature AND the stored digest to agree.

Forgot-password deliberately answers "email not found" for unknown
addresses.
"""

from datetime import timedelta

from sqlalchemy.orm import Session

from auth import store
from auth.sessions import stage_email_verification, verification_url
from core.clock import as_utc, utcnow
from core.config import settings
from core.errors import AuthorizationError, ServiceUnavailable, TokenError, ValidationError
from core.logger import logger
from core.mailer import MailDeliveryError, Mailer
from core.security import issue_token, token_digest, verify_token
from models.enums import TokenKind
from models.user import User

_INVALID_RESET = "Invalid or expired token"


def reset_url(token: str) -> str:
    return f"{settings.frontend_url.rstrip('/')}/reset-password?token={token}"


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


def forgot_password(db: Session, mailer: Mailer, *, email: str, request_ip: str | None = None) -> None:
    if not (email or "").strip():
        raise ValidationError("Email is required")

    user = store.find_by_email(db, email)
    if not user:
        raise ValidationError("Email not found")

    if not user.is_email_verified:
        raise AuthorizationError(
            "Email is not verified. Please verify your email before resetting your password"
        )

    token = issue_token(TokenKind.PASSWORD_RESET, {"id": user.id, "email": user.email})
    user.password_reset_token_hash = token_digest(token)
    user.password_reset_expires = utcnow() + timedelta(minutes=settings.password_reset_expire_minutes)
    store.audit(db, "password_reset_requested", target=user, request_ip=request_ip)
    store.save(db, user)

    try:
        mailer.send_password_reset(user, reset_url(token))
    except MailDeliveryError as exc:
        # Undo the stored digest: no mail, no outstanding reset
        user.password_reset_token_hash = None
        user.password_reset_expires = None
        store.save(db, user)
        raise ServiceUnavailable("Could not send the reset email. Please try again later") from exc


def reset_password(
    db: Session,
    *,
    token: str,
    new_password: str,
    request_ip: str | None = None,
) -> User:
    if not token or not new_password:
        raise ValidationError("Token and new password are required")

    try:
        claims = verify_token(TokenKind.PASSWORD_RESET, token)
    except TokenError as exc:
        raise ValidationError(_INVALID_RESET) from exc

    user = store.find_by_id(db, claims.get("id"))
    if not user:
        raise ValidationError(_INVALID_RESET)

    if not user.is_email_verified:
        raise AuthorizationError("Email is not verified. Cannot reset password")

    if user.password_reset_token_hash:
        expires = as_utc(user.password_reset_expires)
        if (
            token_digest(token) != user.password_reset_token_hash
            or expires is None
            or expires <= utcnow()
        ):
            raise ValidationError(_INVALID_RESET)
    elif user.changed_password_after(float(claims["iat"])):
        # Digest already cleared by an earlier reset: this token is spent
        raise ValidationError(_INVALID_RESET)

    err = store.password_error(new_password, "newPassword")
    if err:
        raise ValidationError("Invalid data", errors=[err])

    user.set_password(new_password)
    user.password_reset_token_hash = None
    user.password_reset_expires = None
    user.remove_all_sessions()
    store.audit(db, "password_reset", target=user, request_ip=request_ip)
    store.save(db, user)
    logger.info("Password reset for user %s; all sessions revoked", user.id)
    return user


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


def verify_email(db: Session, mailer: Mailer, *, token: str) -> User:
    if not token:
        raise ValidationError("Verification token is required")

    try:
        claims = verify_token(TokenKind.EMAIL_VERIFICATION, token)
    except TokenError as exc:
        raise ValidationError("Invalid or expired verification token") from exc

    user = store.find_by_id(db, claims.get("id"))
    if not user:
        raise ValidationError("Invalid token")

    if user.is_email_verified:
        raise ValidationError("Email has already been verified")

    user.is_email_verified = True
    user.email_verification_token_hash = None
    user.email_verification_expires = None
    store.audit(db, "verify_email", target=user)
    store.save(db, user)

    try:
        mailer.send_welcome_email(user)
    except MailDeliveryError:
        logger.warning("Welcome mail for account %s was not sent", user.id)
    return user


def resend_verification(db: Session, mailer: Mailer, user: User) -> None:
    if user.is_email_verified:
        raise ValidationError("Email is already verified")

    token = stage_email_verification(user)
    store.save(db, user)
    try:
        mailer.send_email_verification(user, verification_url(token))
    except MailDeliveryError as exc:
        raise ServiceUnavailable(
            "Could not send the verification email. Please try again later"
        ) from exc
