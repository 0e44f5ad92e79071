# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Session manager – register, login, refresh rotation, logout and the other
credential-changing operations of an account.

Per account the life cycle is  Anonymous -> Authenticated -> (Refreshed*)
-> LoggedOut.  Every successful login/register/refresh adds one refresh
session; every refresh spends the presented one.

Security notes
--------------
* Login answers "unknown name" and "wrong password" with the same message.
* A refresh token must verify as a ``refresh`` token AND match a live
  session row; the row is consumed atomically, so each token works once.
* Changing the password drops every session of the account, and stamps
  ``password_changed_at`` so outstanding access tokens stop working too.
"""

from sqlalchemy.orm import Session

from auth import store
from core.clock import utcnow
from core.config import settings
from core.errors import (
    AuthenticationError,
    AuthorizationError,
    LockedError,
    NotFoundError,
    TokenError,
    ValidationError,
)
from core.logger import logger
from core.mailer import MailDeliveryError, Mailer
from core.security import (
    DeviceInfo,
    TokenPair,
    create_token_pair,
    issue_token,
    token_digest,
    token_expiration,
    verify_token,
)
from models.enums import Role, TokenKind
from models.user import User

# Same message for "no such name" and "wrong password"
_LOGIN_FAIL = "Invalid name or password"

DELETE_CONFIRMATION = "DELETE_MY_ACCOUNT"


def _start_session(db: Session, user: User, device: DeviceInfo) -> TokenPair:
    tokens = create_token_pair(user)
    store.add_session(db, user, tokens.refresh_token, tokens.refresh_expires_at, device)
    return tokens


def stage_email_verification(user: User) -> str:
    """Issue a verification token and record its digest on *user* (not committed)."""
    token = issue_token(TokenKind.EMAIL_VERIFICATION, {"id": user.id, "email": user.email})
    user.email_verification_token_hash = token_digest(token)
    user.email_verification_expires = token_expiration(token)
    return token


def verification_url(token: str) -> str:
    return f"{settings.frontend_url.rstrip('/')}/verify-email?token={token}"


# ---------------------------------------------------------------------------
# Register / login
# ---------------------------------------------------------------------------


def register(
    db: Session,
    mailer: Mailer,
    *,
    name: str,
    email: str,
    password: str,
    device: DeviceInfo,
) -> tuple[User, TokenPair]:
    if not (name or "").strip() or not (email or "").strip() or not password:
        raise ValidationError("Name, email and password are required")

    user = store.create(db, name=name, email=email, password=password)

    token = stage_email_verification(user)
    store.audit(db, "user_register", target=user, request_ip=device.ip)
    tokens = _start_session(db, user, device)

    # Best effort: registration stands even if the mail never leaves
    try:
        mailer.send_email_verification(user, verification_url(token))
    except MailDeliveryError:
        logger.warning("Verification mail for new account %s was not sent", user.id)

    return user, tokens


def login(db: Session, *, name: str, password: str, device: DeviceInfo) -> tuple[User, TokenPair]:
    if not (name or "").strip() or not password:
        raise ValidationError("Name and password are required")

    user = store.find_by_name(db, name)
    if not user:
        raise AuthenticationError(_LOGIN_FAIL)

    if user.is_locked:
        raise LockedError(
            "Account is locked due to too many failed login attempts. "
            "Please try again in 5 minutes"
        )

    if not user.is_active:
        raise AuthorizationError("Account has been disabled. Please contact an administrator")

    if not user.check_password(password):
        store.audit(db, "login_failed", target=user, request_ip=device.ip)
        store.increment_login_attempts(db, user)
        raise AuthenticationError(_LOGIN_FAIL)

    if user.login_attempts or user.lock_until:
        user.clear_login_attempts()
    user.last_login = utcnow()
    user.last_login_ip = device.ip
    store.audit(db, "user_login", target=user, request_ip=device.ip)
    tokens = _start_session(db, user, device)
    logger.info("User %s logged in from %s", user.id, device.ip)
    return user, tokens


# ---------------------------------------------------------------------------
# Refresh / logout
# ---------------------------------------------------------------------------


def refresh(db: Session, *, refresh_token: str, device: DeviceInfo) -> tuple[User, TokenPair]:
    """Spend *refresh_token* and hand out a brand-new pair."""
    if not refresh_token:
        raise AuthenticationError("Refresh token not provided")

    try:
        claims = verify_token(TokenKind.REFRESH, refresh_token)
    except TokenError as exc:
        raise AuthenticationError(str(exc)) from exc

    user = store.find_by_refresh_token(db, refresh_token)
    if not user or user.id != claims.get("id"):
        raise AuthenticationError("Invalid refresh token")
    if not user.is_active:
        raise AuthenticationError("Account has been disabled")

    if not store.consume_session(db, user, refresh_token):
        # Another request spent this token between the lookup and now
        db.rollback()
        raise AuthenticationError("Invalid refresh token")

    tokens = _start_session(db, user, device)
    return user, tokens


def logout(db: Session, user: User, refresh_token: str | None = None) -> None:
    """Idempotent: an absent or unknown token is not an error."""
    store.audit(db, "user_logout", target=user)
    if refresh_token:
        store.remove_session(db, user, refresh_token)
    else:
        store.save(db, user)


def logout_all(db: Session, user: User) -> None:
    store.audit(db, "user_logout_all", target=user)
    store.remove_all_sessions(db, user)


# ---------------------------------------------------------------------------
# Password / account
# ---------------------------------------------------------------------------


def change_password(
    db: Session,
    user: User,
    *,
    current_password: str,
    new_password: str,
    request_ip: str | None = None,
) -> None:
    if not current_password or not new_password:
        raise ValidationError("Current password and new password are required")

    if not user.is_email_verified:
        raise AuthorizationError("Please verify your email before changing your password")

    if not user.check_password(current_password):
        raise ValidationError("Current password is incorrect")

    err = store.password_error(new_password, "newPassword")
    if err:
        raise ValidationError("Invalid data", errors=[err])

    user.set_password(new_password)
    user.remove_all_sessions()
    store.audit(db, "change_password", target=user, request_ip=request_ip)
    store.save(db, user)
    logger.info("User %s changed password; all sessions revoked", user.id)


def delete_account(
    db: Session,
    user: User,
    *,
    password: str,
    confirm_delete: str,
    request_ip: str | None = None,
) -> None:
    if confirm_delete != DELETE_CONFIRMATION:
        raise ValidationError(
            f'Please confirm account deletion by typing "{DELETE_CONFIRMATION}"'
        )

    account = store.find_by_id(db, user.id)
    if not account:
        raise NotFoundError("User not found")

    if not password:
        raise ValidationError("Please enter your password to confirm")
    if not account.check_password(password):
        raise ValidationError("Incorrect password")

    if Role(account.role) is Role.ADMIN:
        raise AuthorizationError(
            "Admin accounts cannot be deleted. Please contact another administrator"
        )

    store.audit(
        db,
        "delete_account",
        detail=f"name={account.name} email={account.email}",
        request_ip=request_ip,
    )
    store.delete(db, account)
    logger.info("Account %s deleted by its owner", user.id)
