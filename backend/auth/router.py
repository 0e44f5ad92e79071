# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Auth endpoints – registration, login, token refresh, logout, profile,
password change/reset, email verification and self-service deletion.

Security notes
--------------
* Login returns the *same* error message whether the name doesn't exist or
  the password is wrong.
* Register / login / forgot-password / resend-verification sit behind a
  per IP+identifier limiter that only counts failed attempts.
* Responses never contain the password hash, stored token digests or the
  session list – see ``UserResponse``.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from auth import sessions, store, verification
from auth.schemas import (
    ChangePasswordRequest,
    DeleteAccountRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UpdateProfileRequest,
    VerifyEmailRequest,
    ok,
    user_payload,
)
from core.mailer import Mailer, get_mailer
from core.rate_limit import (
    forgot_password_limiter,
    login_limiter,
    register_limiter,
    verify_email_limiter,
)
from core.security import (
    DeviceInfo,
    get_client_ip,
    get_current_user,
    get_device_info,
)
from database import get_db
from models.user import User

router = APIRouter(prefix="/auth", tags=["auth"])


# ---------------------------------------------------------------------------
# POST /auth/register
# ---------------------------------------------------------------------------


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    request: Request,
    device: DeviceInfo = Depends(get_device_info),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """Create an account, send the verification mail and sign the user in."""
    with register_limiter.guard(request, body.email):
        user, tokens = sessions.register(
            db,
            mailer,
            name=body.name,
            email=body.email,
            password=body.password,
            device=device,
        )
    return ok(
        "Registration successful. Please check your email to verify your account",
        {"user": user_payload(user), "tokens": tokens.as_dict()},
    )


# ---------------------------------------------------------------------------
# POST /auth/login
# ---------------------------------------------------------------------------


@router.post("/login")
def login(
    body: LoginRequest,
    request: Request,
    device: DeviceInfo = Depends(get_device_info),
    db: Session = Depends(get_db),
):
    """Authenticate by name + password and return a fresh token pair."""
    with login_limiter.guard(request, body.name):
        user, tokens = sessions.login(db, name=body.name, password=body.password, device=device)
    return ok("Login successful", {"user": user_payload(user), "tokens": tokens.as_dict()})


# ---------------------------------------------------------------------------
# POST /auth/refresh-token
# ---------------------------------------------------------------------------


@router.post("/refresh-token")
def refresh_token(
    body: RefreshTokenRequest,
    device: DeviceInfo = Depends(get_device_info),
    db: Session = Depends(get_db),
):
    """Rotate: the presented refresh token is spent, a new pair is issued."""
    _, tokens = sessions.refresh(db, refresh_token=body.refresh_token, device=device)
    return ok("Token refreshed", {"tokens": tokens.as_dict()})


# ---------------------------------------------------------------------------
# POST /auth/logout, /auth/logout-all
# ---------------------------------------------------------------------------


@router.post("/logout")
def logout(
    body: Optional[LogoutRequest] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    sessions.logout(db, current_user, body.refresh_token if body else None)
    return ok("Logged out successfully")


@router.post("/logout-all")
def logout_all(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    sessions.logout_all(db, current_user)
    return ok("Logged out from all devices")


# ---------------------------------------------------------------------------
# GET / PUT /auth/profile
# ---------------------------------------------------------------------------


@router.get("/profile")
def get_profile(current_user: User = Depends(get_current_user)):
    return ok("Profile retrieved", {"user": user_payload(current_user)})


@router.put("/profile")
def update_profile(
    body: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Partial update of the caller's profile.  The password is not updatable here."""
    updates = body.model_dump(exclude_none=True)
    if body.address is not None:
        updates["address"] = body.address.model_dump(by_alias=True, exclude_none=True)
    user = store.update_profile(db, current_user, updates)
    return ok("Profile updated", {"user": user_payload(user)})


# ---------------------------------------------------------------------------
# PUT /auth/change-password
# ---------------------------------------------------------------------------


@router.put("/change-password")
def change_password(
    body: ChangePasswordRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Change the caller's password.  Every session is revoked, so the client
    must log in again.
    """
    sessions.change_password(
        db,
        current_user,
        current_password=body.current_password,
        new_password=body.new_password,
        request_ip=get_client_ip(request),
    )
    return ok("Password changed successfully. Please log in again")


# ---------------------------------------------------------------------------
# POST /auth/forgot-password, /auth/reset-password
# ---------------------------------------------------------------------------


@router.post("/forgot-password")
def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    with forgot_password_limiter.guard(request, body.email):
        verification.forgot_password(
            db, mailer, email=body.email, request_ip=get_client_ip(request)
        )
    return ok("A password reset link has been sent to your email")


@router.post("/reset-password")
def reset_password(
    body: ResetPasswordRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    verification.reset_password(
        db,
        token=body.token,
        new_password=body.new_password,
        request_ip=get_client_ip(request),
    )
    return ok("Password has been reset. Please log in again")


# ---------------------------------------------------------------------------
# POST /auth/verify-email, /auth/resend-verification
# ---------------------------------------------------------------------------


@router.post("/verify-email")
def verify_email(
    body: VerifyEmailRequest,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    user = verification.verify_email(db, mailer, token=body.token)
    return ok("Email verified successfully", {"user": user_payload(user)})


@router.post("/resend-verification")
def resend_verification(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    with verify_email_limiter.guard(request, current_user.email):
        verification.resend_verification(db, mailer, current_user)
    return ok("Verification email has been resent")


# ---------------------------------------------------------------------------
# GET /auth/validate-token, /auth/me
# ---------------------------------------------------------------------------


@router.get("/validate-token")
def validate_token(current_user: User = Depends(get_current_user)):
    """Cheap liveness probe for a stored access token."""
    return ok("Token is valid", {"valid": True, "user": user_payload(current_user)})


@router.get("/me")
def me(current_user: User = Depends(get_current_user)):
    """Return the authenticated user's public profile (no secrets)."""
    return ok("Current user", {"user": user_payload(current_user)})


# ---------------------------------------------------------------------------
# DELETE /auth/delete-account
# ---------------------------------------------------------------------------


@router.delete("/delete-account")
def delete_account(
    body: DeleteAccountRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    sessions.delete_account(
        db,
        current_user,
        password=body.password,
        confirm_delete=body.confirm_delete,
        request_ip=get_client_ip(request),
    )
    return ok("Account deleted successfully")
