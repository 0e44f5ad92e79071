# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Admin endpoints – user lifecycle management and the audit trail.

Every endpoint in this router is guarded by ``require_admin``.  A request
that carries a valid access token but belongs to a ``user`` or
``moderator`` account receives 403 before any business logic runs.
"""

import math
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session, aliased

from admin.schemas import AuditLogListResponse, AuditLogRow, ChangeRoleRequest, Pagination
from auth import store
from auth.schemas import ok, user_payload
from core.errors import AuthorizationError, NotFoundError, ValidationError
from core.logger import logger
from core.security import get_client_ip, require_admin
from database import get_db
from models.audit_log import AuditLog
from models.enums import Role
from models.user import User

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_target(db: Session, user_id: str) -> User:
    target = store.find_by_id(db, user_id)
    if not target:
        raise NotFoundError("User not found")
    return target


# ---------------------------------------------------------------------------
# GET /admin/users  – paginated, filterable user list
# ---------------------------------------------------------------------------


@router.get("/users")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = Query("", description="Case-insensitive match on name or email"),
    role: Optional[Role] = Query(None),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    is_email_verified: Optional[bool] = Query(None, alias="isEmailVerified"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Newest accounts first.  Secrets are stripped by ``UserResponse``."""
    users, total = store.list_accounts(
        db,
        page=page,
        limit=limit,
        search=search,
        role=role,
        is_active=is_active,
        is_email_verified=is_email_verified,
    )
    total_pages = math.ceil(total / limit) if total else 0
    pagination = Pagination(
        current_page=page,
        total_pages=total_pages,
        total_users=total,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )
    return ok(
        "Users retrieved",
        {
            "users": [user_payload(u) for u in users],
            "pagination": pagination.model_dump(by_alias=True),
        },
    )


# ---------------------------------------------------------------------------
# DELETE /admin/users/{id}
# ---------------------------------------------------------------------------


@router.delete("/users/{user_id}")
def delete_user(
    user_id: str,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Delete an account and, by cascade, its sessions.  Guards:
    * another admin's account cannot be deleted;
    * an admin cannot delete their own account here.
    """
    target = _get_target(db, user_id)

    if target.id == admin.id:
        raise AuthorizationError("You cannot delete your own account")
    if Role(target.role) is Role.ADMIN:
        raise AuthorizationError("Cannot delete another admin account")

    store.audit(
        db,
        "admin_delete_user",
        actor=admin,
        detail=f"name={target.name} email={target.email}",
        request_ip=get_client_ip(request),
    )
    name = target.name
    store.delete(db, target)
    logger.info("Admin %s deleted user %s", admin.id, user_id)
    return ok(f"Deleted user account: {name}")


# ---------------------------------------------------------------------------
# PUT /admin/users/{id}/disable  – soft-disable a user account
# ---------------------------------------------------------------------------


@router.put("/users/{user_id}/disable")
def disable_user(
    user_id: str,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Set ``is_active = False`` and drop every refresh session.  Outstanding
    access tokens are rejected by the access guard on their next use.

    Guard: an admin cannot disable their own account.
    """
    if user_id == admin.id:
        raise ValidationError("Cannot disable yourself")

    target = _get_target(db, user_id)
    target.is_active = False
    target.remove_all_sessions()
    store.audit(db, "disable_user", actor=admin, target=target, request_ip=get_client_ip(request))
    store.save(db, target)
    return ok("User disabled")


# ---------------------------------------------------------------------------
# PUT /admin/users/{id}/enable  – re-activate a disabled user account
# ---------------------------------------------------------------------------


@router.put("/users/{user_id}/enable")
def enable_user(
    user_id: str,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Set ``is_active = True`` so the user can log in again."""
    target = _get_target(db, user_id)
    target.is_active = True
    store.audit(db, "enable_user", actor=admin, target=target, request_ip=get_client_ip(request))
    store.save(db, target)
    return ok("User enabled")


# ---------------------------------------------------------------------------
# PUT /admin/users/{id}/change-role  – promote or demote a user
# ---------------------------------------------------------------------------


@router.put("/users/{user_id}/change-role")
def change_role(
    user_id: str,
    body: ChangeRoleRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Change the role of an existing user.  The role must be one of the
    ``Role`` values (enforced by the schema), and an admin cannot change
    their own role.
    """
    if user_id == admin.id:
        raise ValidationError("Cannot change your own role")

    target = _get_target(db, user_id)
    target.role = body.role
    store.audit(
        db,
        "change_role",
        actor=admin,
        target=target,
        detail=f"new_role={body.role.value}",
        request_ip=get_client_ip(request),
    )
    store.save(db, target)
    return ok("Role updated", {"user": user_payload(target)})


# ---------------------------------------------------------------------------
# GET /admin/audit-logs  – audit trail with optional filters
# ---------------------------------------------------------------------------


@router.get("/audit-logs")
def list_audit_logs(
    emails: list[str] | None = Query(None, description="Filter by exact email(s) – repeated param"),
    since: datetime | None = Query(None, description="ISO-8601 start of time window"),
    until: datetime | None = Query(None, description="ISO-8601 end of time window"),
    limit: int = Query(200, ge=1, le=1000),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Return audit rows newest-first.  ``emails`` matches rows where either
    the actor or the target account has one of the given addresses.
    """
    Actor = aliased(User)
    Target = aliased(User)

    q = (
        db.query(AuditLog, Actor.email, Target.email)
        .outerjoin(Actor, AuditLog.actor_id == Actor.id)
        .outerjoin(Target, AuditLog.target_user_id == Target.id)
    )
    if emails:
        normalized = [store.normalize_email(e) for e in emails]
        q = q.filter(Actor.email.in_(normalized) | Target.email.in_(normalized))
    if since:
        q = q.filter(AuditLog.created_at >= since)
    if until:
        q = q.filter(AuditLog.created_at <= until)

    rows = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
    logs = [
        AuditLogRow(
            id=row.id,
            actor_email=actor_email,
            target_email=target_email,
            action=row.action,
            detail=row.detail,
            request_ip=row.request_ip,
            created_at=row.created_at,
        )
        for row, actor_email, target_email in rows
    ]
    return ok(
        "Audit logs retrieved",
        AuditLogListResponse(logs=logs).model_dump(by_alias=True, mode="json"),
    )
