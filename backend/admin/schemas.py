# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the admin endpoints."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from auth.schemas import CamelModel
from models.enums import Role


# -- Requests --------------------------------------------------------------


class ChangeRoleRequest(BaseModel):
    role: Role  # "user", "moderator" or "admin"


# -- Responses -------------------------------------------------------------


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_users: int
    has_next_page: bool
    has_prev_page: bool


# -- Audit log responses ---------------------------------------------------


class AuditLogRow(CamelModel):
    id: int
    actor_email: Optional[str] = None       # resolved from actor_id
    target_email: Optional[str] = None      # resolved from target_user_id
    action: str
    detail: Optional[str] = None
    request_ip: Optional[str] = None
    created_at: datetime


class AuditLogListResponse(CamelModel):
    logs: List[AuditLogRow]
