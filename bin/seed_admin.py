# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Bootstrap script – creates the first admin account.

Run once after the initial migration:
    python bin/seed_admin.py

Reads FIRST_ADMIN_NAME, FIRST_ADMIN_EMAIL and FIRST_ADMIN_PASSWORD from
etc/app.conf (or the environment).  The admin is created with a verified
email, so password change/reset work for it straight away.
"""

import sys
import os

# ---------------------------------------------------------------------------
# Path setup so backend modules are importable
# ---------------------------------------------------------------------------
# bin/seed_admin.py  →  ../  →  project root
_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
_BACKEND_DIR  = os.path.join(_PROJECT_ROOT, "backend")
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

from auth import store                    # noqa: E402
from core.config import settings          # noqa: E402
from core.errors import AuthServiceError  # noqa: E402
from core.logger import logger            # noqa: E402
from database import SessionLocal         # noqa: E402
from models.enums import Role             # noqa: E402


def seed() -> int:
    if not (settings.first_admin_name and settings.first_admin_email and settings.first_admin_password):
        logger.warning(
            "FIRST_ADMIN_NAME, FIRST_ADMIN_EMAIL or FIRST_ADMIN_PASSWORD not set – nothing to do"
        )
        return 0

    db = SessionLocal()
    try:
        if store.find_by_email(db, settings.first_admin_email):
            logger.info("Admin '%s' already exists – skipping", settings.first_admin_email)
            return 0

        try:
            admin = store.create(
                db,
                name=settings.first_admin_name,
                email=settings.first_admin_email,
                password=settings.first_admin_password,
                role=Role.ADMIN,
                is_email_verified=True,
            )
        except AuthServiceError as exc:
            logger.error("Could not create admin: %s %s", exc.message, "; ".join(exc.errors))
            return 1

        logger.info("Admin '%s' (%s) created", admin.name, admin.email)
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(seed())
