"""
One-off setup for a fresh catalog store: creates the indexes and the admin
account. Safe to run more than once.

    ADMIN_EMAIL=... ADMIN_PASSWORD=... DATABASE_URL=... python seed.py
"""

import sys

import structlog
from pymongo.database import Database

from auth import hash_password
from config import Settings, configure_logging
from database import connect, create_document, ensure_indexes
from schemas import Admin

logger = structlog.get_logger(__name__)


def seed_admin(db: Database, email: str, password: str, name: str = None) -> bool:
    """Create the admin account unless one already exists for this email."""
    if db["admin"].find_one({"email": email}):
        logger.info("admin_exists", email=email)
        return False
    admin = Admin(email=email, name=name or email.split("@")[0], password_hash=hash_password(password))
    create_document(db, "admin", admin)
    logger.info("admin_seeded", email=email)
    return True


def main() -> int:
    settings = Settings.from_env()
    configure_logging(settings)
    db = connect(settings)
    if db is None:
        logger.error("seed_aborted", reason="DATABASE_URL not set")
        return 1
    ensure_indexes(db)
    if not settings.admin_email or not settings.admin_password:
        logger.error("seed_aborted", reason="ADMIN_EMAIL and ADMIN_PASSWORD are required")
        return 1
    seed_admin(db, settings.admin_email, settings.admin_password)
    return 0


if __name__ == "__main__":
    sys.exit(main())
