"""Seed the well-known feature flags. Existing rows are left untouched."""
import logging

from app.db.session import SessionLocal
from app.services.feature_flags import FEATURE_FLAG_KEYS, create_flag, get_flag

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_FLAGS = [
    # key, value, category, description
    (FEATURE_FLAG_KEYS.SMART_MATCHING, True, "matching", "Suggest companies for new service requests"),
    (FEATURE_FLAG_KEYS.EMAIL_VERIFICATION_REQUIRED, True, "auth", "Require a verified email before posting"),
    (FEATURE_FLAG_KEYS.REVIEW_MODERATION, True, "reviews", "Hold reviews for moderation before publishing"),
    (FEATURE_FLAG_KEYS.MAINTENANCE_MODE, False, "system", "Show the maintenance page to non-admins"),
    # Phase 2: wired but inactive
    (FEATURE_FLAG_KEYS.REQUEST_LIMIT, False, "billing", "Cap free service requests per user per month"),
    (FEATURE_FLAG_KEYS.COMPANY_PAID_PLAN, False, "billing", "Gate company features behind paid plans"),
    (FEATURE_FLAG_KEYS.YELLOW_PAGES_FEATURED, False, "billing", "Paid featured placement in the directory"),
]


def seed_flags() -> int:
    db = SessionLocal()
    created = 0
    try:
        for key, value, category, description in DEFAULT_FLAGS:
            if get_flag(db, key):
                logger.info("Flag %s already exists, skipping", key)
                continue
            create_flag(db, key=key, value=value, category=category, description=description)
            created += 1
    finally:
        db.close()
    logger.info("Seeded %d feature flags", created)
    return created


if __name__ == "__main__":
    seed_flags()
