"""Create the ops tables directly (local / test setups without alembic).

    python -m scripts.create_tables          # tables only
    python -m scripts.create_tables --seed   # tables + default feature flags
"""
import argparse
import logging

from app.db.base_class import Base
from app.db.session import engine
import app.models  # noqa: F401  (register tables on Base.metadata)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_tables() -> list:
    Base.metadata.create_all(bind=engine)
    names = sorted(Base.metadata.tables)
    logger.info("Tables ready: %s", ", ".join(names))
    return names


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--seed", action="store_true", help="insert the default feature flags")
    args = parser.parse_args()

    create_tables()
    if args.seed:
        from scripts.seed_feature_flags import seed_flags
        seed_flags()
