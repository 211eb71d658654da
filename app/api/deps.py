import hmac
from typing import Generator

from fastapi import Header, HTTPException, status
from sqlalchemy.orm import Session

from app.config import settings
from app.db.session import SessionLocal
from app.services.feature_flags import FlagStore, flag_store
from app.services.health_checks import HealthAggregator
from app.services.health_probes import build_default_registry

_default_aggregator: HealthAggregator | None = None


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def require_admin(x_admin_token: str = Header(default="")) -> None:
    """
    Admin endpoints are reached through the internal gateway, which forwards a
    shared token. No token configured (development) means no check.
    """
    if not settings.ADMIN_API_TOKEN:
        return
    if not hmac.compare_digest(x_admin_token.encode(), settings.ADMIN_API_TOKEN.encode()):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin token",
        )


def get_flag_store() -> FlagStore:
    return flag_store


def get_health_aggregator() -> HealthAggregator:
    global _default_aggregator
    if _default_aggregator is None:
        _default_aggregator = HealthAggregator(build_default_registry())
    return _default_aggregator
