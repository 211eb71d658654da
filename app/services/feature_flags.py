"""Feature flag cache and management.

Request paths call :func:`get_feature_flag` before gating optional behaviour.
Values come from an in-process snapshot of the ``feature_flags`` table that is
reloaded once it is older than ``FEATURE_FLAG_CACHE_TTL`` seconds.

The cache takes no lock. Concurrent callers that see an expired snapshot each
reload on their own and the last successful reload wins. Every reload swaps in
a brand-new snapshot object, so a reader always sees one complete map.
"""
import enum
import logging
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional

from prometheus_client import Counter
from sqlalchemy.orm import Session

from app.config import settings
from app.models.feature_flag import FeatureFlag

logger = logging.getLogger("marketplace.flags")

FLAG_RELOADS = Counter(
    "feature_flag_cache_reloads_total",
    "Feature flag cache reload attempts",
    ["outcome"],
)


class FEATURE_FLAG_KEYS:
    """Flag keys used across the platform. Phase 2 flags are wired but seeded off."""
    # Phase 1
    SMART_MATCHING = "isSmartMatchingEnabled"
    EMAIL_VERIFICATION_REQUIRED = "isEmailVerificationRequired"
    REVIEW_MODERATION = "isReviewModerationEnabled"
    MAINTENANCE_MODE = "isMaintenanceMode"

    # Phase 2
    REQUEST_LIMIT = "isRequestLimitEnabled"
    COMPANY_PAID_PLAN = "isCompanyPaidPlanActive"
    YELLOW_PAGES_FEATURED = "isYellowPagesFeatured"


class CacheState(str, enum.Enum):
    FRESH = "fresh"                    # served from a snapshot younger than the TTL
    STALE_FALLBACK = "stale_fallback"  # reload failed, previous snapshot served
    DEFAULT_EMPTY = "default_empty"    # reload failed and nothing was ever loaded


@dataclass(frozen=True)
class FlagLookup:
    key: str
    value: bool
    state: CacheState


@dataclass(frozen=True)
class FlagSnapshot:
    values: Mapping[str, bool]
    state: CacheState


@dataclass(frozen=True)
class _CacheEntry:
    values: Mapping[str, bool] = field(default_factory=lambda: MappingProxyType({}))
    loaded_at: Optional[float] = None  # None = expired
    ever_loaded: bool = False


FlagLoader = Callable[[], Mapping[str, bool]]


class FlagStore:
    """TTL cache over a flag loader.

    ``loader`` returns the full ``{key: value}`` table and may raise on storage
    errors. ``clock`` returns seconds and only needs to be monotonic.
    """

    def __init__(
        self,
        loader: FlagLoader,
        ttl: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self._ttl = ttl
        self._clock = clock
        self._entry = _CacheEntry()
        # Bumped by invalidate(); a load that straddles a bump is installed expired
        self._generation = 0

    @property
    def ttl(self) -> float:
        return self._ttl

    def _is_fresh(self, entry: _CacheEntry, now: float) -> bool:
        return entry.loaded_at is not None and now - entry.loaded_at < self._ttl

    def _refresh(self) -> tuple[_CacheEntry, CacheState]:
        entry = self._entry
        now = self._clock()
        if self._is_fresh(entry, now):
            return entry, CacheState.FRESH

        generation = self._generation
        try:
            values = dict(self._loader())
        except Exception:
            FLAG_RELOADS.labels(outcome="failed").inc()
            logger.exception("Failed to load feature flags, serving cached values")
            state = CacheState.STALE_FALLBACK if entry.ever_loaded else CacheState.DEFAULT_EMPTY
            return entry, state

        entry = _CacheEntry(
            values=MappingProxyType(values),
            loaded_at=now if generation == self._generation else None,
            ever_loaded=True,
        )
        self._entry = entry
        FLAG_RELOADS.labels(outcome="ok").inc()
        logger.debug("Feature flag cache reloaded (%d flags)", len(values))
        return entry, CacheState.FRESH

    def lookup(self, key: str) -> FlagLookup:
        entry, state = self._refresh()
        return FlagLookup(key=key, value=bool(entry.values.get(key, False)), state=state)

    def snapshot(self) -> FlagSnapshot:
        entry, state = self._refresh()
        return FlagSnapshot(values=entry.values, state=state)

    def get(self, key: str) -> bool:
        """Return the flag value; unknown keys are ``False``."""
        return self.lookup(key).value

    def get_all(self) -> Dict[str, bool]:
        return dict(self.snapshot().values)

    def invalidate(self) -> None:
        """Expire the snapshot so the next read reloads. Keeps the old values as fallback."""
        self._generation += 1
        entry = self._entry
        self._entry = _CacheEntry(values=entry.values, loaded_at=None, ever_loaded=entry.ever_loaded)


# ═══════════════════════════════════════════
#  Process-wide store
# ═══════════════════════════════════════════

def load_flags_from_db() -> Dict[str, bool]:
    from app.db.session import SessionLocal

    db = SessionLocal()
    try:
        rows = db.query(FeatureFlag.key, FeatureFlag.value).all()
        return {key: bool(value) for key, value in rows}
    finally:
        db.close()


flag_store = FlagStore(loader=load_flags_from_db, ttl=settings.FEATURE_FLAG_CACHE_TTL)


def get_feature_flag(key: str) -> bool:
    return flag_store.get(key)


def get_all_feature_flags() -> Dict[str, bool]:
    return flag_store.get_all()


def invalidate_flag_cache() -> None:
    flag_store.invalidate()


def is_request_limit_active() -> bool:
    """Users get a capped number of free requests per month."""
    return get_feature_flag(FEATURE_FLAG_KEYS.REQUEST_LIMIT)


def is_paid_plan_active() -> bool:
    """Some company features require a paid subscription."""
    return get_feature_flag(FEATURE_FLAG_KEYS.COMPANY_PAID_PLAN)


def is_yellow_pages_featured_active() -> bool:
    return get_feature_flag(FEATURE_FLAG_KEYS.YELLOW_PAGES_FEATURED)


# ═══════════════════════════════════════════
#  Admin management
# ═══════════════════════════════════════════

class FlagExistsError(Exception):
    pass


def list_flags(db: Session, category: Optional[str] = None) -> List[FeatureFlag]:
    query = db.query(FeatureFlag)
    if category:
        query = query.filter(FeatureFlag.category == category)
    return query.order_by(FeatureFlag.category, FeatureFlag.key).all()


def get_flag(db: Session, key: str) -> Optional[FeatureFlag]:
    return db.query(FeatureFlag).filter(FeatureFlag.key == key).first()


def create_flag(
    db: Session,
    *,
    key: str,
    value: bool = False,
    description: str = "",
    category: str = "general",
    store: Optional[FlagStore] = None,
) -> FeatureFlag:
    if get_flag(db, key) is not None:
        raise FlagExistsError(key)

    flag = FeatureFlag(key=key, value=value, description=description, category=category)
    db.add(flag)
    db.commit()
    db.refresh(flag)
    (store or flag_store).invalidate()
    logger.info("Feature flag created: %s=%s", key, value)
    return flag


def update_flag(
    db: Session,
    flag: FeatureFlag,
    changes: Dict[str, object],
    store: Optional[FlagStore] = None,
) -> FeatureFlag:
    for attr, val in changes.items():
        setattr(flag, attr, val)
    db.commit()
    db.refresh(flag)
    (store or flag_store).invalidate()
    logger.info("Feature flag updated: %s=%s", flag.key, flag.value)
    return flag


def delete_flag(db: Session, flag: FeatureFlag, store: Optional[FlagStore] = None) -> None:
    key = flag.key
    db.delete(flag)
    db.commit()
    (store or flag_store).invalidate()
    logger.info("Feature flag deleted: %s", key)
