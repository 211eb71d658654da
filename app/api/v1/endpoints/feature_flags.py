"""Feature Flag management API.

Endpoints:
- GET    /feature-flags?category=   → list flags (admin)
- POST   /feature-flags             → create flag (admin)
- GET    /feature-flags/evaluate    → all cached values (any caller)
- GET    /feature-flags/{key}       → get single flag (admin)
- PUT    /feature-flags/{key}       → update flag (admin)
- DELETE /feature-flags/{key}       → delete flag (admin)
- GET    /feature-flags/{key}/evaluate → cached value of one flag (any caller)

Every write invalidates the in-process cache.
"""

from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api import deps
from app.schemas.feature_flag import (
    FeatureFlag,
    FeatureFlagCreate,
    FeatureFlagUpdate,
    FeatureFlagEvaluation,
    FeatureFlagSnapshot,
)
from app.services import feature_flags as flags_service
from app.services.feature_flags import FlagExistsError, FlagStore

router = APIRouter()


@router.get("/", response_model=List[FeatureFlag])
def list_feature_flags(
    category: Optional[str] = None,
    db: Session = Depends(deps.get_db),
    _: None = Depends(deps.require_admin),
) -> Any:
    return flags_service.list_flags(db, category=category)


@router.post("/", response_model=FeatureFlag, status_code=status.HTTP_201_CREATED)
def create_feature_flag(
    body: FeatureFlagCreate,
    db: Session = Depends(deps.get_db),
    store: FlagStore = Depends(deps.get_flag_store),
    _: None = Depends(deps.require_admin),
) -> Any:
    try:
        return flags_service.create_flag(
            db,
            key=body.key,
            value=body.value,
            description=body.description,
            category=body.category,
            store=store,
        )
    except FlagExistsError:
        raise HTTPException(status_code=409, detail=f"Flag '{body.key}' already exists")


@router.get("/evaluate", response_model=FeatureFlagSnapshot)
def evaluate_all_feature_flags(
    store: FlagStore = Depends(deps.get_flag_store),
) -> Any:
    snapshot = store.snapshot()
    return FeatureFlagSnapshot(flags=dict(snapshot.values), cache_state=snapshot.state)


@router.get("/{key}", response_model=FeatureFlag)
def get_feature_flag(
    key: str,
    db: Session = Depends(deps.get_db),
    _: None = Depends(deps.require_admin),
) -> Any:
    flag = flags_service.get_flag(db, key)
    if not flag:
        raise HTTPException(status_code=404, detail="Flag not found")
    return flag


@router.put("/{key}", response_model=FeatureFlag)
def update_feature_flag(
    key: str,
    body: FeatureFlagUpdate,
    db: Session = Depends(deps.get_db),
    store: FlagStore = Depends(deps.get_flag_store),
    _: None = Depends(deps.require_admin),
) -> Any:
    flag = flags_service.get_flag(db, key)
    if not flag:
        raise HTTPException(status_code=404, detail="Flag not found")

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    return flags_service.update_flag(db, flag, changes, store=store)


@router.delete("/{key}")
def delete_feature_flag(
    key: str,
    db: Session = Depends(deps.get_db),
    store: FlagStore = Depends(deps.get_flag_store),
    _: None = Depends(deps.require_admin),
) -> Any:
    flag = flags_service.get_flag(db, key)
    if not flag:
        raise HTTPException(status_code=404, detail="Flag not found")
    flags_service.delete_flag(db, flag, store=store)
    return {"ok": True}


@router.get("/{key}/evaluate", response_model=FeatureFlagEvaluation)
def evaluate_feature_flag(
    key: str,
    store: FlagStore = Depends(deps.get_flag_store),
) -> Any:
    result = store.lookup(key)
    return FeatureFlagEvaluation(key=key, enabled=result.value, cache_state=result.state)
