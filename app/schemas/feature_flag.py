"""Feature Flag schemas."""
from datetime import datetime
from typing import Dict, Optional
from uuid import UUID
from pydantic import BaseModel, Field

from app.services.feature_flags import CacheState


class FeatureFlagCreate(BaseModel):
    key: str = Field(min_length=1, max_length=100)
    value: bool
    description: str = ""
    category: str = "general"


class FeatureFlagUpdate(BaseModel):
    value: Optional[bool] = None
    description: Optional[str] = None
    category: Optional[str] = None


class FeatureFlag(BaseModel):
    id: UUID
    key: str
    value: bool
    description: Optional[str] = ""
    category: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FeatureFlagEvaluation(BaseModel):
    key: str
    enabled: bool
    cache_state: CacheState


class FeatureFlagSnapshot(BaseModel):
    flags: Dict[str, bool]
    cache_state: CacheState
