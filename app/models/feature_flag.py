"""Persisted boolean feature flags.

The table is the source of truth; request paths read it through the
in-process cache in ``app.services.feature_flags``. A missing row means the
flag is off.
"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Uuid, func
from app.db.base_class import Base


class FeatureFlag(Base):
    """Platform-wide on/off toggle, managed by administrators."""
    __tablename__ = "feature_flags"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    key = Column(String(100), unique=True, nullable=False, index=True)  # e.g. "isSmartMatchingEnabled"
    value = Column(Boolean, nullable=False, default=False)
    description = Column(String, default="")
    category = Column(String(50), nullable=False, default="general", index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<FeatureFlag {self.key}={self.value}>"
