from app.db.base_class import Base
from app.models.feature_flag import FeatureFlag
from app.models.health import HealthCheckResult, SlaReport
