"""Database and schema models for the TCM report portal."""
from tcm_portal.models.database_models import (
    User,
    DailyLog,
    Report,
)
from tcm_portal.models.schemas import (
    UserRole,
    ReportPayload,
    ReportMeta,
    MenuMeal,
    DiagnosisRequest,
    ClientResponse,
    DailyLogCreate,
    DailyLogResponse,
    ReportRecordResponse,
    HealthCheckResponse,
)

__all__ = [
    # Database models
    "User",
    "DailyLog",
    "Report",
    # Pydantic schemas
    "UserRole",
    "ReportPayload",
    "ReportMeta",
    "MenuMeal",
    "DiagnosisRequest",
    "ClientResponse",
    "DailyLogCreate",
    "DailyLogResponse",
    "ReportRecordResponse",
    "HealthCheckResponse",
]
