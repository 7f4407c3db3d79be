"""
Pydantic schemas for request/response validation.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


class UserRole(str, Enum):
    """Portal user roles."""

    AGENT = "agent"
    CLIENT = "client"


# ---------------------------------------------------------------------------
# Report payload (output of the normalizer)
# ---------------------------------------------------------------------------

class TitledItem(BaseModel):
    """A ``{title, content}`` entry (red-light items, diet rules, lifestyle)."""

    title: str = ""
    content: str = ""


class IntegrativeStrategy(BaseModel):
    western_analysis: str = ""
    western_strategy: str = ""
    tcm_analysis: str = ""
    tcm_strategy: str = ""


class SeasonalGuidance(BaseModel):
    february: str = ""
    march: str = ""


class MenuMeal(BaseModel):
    content: str = ""
    calories: str = ""


class ProductRecommendation(BaseModel):
    line: str = ""
    name: str = ""
    reason: str = ""
    principle: str = ""


class ReportPayload(BaseModel):
    """Fully normalized wellness report; every leaf is a string."""

    goal: str = ""
    intro_title: str = ""
    intro_paragraphs: List[str] = Field(default_factory=list)
    integrative_strategy: IntegrativeStrategy = Field(default_factory=IntegrativeStrategy)
    red_light_items: List[TitledItem] = Field(default_factory=list)
    green_light_list: List[str] = Field(default_factory=list)
    diet_rules: List[TitledItem] = Field(default_factory=list)
    lifestyle_solutions: List[TitledItem] = Field(default_factory=list)
    seasonal_guidance: SeasonalGuidance = Field(default_factory=SeasonalGuidance)
    # week label -> "Day N" -> meal label -> meal
    two_week_menu: Dict[str, Dict[str, Dict[str, MenuMeal]]] = Field(default_factory=dict)
    product_intro: str = ""
    product_recommendations: List[ProductRecommendation] = Field(default_factory=list)
    conclusion: str = ""


class ReportMeta(BaseModel):
    """Presentation data shown alongside a report."""

    client_name: str = ""
    client_phone: str = ""
    strategy_text: str = ""
    strategy_color: str = "#27ae60"
    diagnosis_summary: str = ""
    date_text: str = ""
    logo: Optional[str] = None  # base64 data URL


# ---------------------------------------------------------------------------
# Diagnosis / generation requests
# ---------------------------------------------------------------------------

class ScoredItem(BaseModel):
    name: str = Field(..., min_length=1)
    score: int = Field(..., ge=0, le=100)


class DiagnosisRequest(BaseModel):
    """Structured diagnosis input used to build the generation prompt."""

    client_name: str = ""
    client_phone: str = ""
    primary_organ: ScoredItem
    other_organs: List[ScoredItem] = Field(default_factory=list)
    constitutions: List[ScoredItem] = Field(default_factory=list)
    logo: Optional[str] = None
    model: Optional[str] = None
    timeout_ms: Optional[int] = Field(None, gt=0)


class DiagnosisResponse(BaseModel):
    report: ReportPayload
    meta: ReportMeta
    finish_reason: Optional[str] = None


class AIGenerateRequest(BaseModel):
    """Raw prompt passthrough."""

    prompt: str = Field(..., min_length=1)
    model: Optional[str] = None
    timeout_ms: Optional[int] = Field(None, gt=0)


class ExportRequest(BaseModel):
    """Report to export; ``report`` may be any raw shape and is normalized."""

    report: Dict[str, Any]
    meta: ReportMeta = Field(default_factory=ReportMeta)


class PrintSummaryRequest(BaseModel):
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    organs: List[str] = Field(default_factory=list)
    constitutions: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Store records
# ---------------------------------------------------------------------------

class ClientResponse(BaseModel):
    id: int
    name: str
    role: UserRole

    model_config = ConfigDict(from_attributes=True)


class DailyLogCreate(BaseModel):
    """Schema for saving a daily log."""

    user_id: int = Field(..., gt=0)
    date: str = Field(..., min_length=1)
    breakfast_img: Optional[str] = None
    lunch_img: Optional[str] = None
    dinner_img: Optional[str] = None
    sleep_start: Optional[str] = None
    sleep_end: Optional[str] = None
    water_cups: Optional[int] = Field(None, ge=0)
    coffee: bool = False
    notes: Optional[str] = None


class DailyLogResponse(BaseModel):
    id: int
    user_id: int
    date: str
    breakfast_img: Optional[str] = None
    lunch_img: Optional[str] = None
    dinner_img: Optional[str] = None
    sleep_start: Optional[str] = None
    sleep_end: Optional[str] = None
    water_cups: Optional[int] = None
    coffee: int = 0
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ReportSaveRequest(BaseModel):
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    diagnosis: Optional[str] = None
    content: Any = None


class ReportRecordResponse(BaseModel):
    id: int
    client_name: str
    client_phone: str
    diagnosis: str
    content: str
    created_at: str

    model_config = ConfigDict(from_attributes=True)


class SaveResponse(BaseModel):
    success: bool = True
    id: Optional[int] = None


class HealthCheckResponse(BaseModel):
    """Schema for health check response."""

    status: str
    store: str
    persistent_store: bool
    gemini_configured: bool
    timestamp: datetime
