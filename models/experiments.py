from pydantic import BaseModel, Field
from typing import Any, Literal
from datetime import datetime

ExperimentStatus = Literal["draft", "running", "paused", "completed", "archived"]
ExperimentType = Literal["visual", "content", "layout", "pricing", "feature"]

# --- Pydantic Models for Requests/Responses ---

class VariantCreate(BaseModel):
    """Defines a variant and its traffic weight."""
    name: str = Field(..., description="The name of the variant (e.g., 'red_button').")
    description: str | None = None
    is_control: bool = False
    traffic_percentage: float = Field(..., ge=0, le=100, description="Share of experiment traffic (e.g., 50.0).")
    config: dict[str, Any] = Field(default_factory=dict, description="Opaque payload rendered by the site-serving layer.")

class ExperimentCreate(BaseModel):
    """Schema for creating a new experiment."""
    name: str
    description: str | None = None
    type: ExperimentType | None = None
    metric: str = Field(..., description="Target metric name (e.g., 'purchase').")
    traffic_allocation: float = Field(default=50.0, ge=0, le=100)
    minimum_sample_size: int = Field(default=1000, ge=0)
    confidence_threshold: float = Field(default=95.0, gt=0, le=100)
    created_by: str | None = None
    variants: list[VariantCreate]

class VariantResponse(BaseModel):
    id: int
    experiment_id: int
    name: str
    description: str | None = None
    is_control: bool
    traffic_percentage: float
    config: dict[str, Any]

    class Config:
        from_attributes = True

class ExperimentResponse(BaseModel):
    id: int
    tenant_id: str
    name: str
    description: str | None = None
    status: ExperimentStatus
    type: ExperimentType | None = None
    metric: str
    traffic_allocation: float
    minimum_sample_size: int
    confidence_threshold: float
    start_date: datetime | None = None
    end_date: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True

class ExperimentDetailResponse(ExperimentResponse):
    variants: list[VariantResponse]

class StatusUpdate(BaseModel):
    status: ExperimentStatus

class ExperimentAssignmentResponse(BaseModel):
    """Schema returned by GET /assignment/{visitor_id}."""
    experiment_id: int
    visitor_id: str
    variant_id: int
    variant_name: str
    is_control: bool
    config: dict[str, Any]

class AssignmentResponse(BaseModel):
    id: int
    experiment_id: int
    variant_id: int
    visitor_id: str
    assigned_at: datetime
    converted: bool
    conversion_value: float | None = None

    class Config:
        from_attributes = True

class VisitorExperimentResponse(BaseModel):
    experiment: ExperimentResponse
    variant: VariantResponse
