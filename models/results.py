from pydantic import BaseModel, Field
from enum import Enum
import datetime as dt

class RecommendedAction(str, Enum):
    CONTINUE = "continue"
    STOP_WINNER = "stop_winner"
    STOP_INCONCLUSIVE = "stop_inconclusive"
    # Only ever set through an explicit override, the advisor never picks it on its own
    EXTEND = "extend"

class ResultCreate(BaseModel):
    """Daily rollup for one variant, produced by the event-tracking side."""
    variant_id: int
    date: dt.date
    visitors: int = Field(default=0, ge=0)
    conversions: int = Field(default=0, ge=0)
    revenue: float = Field(default=0.0, ge=0)
    bounce_rate: float | None = Field(default=None, ge=0, le=100)
    avg_time_on_page: int | None = Field(default=None, ge=0)

class ResultResponse(ResultCreate):
    id: int
    experiment_id: int

    class Config:
        from_attributes = True

class VariantSignificance(BaseModel):
    """Output contract of a significance calculator, one entry per variant."""
    variant_id: int
    conversion_rate: float # percentage
    confidence: float = Field(..., ge=0, le=100)
    is_significant: bool

class VariantStats(BaseModel):
    """Lifetime statistics for a single variant."""
    variant_id: int
    variant_name: str
    is_control: bool
    conversion_rate: float
    confidence: float
    is_significant: bool
    # Unset for the control, and for everyone when the control rate is zero
    improvement: float | None = None
    total_visitors: int
    total_conversions: int
    total_revenue: float
    # Converted assignments recorded by the engine itself, lifetime
    attributed_conversions: int = 0

class ExperimentAnalysis(BaseModel):
    """Schema returned by GET /experiments/{id}/analysis."""
    experiment_id: int
    winner: int | None = None
    winner_name: str | None = None
    confidence: float
    sample_size_met: bool
    total_visitors: int
    recommended_action: RecommendedAction
    insights: list[str]
    stats: list[VariantStats]
    report_generated_at: dt.datetime
