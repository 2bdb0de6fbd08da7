from pydantic import BaseModel, Field

class ConversionCreate(BaseModel):
    """Schema for recording a conversion via POST /conversions."""
    visitor_id: str
    value: float | None = Field(default=None, ge=0, description="Optional monetary value of the conversion.")

class ConversionTaskResponse(BaseModel):
    status: str
    task_id: str
