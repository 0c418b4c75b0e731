"""Salon and business-hours models (fields used by the queue engine)."""

from datetime import datetime, time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Salon(BaseModel):
    """Salon model."""

    id: Optional[str] = None
    name: str
    owner_id: Optional[str] = None
    is_active: bool = True
    avg_service_time: Optional[int] = Field(
        default=None, ge=0, description="Average service time in minutes"
    )
    max_queue_size: Optional[int] = Field(default=None, ge=1)
    accepts_walkins: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Glow Studio",
                "is_active": True,
                "avg_service_time": 30,
                "max_queue_size": 20,
                "accepts_walkins": True,
            }
        },
    )


class SalonHours(BaseModel):
    """Opening hours of a salon for one weekday."""

    salon_id: str
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Sunday")
    open_time: time
    close_time: time
    is_closed: bool = False
