"""Customer models (fields used by the queue engine)."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class Customer(BaseModel):
    """Customer model."""

    id: str = Field(..., description="Auth user ID (Supabase UUID)")
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    cancellation_count: int = Field(default=0, ge=0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or "Customer"
