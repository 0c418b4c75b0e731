"""Booking models for online bookings and walk-ins."""

from datetime import date, datetime, time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from utils.constants import WALKIN_DEFAULT_DURATION


class BookingStatus(str, Enum):
    """Booking status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


ACTIVE_BOOKING_STATUSES = (
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.IN_PROGRESS,
)

TERMINAL_BOOKING_STATUSES = (
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
    BookingStatus.REJECTED,
)


class PaymentStatus(str, Enum):
    """Payment status of the prepaid booking fee."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class Booking(BaseModel):
    """Booking model."""

    id: Optional[str] = None
    salon_id: str = Field(..., description="Salon ID (Supabase UUID)")
    customer_id: Optional[str] = Field(
        default=None, description="Customer ID; None for walk-ins"
    )
    service_id: str
    party_size: int = Field(default=1, ge=1)
    companions: List[str] = Field(default_factory=list)
    booking_date: date
    booking_time: time
    duration: int = Field(default=30, ge=0, description="Duration in minutes")
    total_price: float = Field(default=0, ge=0)
    status: BookingStatus = BookingStatus.PENDING
    is_walk_in: bool = False
    notes: Optional[str] = None
    contact_phone: Optional[str] = None
    cancellation_reason: Optional[str] = None
    is_no_show: bool = False
    arrival_deadline: Optional[datetime] = None
    payment_status: Optional[PaymentStatus] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(
        use_enum_values=True,
        json_schema_extra={
            "example": {
                "salon_id": "uuid-here",
                "customer_id": "uuid-here",
                "service_id": "uuid-here",
                "booking_date": "2026-01-15",
                "booking_time": "10:30:00",
                "status": "pending",
                "total_price": 250,
            }
        },
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_BOOKING_STATUSES


class BookingCreate(BaseModel):
    """Online booking creation request, submitted by a customer."""

    customer_id: str
    salon_id: str
    service_id: str
    party_size: int = Field(default=1, ge=1)
    companions: List[str] = Field(default_factory=list)
    contact_phone: Optional[str] = None
    total_price: float = Field(default=0, ge=0)
    duration: int = Field(default=30, ge=0)
    booking_date: Optional[date] = None
    booking_time: Optional[time] = None
    notes: Optional[str] = None


class WalkInCreate(BaseModel):
    """Walk-in customer added by the salon owner."""

    salon_id: str
    service_id: str
    name: str = Field(..., min_length=1)
    phone: Optional[str] = None
    total_price: float = Field(default=0, ge=0)
    duration: int = Field(default=WALKIN_DEFAULT_DURATION, ge=0)
