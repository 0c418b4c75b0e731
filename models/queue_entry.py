"""Queue entry models for a salon's daily queue."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class QueueEntryStatus(str, Enum):
    """Queue entry status."""

    WAITING = "waiting"
    IN_SERVICE = "in_service"
    COMPLETED = "completed"


ACTIVE_QUEUE_STATUSES = (QueueEntryStatus.WAITING, QueueEntryStatus.IN_SERVICE)


class QueueEntry(BaseModel):
    """Queue entry model.

    ``position`` is the rank assigned when the entry joined (or was shifted by
    a priority walk-in). It is never compacted when earlier entries finish.
    """

    id: Optional[str] = None
    salon_id: str
    booking_id: str
    customer_id: Optional[str] = None
    position: int = Field(..., ge=1)
    status: QueueEntryStatus = QueueEntryStatus.WAITING
    check_in_time: Optional[datetime] = None
    service_start_time: Optional[datetime] = None
    service_end_time: Optional[datetime] = None
    estimated_wait_time: Optional[int] = None

    model_config = ConfigDict(
        use_enum_values=True,
        json_schema_extra={
            "example": {
                "salon_id": "uuid-here",
                "booking_id": "uuid-here",
                "position": 3,
                "status": "waiting",
            }
        },
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_QUEUE_STATUSES


class QueueEntryCreate(BaseModel):
    """Queue entry creation model. Position is assigned by the ordering engine."""

    salon_id: str
    booking_id: str
    customer_id: Optional[str] = None
    position: int = Field(default=1, ge=1)
    status: QueueEntryStatus = QueueEntryStatus.WAITING
    check_in_time: Optional[datetime] = None


class QueueEntryView(BaseModel):
    """Read model of an active entry with its derived live rank and wait."""

    entry: QueueEntry
    live_rank: int
    estimated_wait_minutes: int
