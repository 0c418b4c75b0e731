"""
Application-wide constants.
Centralizes magic numbers and fixed strings.
"""

# Owner input limits
MIN_AVG_SERVICE_TIME = 0
MAX_AVG_SERVICE_TIME = 180  # minutes
MAX_NOTES_LENGTH = 1000
MAX_REASON_LENGTH = 500

# Walk-ins
WALKIN_DEFAULT_DURATION = 30  # minutes

# Default reasons recorded when the owner gives none
DEFAULT_REJECT_REASON = "Booking rejected by salon"
DEFAULT_NO_SHOW_REASON = "Marked as no-show"
DEFAULT_CANCEL_REASON = "Cancelled by customer"
ARRIVAL_EXPIRED_REASON = "Arrived too late to serve"
WALKIN_QUEUE_FAILED_REASON = "Could not be added to the queue"

NO_SHOW_NOTE = "Marked as no-show"

# Customer-facing status thresholds (minutes remaining)
ALMOST_READY_MINUTES = 5
GET_READY_MINUTES = 20
