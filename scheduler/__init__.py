"""Task scheduler for arrival-deadline expiry."""

from .expiry import expire_overdue_arrivals, setup_scheduler, shutdown_scheduler

__all__ = ["expire_overdue_arrivals", "setup_scheduler", "shutdown_scheduler"]
