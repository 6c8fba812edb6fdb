"""
Domain errors raised by the booking and scheduling core.

HTTP mapping lives in main.py; services never raise HTTPException directly.
"""


class StudioDeskError(Exception):
    """Base class for domain errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(StudioDeskError):
    """Referenced studio, service, booking or invoice does not exist"""

    pass


class InvalidTransition(StudioDeskError):
    """Requested booking status change is not allowed from the current status"""

    def __init__(self, current_status, target_status):
        super().__init__(
            f"Cannot change booking status from {current_status.value} to {target_status.value}"
        )
        self.current_status = current_status
        self.target_status = target_status


class InvalidOperation(StudioDeskError):
    """Operation rejected by an explicit precondition (e.g. cancelling a completed booking)"""

    pass


class SlotConflict(StudioDeskError):
    """Candidate time overlaps an existing active booking"""

    def __init__(self, message: str, conflicting_booking_id=None):
        super().__init__(message)
        self.conflicting_booking_id = conflicting_booking_id


class SchedulingSkipped(StudioDeskError):
    """Internal signal: a job was intentionally not scheduled because its due time is moot"""

    pass


class DispatchFailure(StudioDeskError):
    """Notification send failed; retried by the job queue"""

    pass
