"""
Error taxonomy for the scheduling core
Business errors abort the request and roll back; delivery errors are recorded only
"""


class HudumaError(Exception):
    """Base class for all front-desk errors"""


class ValidationError(HudumaError):
    """Bad input shape or a date/slot outside the booking policy"""


class SlotConflict(HudumaError):
    """The requested slot is no longer available"""


class InvalidTransition(HudumaError):
    """Operation not allowed from the appointment's current status"""

    def __init__(self, operation: str, status: str):
        self.operation = operation
        self.status = status
        super().__init__(f"Cannot {operation} an appointment that is {status}")


class NotFound(HudumaError):
    """Referenced record does not exist"""

    def __init__(self, kind: str, record_id):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} not found")


class PermissionDenied(HudumaError):
    """Actor lacks the role (or ownership) the operation requires"""


class InvalidConfiguration(HudumaError):
    """Centre operating hours or slot duration cannot produce slots"""


class NotificationDeliveryError(HudumaError):
    """A channel failed to hand the message to its provider"""
