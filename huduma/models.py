"""
Type-safe domain models for the front desk
Uses dataclasses and enums for better type safety and IDE support
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional


class Role(str, Enum):
    """Actor roles resolved by the identity store"""
    CITIZEN = "citizen"
    STAFF = "staff"
    ADMIN = "admin"


class ServiceType(str, Enum):
    """Services a citizen can book"""
    ID_APPLICATION = "id_application"
    ID_REPLACEMENT = "id_replacement"
    ID_COLLECTION = "id_collection"


class AppointmentStatus(str, Enum):
    """Appointment lifecycle states"""
    PENDING = "pending"
    APPROVED = "approved"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


# Statuses that hold a slot; everything else is terminal
ACTIVE_STATUSES = (
    AppointmentStatus.PENDING,
    AppointmentStatus.APPROVED,
    AppointmentStatus.RESCHEDULED,
)


class NotificationChannel(str, Enum):
    SMS = "sms"
    EMAIL = "email"


class NotificationStatus(str, Enum):
    """Delivery states; only ever move forward"""
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


class NotificationEvent(str, Enum):
    """Events that trigger a citizen/applicant notification"""
    BOOKED = "booked"
    APPROVED = "approved"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"
    ID_READY = "id_ready"


class ApplicantStatus(str, Enum):
    REGISTERED = "registered"
    PROCESSING = "processing"
    READY = "ready"
    COLLECTED = "collected"


class DocumentType(str, Enum):
    NATIONAL_ID = "national_id"
    PASSPORT = "passport"
    VISA = "visa"
    BIRTH_CERTIFICATE = "birth_certificate"
    DRIVING_LICENSE = "driving_license"
    GOOD_CONDUCT_CERTIFICATE = "good_conduct_certificate"
    MARRIAGE_CERTIFICATE = "marriage_certificate"
    DEATH_CERTIFICATE = "death_certificate"


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as resolved by the identity store"""
    id: str
    roles: FrozenSet[Role] = field(default_factory=frozenset)

    def has_role(self, *roles: Role) -> bool:
        return any(role in self.roles for role in roles)

    @property
    def is_staff(self) -> bool:
        return self.has_role(Role.STAFF, Role.ADMIN)


@dataclass
class Slot:
    """One bookable time window at a centre on a given date"""
    time: str
    available: bool = True


@dataclass
class Recipient:
    """Where a notification goes"""
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class DeliveryResult:
    """Outcome of a successful channel send"""
    provider_message_id: Optional[str] = None


@dataclass
class QueueStatus:
    """Live queue information for one centre and day"""
    centre_id: int
    queue_date: str
    current_queue_number: int
    average_service_time_minutes: int
    appointments_today: int
