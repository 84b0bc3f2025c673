from gatehouse.models.amenity import Amenity
from gatehouse.models.booking import Booking, BookingStatus
from gatehouse.models.slot_claim import SlotClaim
from gatehouse.models.visitor_pass import VisitorPass, PassStatus
from gatehouse.models.audit_event import AuditEvent

__all__ = [
    "Amenity",
    "Booking", "BookingStatus",
    "SlotClaim",
    "VisitorPass", "PassStatus",
    "AuditEvent",
]
