from gatehouse.schemas.amenity import (
    SlotDefinition, AmenityCreate, AmenityUpdate, AmenityResponse, AvailabilityResponse,
)
from gatehouse.schemas.booking import BookingCreate, BookingReject, BookingFilters, BookingResponse
from gatehouse.schemas.visitor_pass import PassCreate, PassVerifyRequest, PassResponse, VerificationResponse
from gatehouse.schemas.audit_event import AuditEventResponse

__all__ = [
    "SlotDefinition", "AmenityCreate", "AmenityUpdate", "AmenityResponse", "AvailabilityResponse",
    "BookingCreate", "BookingReject", "BookingFilters", "BookingResponse",
    "PassCreate", "PassVerifyRequest", "PassResponse", "VerificationResponse",
    "AuditEventResponse",
]
