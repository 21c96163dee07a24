from tablebook.services.availability import branch_availability, slot_availability
from tablebook.services.booking_service import BookingRequest, change_status, create_booking
from tablebook.services.materializer import materialize
from tablebook.services.slot_generator import bookable_times, generate_slots

__all__ = [
    "BookingRequest",
    "bookable_times",
    "branch_availability",
    "change_status",
    "create_booking",
    "generate_slots",
    "materialize",
    "slot_availability",
]
