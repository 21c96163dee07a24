from tablebook.models.booking import Booking
from tablebook.models.booking_override import BookingOverride
from tablebook.models.booking_settings import BookingSettings
from tablebook.models.branch import Branch
from tablebook.models.slot_occupancy import SlotOccupancy
from tablebook.models.time_slot import TimeSlot

__all__ = [
    "Booking",
    "BookingOverride",
    "BookingSettings",
    "Branch",
    "SlotOccupancy",
    "TimeSlot",
]
