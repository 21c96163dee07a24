"""
Centralized constants for booking statuses, slot policy and the scheduler.

Change job IDs, status names or defaults here instead of scattering literals across
services, routes and main.
"""

# Scheduler job IDs (must match ids used in main.py add_job)
MATERIALIZE_JOB_ID = "materialize_time_slots"

# Booking statuses
BOOKING_STATUS_PENDING = "pending"
BOOKING_STATUS_CONFIRMED = "confirmed"
BOOKING_STATUS_ARRIVED = "arrived"
BOOKING_STATUS_COMPLETED = "completed"
BOOKING_STATUS_CANCELLED = "cancelled"

BOOKING_STATUSES = (
    BOOKING_STATUS_PENDING,
    BOOKING_STATUS_CONFIRMED,
    BOOKING_STATUS_ARRIVED,
    BOOKING_STATUS_COMPLETED,
    BOOKING_STATUS_CANCELLED,
)

# Bookings in these statuses hold seats and tables in their slot
ACTIVE_BOOKING_STATUSES = (
    BOOKING_STATUS_PENDING,
    BOOKING_STATUS_CONFIRMED,
    BOOKING_STATUS_ARRIVED,
)
TERMINAL_BOOKING_STATUSES = (BOOKING_STATUS_COMPLETED, BOOKING_STATUS_CANCELLED)

# Allowed status edges; anything not listed is rejected
BOOKING_TRANSITIONS: dict[str, tuple[str, ...]] = {
    BOOKING_STATUS_PENDING: (BOOKING_STATUS_CONFIRMED, BOOKING_STATUS_CANCELLED),
    BOOKING_STATUS_CONFIRMED: (BOOKING_STATUS_ARRIVED, BOOKING_STATUS_CANCELLED),
    BOOKING_STATUS_ARRIVED: (BOOKING_STATUS_COMPLETED,),
    BOOKING_STATUS_COMPLETED: (),
    BOOKING_STATUS_CANCELLED: (),
}

# Override types
OVERRIDE_TYPE_CLOSED = "closed"
OVERRIDE_TYPE_CAPACITY = "capacity"
OVERRIDE_TYPE_CUSTOM = "custom"
OVERRIDE_TYPES = (OVERRIDE_TYPE_CLOSED, OVERRIDE_TYPE_CAPACITY, OVERRIDE_TYPE_CUSTOM)

# Booking-settings defaults when a field is omitted on creation
DEFAULT_SLOT_INTERVAL_MINUTES = 90
DEFAULT_MAX_SEATS_PER_SLOT = 25
DEFAULT_MAX_TABLES_PER_SLOT = 10

# Caller types attached by the auth layer (X-User-Type)
USER_TYPE_USER = "user"
USER_TYPE_RESTAURANT = "restaurant"

# Hard caps so list responses stay bounded
MATERIALIZE_MAX_DAYS = 90
BOOKING_LIST_LIMIT = 500
