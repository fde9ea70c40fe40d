"""Closed sets of values stored in string columns."""

from enum import Enum


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"


class HoldReason(str, Enum):
    CHECKOUT = "checkout"
    ADMIN_BLOCK = "admin_block"
    MAINTENANCE = "maintenance"


class RuleType(str, Enum):
    BASE = "base"
    SEASONAL = "seasonal"
    WEEKEND = "weekend"
    MIN_NIGHTS = "min_nights"
    DISCOUNT_LONG_STAY = "discount_long_stay"
    CLEANING_FEE = "cleaning_fee"
    SERVICE_FEE = "service_fee"
    TAT_RATE = "tat_rate"
    GET_RATE = "get_rate"
    COUNTY_TAX_RATE = "county_tax_rate"


class CouponType(str, Enum):
    PERCENT = "percent"
    FIXED = "fixed"


class Platform(str, Enum):
    AIRBNB = "airbnb"
    VRBO = "vrbo"
    BOOKING = "booking"
    HOMEAWAY = "homeaway"
    OTHER = "other"


class ExternalStatus(str, Enum):
    RESERVED = "reserved"
    BLOCKED = "blocked"
    TENTATIVE = "tentative"
    CANCELLED = "cancelled"


class SyncStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"


class BlockSource(str, Enum):
    BOOKING = "booking"
    HOLD = "hold"
    EXTERNAL = "external"
    BLACKOUT = "blackout"


class ReservationKind(str, Enum):
    BOOKING = "booking"
    HOLD = "hold"


# External rows in these statuses occupy the calendar when is_blocking is set
SLOT_HOLDING_STATUSES = (ExternalStatus.RESERVED.value, ExternalStatus.BLOCKED.value)
