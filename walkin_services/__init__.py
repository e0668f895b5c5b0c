from .allocator import AllocationOutcome, AllocationRequest, AllocationResult, Allocator
from .backfill import BookingRequest, WriteMode, classify, prepare
from .blocks import BlockRegistry
from .booking import ACTIVE_STATUSES, Actor, ActorRole, BlockedSlot, Booking, BookingStatus, WaitlistEntry
from .capacity import CapacityLedger
from .clock import OrganizationClock
from .config import Settings, load_settings
from .errors import (
	BagNumberRequiredError,
	BookingError,
	BookingNotFoundError,
	BookingStorageError,
	ConflictError,
	DuplicateBookingError,
	InvalidSlotError,
	InvalidTransitionError,
	PastDateWriteError,
	PermissionDeniedError,
	SlotBlockedError,
	SlotFullError,
)
from .service import BookingService, SlotAvailability
from .slots import DayClass, Modality, ServiceSlot, ServiceType, generate_slots
from .yaml_store import BookingYamlRepository

__all__ = [
	"AllocationOutcome",
	"AllocationRequest",
	"AllocationResult",
	"Allocator",
	"BookingRequest",
	"WriteMode",
	"classify",
	"prepare",
	"BlockRegistry",
	"ACTIVE_STATUSES",
	"Actor",
	"ActorRole",
	"BlockedSlot",
	"Booking",
	"BookingStatus",
	"WaitlistEntry",
	"CapacityLedger",
	"OrganizationClock",
	"Settings",
	"load_settings",
	"BagNumberRequiredError",
	"BookingError",
	"BookingNotFoundError",
	"BookingStorageError",
	"ConflictError",
	"DuplicateBookingError",
	"InvalidSlotError",
	"InvalidTransitionError",
	"PastDateWriteError",
	"PermissionDeniedError",
	"SlotBlockedError",
	"SlotFullError",
	"BookingService",
	"SlotAvailability",
	"DayClass",
	"Modality",
	"ServiceSlot",
	"ServiceType",
	"generate_slots",
	"BookingYamlRepository",
]
