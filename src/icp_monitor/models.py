import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class AvailabilityEntry:
    """One open appointment slot block extracted from the page"""
    city: str
    building: str
    dates: str

    def fingerprint(self) -> str:
        """Stable identity used to suppress repeated notifications"""
        raw = "\x1f".join((self.city, self.building, self.dates))
        return hashlib.sha1(raw.encode("utf-8")).hexdigest()


class BookingState(str, Enum):
    """Steps of the booking form, in order"""
    START = "start"
    PROVINCE_SELECTED = "province_selected"
    PROCEDURE_SELECTED = "procedure_selected"
    CAPTCHA_RESOLVED = "captcha_resolved"
    FORM_FILLED = "form_filled"
    SLOT_SELECTED = "slot_selected"
    DONE = "done"
    NO_SLOTS = "no_slots"
    FAILED = "failed"


@dataclass
class BookingResult:
    """Outcome of one form-filling run"""
    state: BookingState
    message: str
    error: Optional[Exception] = None

    @property
    def success(self) -> bool:
        return self.state == BookingState.DONE
