"""
Itinerary models - Structured trip state kept in sync with the assistant.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from enum import Enum


class TravelType(str, Enum):
    """Kind of trip."""
    LEISURE = "Leisure"
    WORK = "Work"
    HONEYMOON = "Honeymoon"
    ADVENTURE = "Adventure"
    FAMILY = "Family"
    UNSPECIFIED = "Unspecified"

    @classmethod
    def parse(cls, value) -> Optional["TravelType"]:
        """Case-insensitive lookup by value or name; None if unrecognized."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        wanted = value.strip().lower()
        for member in cls:
            if wanted in (member.value.lower(), member.name.lower()):
                return member
        return None


class ActivityCategory(str, Enum):
    """Fixed set of activity categories."""
    FLIGHT = "flight"
    ACCOMMODATION = "accommodation"
    DINING = "dining"
    ACTIVITY = "activity"
    TRANSIT = "transit"
    LOGISTICS = "logistics"

    @classmethod
    def normalize(cls, value) -> "ActivityCategory":
        """Map any incoming value onto the enumeration, defaulting to ACTIVITY."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.ACTIVITY


class BookingStatus(str, Enum):
    """Booking state of an activity."""
    BOOKED = "booked"
    PENDING = "pending"
    SUGGESTED = "suggested"


class _WireModel(BaseModel):
    """Accepts the assistant's camelCase keys as well as field names."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TravelerInfo(_WireModel):
    """Party size."""
    adults: int = Field(default=1, ge=0)
    children: int = Field(default=0, ge=0)
    infants: int = Field(default=0, ge=0)


class Activity(_WireModel):
    """A single entry in a day plan."""
    id: Optional[str] = Field(None, description="Stable id, when the assistant provides one")
    time: str = Field(default="", description="Start time, e.g. '10:00 AM'")
    end_time: Optional[str] = Field(None, alias="endTime")
    title: str = Field(default="", description="e.g. 'Flight to Paris' or 'Louvre Museum'")
    sub_title: Optional[str] = Field(None, alias="subTitle")
    description: str = ""
    location: str = ""
    category: ActivityCategory = ActivityCategory.ACTIVITY
    cost: Optional[str] = Field(None, description="e.g. '$150', 'Free', '~$50/person'")
    notes: Optional[str] = None
    booking_status: Optional[BookingStatus] = Field(None, alias="bookingStatus")
    image_query: Optional[str] = Field(None, alias="imageQuery")
    is_locked: Optional[bool] = Field(None, alias="isLocked")

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, v):
        return ActivityCategory.normalize(v)

    @field_validator("booking_status", mode="before")
    @classmethod
    def drop_unknown_status(cls, v):
        if v is None or isinstance(v, BookingStatus):
            return v
        try:
            return BookingStatus(str(v).strip().lower())
        except ValueError:
            return None

    @property
    def is_protected(self) -> bool:
        """Locked or booked activities must survive later updates."""
        return bool(self.is_locked) or self.booking_status == BookingStatus.BOOKED


class DayPlan(_WireModel):
    """Plan for a single day."""
    date: str = Field(default="", description="Day label or date, e.g. 'Day 1' or '2024-05-12'")
    day_title: Optional[str] = Field(None, alias="dayTitle")
    activities: list[Activity] = Field(default_factory=list)


class Itinerary(_WireModel):
    """The trip plan shown next to the chat."""
    title: str = "New Trip"
    destination: str = ""
    dates: str = ""
    travel_type: TravelType = Field(default=TravelType.UNSPECIFIED, alias="travelType")
    travelers: TravelerInfo = Field(default_factory=TravelerInfo)
    days: list[DayPlan] = Field(default_factory=list)
    total_estimated_cost: Optional[str] = Field(None, alias="totalEstimatedCost")

    def find_day(self, date: str) -> Optional[DayPlan]:
        """Return the day with the given label, if present."""
        for day in self.days:
            if day.date == date:
                return day
        return None

    def to_display_dict(self) -> dict:
        """Convert to a JSON-friendly dictionary for the API."""
        return self.model_dump(mode="json")
