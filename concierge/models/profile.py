"""
User profile and trip-setup context.
These feed the system instruction and the opening request of a trip.
"""
from pydantic import BaseModel, Field
from typing import Optional, Literal
import uuid

from .itinerary import TravelerInfo


class LoyaltyCard(BaseModel):
    """A credit card or loyalty programme the user holds."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    provider: str = Field(..., description="e.g. 'Amex', 'Chase', 'Delta'")
    card_name: str = Field(..., description="e.g. 'Platinum', 'Sapphire Reserve'")
    points_balance: str = Field(default="0", description="e.g. '150,000'")


class UserProfile(BaseModel):
    """Preferences that shape every recommendation in a session."""
    loyalty_cards: list[LoyaltyCard] = Field(default_factory=list)


class TripLeg(BaseModel):
    """One hop of a multi-city route."""
    origin: str = ""
    destination: str = ""
    date: Optional[str] = None
    is_home: bool = False


class TripNeeds(BaseModel):
    """Which bookings the user wants help with."""
    flight: bool = False
    hotel: bool = False
    car: bool = False
    cruise: bool = False


class TripContext(BaseModel):
    """Everything the trip-setup form collects before the first request."""
    trip_type: Literal["Round Trip", "One Way", "Multi-City"] = "Round Trip"
    origin: str = ""
    destination: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    legs: list[TripLeg] = Field(default_factory=list)
    travelers: TravelerInfo = Field(default_factory=TravelerInfo)
    vibes: list[str] = Field(default_factory=list)
    needs: TripNeeds = Field(default_factory=TripNeeds)

    @property
    def is_multi_city(self) -> bool:
        return self.trip_type == "Multi-City"
