"""HTTP API for the itinerary concierge."""
from .routes import router

__all__ = ["router"]
