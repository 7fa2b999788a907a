"""Itinerary concierge: keeps a trip itinerary in sync with a tool-calling assistant."""
