"""TripWeaver: fairness-aware group trip itinerary optimization."""

__version__ = "0.1.0"
