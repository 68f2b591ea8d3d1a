"""Reservation notifications: business-event routing and the reminder sweep."""
