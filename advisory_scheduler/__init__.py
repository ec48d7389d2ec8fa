"""Booking scheduler for advisory and training sessions."""

__version__ = "0.1.0"
