"""Utility helpers for the reservation core."""
