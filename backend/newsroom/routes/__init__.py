"""Route modules for the bookings backend."""

__all__ = [
    "bookings",
    "directory",
]
