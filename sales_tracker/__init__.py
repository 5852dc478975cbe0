"""Persistence layer for order-booker sales tracking."""

__version__ = "0.1.0"
