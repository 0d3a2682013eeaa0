"""
Adapters layer - Booking stores and credential storage.
"""

from .credentials import CredentialStore
from .memory_store import InMemoryBookingStore
from .rest_store import RestBookingStore

__all__ = ["CredentialStore", "InMemoryBookingStore", "RestBookingStore"]
