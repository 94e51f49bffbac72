"""Infrastructure layer exports."""

from .inventory import InventoryApiError, InventoryClient, parse_error
from .profiles import InMemoryProfileRepository, JsonProfileRepository, ProfileRepository

__all__ = [
    "InMemoryProfileRepository",
    "InventoryApiError",
    "InventoryClient",
    "JsonProfileRepository",
    "ProfileRepository",
    "parse_error",
]
