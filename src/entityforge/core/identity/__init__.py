"""Entity identity functionality: identity values and auto-id allocation."""

from entityforge.core.identity.allocator import AutoIdAllocator
from entityforge.core.identity.models import AUTO_ID_START, IdCounter, IdentityKey, IdValue

__all__ = [
    "AUTO_ID_START",
    "AutoIdAllocator",
    "IdCounter",
    "IdentityKey",
    "IdValue",
]
