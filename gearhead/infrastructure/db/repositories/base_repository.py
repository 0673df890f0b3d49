"""
Shared helpers for the repository layer.
"""

from typing import Optional, Union
from uuid import UUID


IdLike = Union[str, UUID]


def as_uuid(value: Optional[IdLike]) -> Optional[UUID]:
    """Coerce a string id (as carried in JWT claims and JSON bodies) to UUID."""
    if value is None or isinstance(value, UUID):
        return value
    return UUID(str(value))
