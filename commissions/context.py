"""
Actor context passed explicitly into every mutating engine call.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ActorContext:
    """
    The validated caller of an engine operation.

    The hosting layer authenticates and checks authority before calling
    the engine; the engine only records who acted.
    """

    user_id: int
    authority_level: int = 1
    ip_address: Optional[str] = None
