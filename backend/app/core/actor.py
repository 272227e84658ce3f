"""
Actor and request context used for audit attribution.
"""

from dataclasses import dataclass
from typing import Optional

from backend.app.models.enums import ActorType


@dataclass(frozen=True)
class Actor:
    """Who performed a mutation."""
    id: Optional[int]
    name: Optional[str]
    type: ActorType = ActorType.USER

    @property
    def is_system(self) -> bool:
        return self.type == ActorType.SYSTEM


@dataclass(frozen=True)
class RequestContext:
    """Request metadata captured alongside audit rows."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    source: str = "api"


SYSTEM_ACTOR = Actor(id=None, name="system", type=ActorType.SYSTEM)
SYSTEM_CONTEXT = RequestContext(source="system")
