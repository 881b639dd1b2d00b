"""Request context for trip access enforcement."""

from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """Authenticated caller identity.

    Trip access is resolved per operation, so the context carries only who
    is calling, not what they may touch.
    """

    user_id: str
