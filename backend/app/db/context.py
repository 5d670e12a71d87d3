"""Request context for ownership enforcement."""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class RequestContext:
    """Request context containing the calling agent's identity.

    Every document, summary version and settings query is filtered by user_id.
    """

    user_id: UUID
