"""Role gate applied before mutations reach the catalog, identity store or borrowing service."""
from enum import Enum
from typing import Optional

from errors import Forbidden, Unauthorized
from schemas import Role


class Requirement(str, Enum):
    AUTHENTICATED = "authenticated"
    ADMIN = "admin"


def authorize(actor_role: Optional[Role], required: Requirement) -> bool:
    """Return True if an actor with actor_role may proceed; raise otherwise.

    A missing role means no authenticated identity and is always Unauthorized.
    """
    if actor_role is None:
        raise Unauthorized("Authentication required")
    if required is Requirement.AUTHENTICATED:
        return True
    if required is Requirement.ADMIN:
        if actor_role is Role.ADMIN:
            return True
        raise Forbidden("Admin access only")
    raise Forbidden("Unknown requirement")
