"""
Authorization interceptor for booking operations.

The identity provider resolves the caller once into an ``ActingUser`` which
is passed explicitly as the first argument of every service operation. The
``requires_role`` decorator performs the role check in one place.
"""

import functools
import logging
from typing import Any, Callable, Iterable, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .errors import Unauthorized
from .models.enums import EMPLOYEE_ROLES, UserRole

logger = logging.getLogger(__name__)


class ActingUser(BaseModel):
    """Authenticated caller as resolved by the identity provider."""
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(..., description="User identifier")
    role: UserRole = Field(..., description="Resolved role")

    @property
    def is_employee(self) -> bool:
        return self.role in EMPLOYEE_ROLES


def ensure_role(acting_user: Optional[ActingUser], allowed: Iterable[UserRole]) -> ActingUser:
    """
    Check that the caller is authenticated and holds one of the allowed roles.

    Raises:
        Unauthorized: If the caller is missing or the role is not allowed
    """
    if not isinstance(acting_user, ActingUser):
        raise Unauthorized("Unauthorized: User not authenticated")

    allowed = frozenset(allowed)
    if acting_user.role not in allowed:
        logger.info(f"Rejected {acting_user.role.value} user {acting_user.id}")
        if allowed == EMPLOYEE_ROLES:
            raise Unauthorized("Unauthorized: Agent or admin role required")
        raise Unauthorized(f"Unauthorized: {acting_user.role.value} role not permitted")

    return acting_user


def requires_role(*roles: UserRole) -> Callable:
    """
    Decorate an async service method whose first argument is the ActingUser.

    With no roles given, only agents and admins are allowed.
    """
    allowed = frozenset(roles) if roles else EMPLOYEE_ROLES

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(self, acting_user: ActingUser, *args: Any, **kwargs: Any) -> Any:
            ensure_role(acting_user, allowed)
            return await func(self, acting_user, *args, **kwargs)

        wrapper.allowed_roles = allowed
        return wrapper

    return decorator


__all__ = ["ActingUser", "ensure_role", "requires_role"]
