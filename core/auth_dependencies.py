"""
FastAPI Authentication Dependencies for Microservices

Authentication happens at the gateway; services receive the verified
identity as headers and only read them.
"""

from dataclasses import dataclass
from typing import Optional
import logging

from fastapi import Header, HTTPException, status

logger = logging.getLogger(__name__)

VALID_ROLES = ("customer", "vendor", "partner")


@dataclass(frozen=True)
class Identity:
    """Caller identity forwarded by the gateway"""
    user_id: str
    role: Optional[str] = None


async def optional_identity(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
) -> Optional[Identity]:
    """
    Optional identity: anonymous callers (e.g. internal tools) get None.

    Usage:
        @app.post("/api/resource")
        async def handler(identity: Optional[Identity] = Depends(optional_identity)):
            ...
    """
    if not x_user_id:
        return None

    role = x_user_role.lower() if x_user_role else None
    if role is not None and role not in VALID_ROLES:
        logger.warning(f"Rejected unknown role header '{x_user_role}' for user {x_user_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown role: {x_user_role}"
        )
    return Identity(user_id=x_user_id, role=role)


async def require_identity(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
) -> Identity:
    """Identity dependency that rejects anonymous callers with 401"""
    identity = await optional_identity(x_user_id, x_user_role)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User authentication required"
        )
    return identity


__all__ = [
    "Identity",
    "VALID_ROLES",
    "optional_identity",
    "require_identity",
]
