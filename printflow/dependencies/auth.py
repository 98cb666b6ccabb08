"""
Authentication dependencies for FastAPI.

Role checks happen here; job ownership checks happen in the queue engine.
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from printflow.models.user import UserRole
from printflow.services.jwt_service import JWTService


# Security scheme
security = HTTPBearer()


class TokenPayload(BaseModel):
    """JWT token payload model."""
    sub: str      # user_id
    role: str
    email: str


def decode_token(token: str) -> TokenPayload | None:
    payload = JWTService().verify_token(token)
    if payload is None:
        return None
    try:
        return TokenPayload(**payload)
    except (TypeError, ValueError):
        return None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """
    Dependency that requires valid JWT token.
    
    Returns token payload if valid, raises 401 if invalid.
    """
    payload = decode_token(credentials.credentials)
    
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    return payload


def require_role(role: UserRole):
    """
    Dependency factory restricting a route to one role.
    
    Usage:
        @router.post("/jobs/{job_id}/approve")
        async def approve(user: TokenPayload = Depends(require_role(UserRole.VENDOR))):
            ...
    """
    async def checker(current_user: TokenPayload = Depends(get_current_user)) -> TokenPayload:
        if current_user.role != role.value:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"{role.value.capitalize()} access only"
            )
        return current_user

    return checker


require_student = require_role(UserRole.STUDENT)
require_vendor = require_role(UserRole.VENDOR)
require_admin = require_role(UserRole.ADMIN)
