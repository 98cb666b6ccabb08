"""
JWT access tokens.

A token carries the user id (``sub``), role and email. Every route derives
ownership from the token subject, never from request bodies.
"""
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from printflow.config import settings


class JWTService:
    """Issues and checks HS256 access tokens."""

    def __init__(self, secret_key: str | None = None, algorithm: str | None = None):
        self.secret_key = secret_key or settings.JWT_SECRET_KEY
        self.algorithm = algorithm or settings.JWT_ALGORITHM

    def create_token(self, user_id: str, role: str, email: str, expires_minutes: int | None = None) -> str:
        """
        Args:
            user_id: token subject
            role: student, vendor or admin
            email: informational, shown in logs
            expires_minutes: override for JWT_EXPIRATION_MINUTES
        """
        if expires_minutes is None:
            expires_minutes = settings.JWT_EXPIRATION_MINUTES
        issued_at = datetime.now(timezone.utc)
        claims = {
            "sub": user_id,
            "role": role,
            "email": email,
            "iat": issued_at,
            "exp": issued_at + timedelta(minutes=expires_minutes),
        }
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> dict | None:
        """Decoded claims, or None for a bad signature or an expired token."""
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            return None
