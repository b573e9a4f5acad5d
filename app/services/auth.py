from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Header, HTTPException, status
from jose import JWTError, jwt

from app.core.config import get_settings

settings = get_settings()


@dataclass
class AuthContext:
    user_id: str
    email: Optional[str] = None
    role: str = "user"


def create_session_token(user_id: str, email: Optional[str] = None, role: str = "user", expires_minutes: int = 60) -> str:
    """Mint a session token in the identity provider's format. Used by scripts and tests."""
    now = datetime.now(timezone.utc)
    claims = {
        "sub": user_id,
        "email": email,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=expires_minutes)).timestamp()),
    }
    return jwt.encode(claims, settings.session_jwt_secret, algorithm=settings.session_jwt_algorithm)


def decode_session_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.session_jwt_secret, algorithms=[settings.session_jwt_algorithm])
    except JWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token") from exc


def _context_from_claims(claims: dict) -> AuthContext:
    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
    # Custom claims may be nested under public metadata.
    metadata = claims.get("metadata") or {}
    return AuthContext(
        user_id=user_id,
        email=claims.get("email") or metadata.get("email"),
        role=claims.get("role") or metadata.get("role") or "user",
    )


def get_auth_context(authorization: Optional[str] = Header(default=None)) -> AuthContext:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="auth_required")
    claims = decode_session_token(authorization.removeprefix("Bearer ").strip())
    return _context_from_claims(claims)
