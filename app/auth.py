import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from jose import jwt as jose_jwt
from sqlalchemy.orm import Session

from .config import SUPABASE_JWT_AUDIENCE, SUPABASE_JWT_SECRET
from .database import get_db, is_postgres
from .models import User
from .security_middleware import set_rls_context

logger = logging.getLogger(__name__)

security = HTTPBearer()


@dataclass(frozen=True)
class Caller:
    """Who is invoking a billing operation"""

    user_id: Optional[int]
    role: str = "senior"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_system(self) -> bool:
        """Webhooks and background jobs act on behalf of the platform"""
        return self.role == "system"

    @property
    def is_trusted(self) -> bool:
        return self.is_admin or self.is_system

    @classmethod
    def for_user(cls, user: User) -> "Caller":
        return cls(user_id=user.id, role=user.role or "senior")

    @classmethod
    def system(cls) -> "Caller":
        return cls(user_id=None, role="system")


def decode_access_token(token: str) -> dict:
    """Verify a Supabase access token (HS256) and return its claims"""
    if not SUPABASE_JWT_SECRET:
        logger.error("❌ SUPABASE_JWT_SECRET not configured")
        raise HTTPException(status_code=500, detail="Authentication not configured")

    try:
        return jose_jwt.decode(
            token,
            SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            audience=SUPABASE_JWT_AUDIENCE,
        )
    except JWTError as e:
        logger.warning(f"⚠️ Token verification failed: {e}")
        raise HTTPException(status_code=401, detail="Invalid token") from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from the Supabase access token"""
    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    claims = decode_access_token(credentials.credentials)
    auth_uid = claims.get("sub")
    if not auth_uid:
        logger.error(f"❌ Token missing 'sub' claim. Available claims: {list(claims.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    user = db.query(User).filter(User.auth_uid == auth_uid).first()
    if not user or not user.is_active:
        logger.warning(f"⚠️ No active user for auth uid {auth_uid}")
        raise HTTPException(status_code=401, detail="User not found")

    if is_postgres(db):
        set_rls_context(db, user.id)
    return user


async def get_caller(user: User = Depends(get_current_user)) -> Caller:
    return Caller.for_user(user)
