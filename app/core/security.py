# app/core/security.py
from __future__ import annotations

import os
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from jose import jwt

SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "480"))


def create_access_token(user_id: int, expires_minutes: Optional[int] = None) -> str:
    """
    Sign a bearer token for `user_id`.
    Session issuance lives with the identity provider; this is used by the
    seed script and tests to mint tokens for existing users.
    """
    expire = datetime.utcnow() + timedelta(
        minutes=expires_minutes or ACCESS_TOKEN_EXPIRE_MINUTES
    )
    claims: Dict[str, Any] = {"sub": str(user_id), "exp": expire}
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Raises jose.JWTError on bad signature / expiry."""
    return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
