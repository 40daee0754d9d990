from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from passlib.context import CryptContext

from app.core.config import settings

ACCESS = "access"
REFRESH = "refresh"

password_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)


def hash_password(password: str) -> str:
    return password_context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    return password_context.verify(password, hashed_password)


def create_token(subject: str, expires_minutes: int, token_type: str, **claims: Any) -> str:
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        **claims,
        "sub": subject,
        "type": token_type,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def issue_token_pair(user_id: int, role: str) -> Dict[str, str]:
    """Access token corto con el rol del usuario y refresh token largo sin claims extra."""
    return {
        "access_token": create_token(str(user_id), settings.access_token_expire_minutes, ACCESS, role=role),
        "refresh_token": create_token(str(user_id), settings.refresh_token_expire_minutes, REFRESH),
    }


def decode_token(token: str, expected_type: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """None si la firma, la expiración o el tipo no son válidos."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError:
        return None
    if expected_type and payload.get("type") != expected_type:
        return None
    return payload
