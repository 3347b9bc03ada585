from datetime import datetime, timedelta, timezone

from jose import jwt

from castaway_league.core.config import get_settings

settings = get_settings()


def create_access_token(data: dict, expires_minutes: int = 1440) -> str:
    """Issue a token the way the auth service does. Used by scripts and tests."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode["exp"] = expire
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
