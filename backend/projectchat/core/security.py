"""Bearer token handling. Tokens are issued by the accounts service; this
module only needs to read them (and mint them for scripts and tests)."""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from projectchat.core.config import settings
from projectchat.core.exceptions import AuthenticationError


def create_access_token(user_id: int, expires_delta: timedelta | None = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {"sub": str(user_id), "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> int:
    """Return the user id carried by a token. Raises AuthenticationError."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise AuthenticationError("Unauthorized: Invalid token")

    subject = payload.get("sub")
    try:
        return int(subject)
    except (TypeError, ValueError):
        raise AuthenticationError("Unauthorized: Invalid token")
