from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from app.stockroom.core.config import settings

DEFAULT_TOKEN_TTL = timedelta(minutes=60)


class ActorClaims(BaseModel):
    sub: str
    name: str | None = None


def create_actor_token(actor_id: str, *, name: str | None = None, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or DEFAULT_TOKEN_TTL)
    to_encode: dict[str, Any] = {"sub": actor_id, "exp": expire}
    if name:
        to_encode["name"] = name
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_actor_token(token: str) -> ActorClaims | None:
    """Returns the actor claims of a valid token, None for anything else.

    Tokens only identify who performed a movement; they never gate access.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return ActorClaims(**payload)
    except (JWTError, ValidationError, TypeError):
        return None


def actor_from_authorization(header: str | None) -> ActorClaims | None:
    if not header or not header.lower().startswith("bearer "):
        return None
    return decode_actor_token(header.split(" ", 1)[1])
