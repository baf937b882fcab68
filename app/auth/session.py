"""
User sessions: signed cookie (fastapi-sessions) pointing at session data in Redis.
Sessions are issued by the sign-in flow via create_user_session; this API only reads them.
"""
import inspect
from typing import Optional
from uuid import UUID, uuid4

import redis
from fastapi import Depends, Request
from fastapi_sessions.backends.session_backend import SessionBackend
from fastapi_sessions.frontends.implementations import CookieParameters, SessionCookie
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import AuthenticationRequired
from app.db.session import get_db
from app.models.user import User


class UserSessionData(BaseModel):
    user_id: str


class RedisSessionBackend(SessionBackend[UUID, UserSessionData]):
    def __init__(self) -> None:
        self.client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        self.ttl_seconds = settings.session_ttl
        self.key_prefix = "user-session:"

    async def create(self, session_id: UUID, data: UserSessionData) -> None:
        self.client.setex(
            f"{self.key_prefix}{session_id}",
            self.ttl_seconds,
            data.model_dump_json(),
        )

    async def read(self, session_id: UUID) -> Optional[UserSessionData]:
        raw = self.client.get(f"{self.key_prefix}{session_id}")
        if not raw:
            return None
        return UserSessionData.model_validate_json(raw)

    async def update(self, session_id: UUID, data: UserSessionData) -> None:
        await self.create(session_id, data)

    async def delete(self, session_id: UUID) -> None:
        self.client.delete(f"{self.key_prefix}{session_id}")


session_backend = RedisSessionBackend()

cookie_params = CookieParameters(
    max_age=settings.session_ttl,
    samesite=settings.session_cookie_samesite,
    secure=settings.session_cookie_secure,
)

session_cookie = SessionCookie(
    cookie_name=settings.session_cookie_name,
    identifier="user_session",
    auto_error=False,
    secret_key=settings.session_secret,
    cookie_params=cookie_params,
)


async def get_session_id(request: Request) -> Optional[UUID]:
    """Verified session id from the signed cookie, or None (missing, tampered, expired)."""
    result = session_cookie(request)
    if inspect.isawaitable(result):
        result = await result
    return result if isinstance(result, UUID) else None


async def read_user_session(request: Request) -> Optional[UserSessionData]:
    session_id = await get_session_id(request)
    if not session_id:
        return None
    return await session_backend.read(session_id)


async def create_user_session(user_id: str) -> UUID:
    session_id = uuid4()
    await session_backend.create(session_id, UserSessionData(user_id=user_id))
    return session_id


async def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Active user behind the session cookie; 401 otherwise."""
    data = await read_user_session(request)
    if data is None:
        raise AuthenticationRequired()
    user = db.query(User).filter(User.id == data.user_id).one_or_none()
    if user is None or not user.is_active:
        raise AuthenticationRequired()
    return user
