"""Tests for the session boundary: cookie -> Redis session -> active user."""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from app.auth.session import RedisSessionBackend, UserSessionData, get_current_user, get_session_id
from app.core.exceptions import AuthenticationRequired


def _run(coro):
    return asyncio.run(coro)


class TestGetCurrentUser:
    def test_no_session(self, db):
        with patch("app.auth.session.read_user_session", new=AsyncMock(return_value=None)):
            with pytest.raises(AuthenticationRequired):
                _run(get_current_user(MagicMock(), db))

    def test_active_user(self, db, user):
        data = UserSessionData(user_id=user.id)
        with patch("app.auth.session.read_user_session", new=AsyncMock(return_value=data)):
            assert _run(get_current_user(MagicMock(), db)).id == user.id

    def test_unknown_or_inactive_user(self, db, user):
        with patch("app.auth.session.read_user_session", new=AsyncMock(return_value=UserSessionData(user_id="gone"))):
            with pytest.raises(AuthenticationRequired):
                _run(get_current_user(MagicMock(), db))

        user.is_active = False
        db.commit()
        with patch("app.auth.session.read_user_session", new=AsyncMock(return_value=UserSessionData(user_id=user.id))):
            with pytest.raises(AuthenticationRequired):
                _run(get_current_user(MagicMock(), db))


class TestSessionCookie:
    def test_invalid_cookie_is_no_session(self):
        frontend_error = object()
        with patch("app.auth.session.session_cookie", return_value=frontend_error):
            assert _run(get_session_id(MagicMock())) is None

    def test_valid_cookie(self):
        sid = uuid4()
        with patch("app.auth.session.session_cookie", return_value=sid):
            assert _run(get_session_id(MagicMock())) == sid


class TestRedisSessionBackend:
    def test_create_and_read(self):
        backend = RedisSessionBackend()
        backend.client = MagicMock()
        sid = uuid4()
        _run(backend.create(sid, UserSessionData(user_id="u1")))
        key, ttl, raw = backend.client.setex.call_args[0]
        assert key == f"user-session:{sid}"
        assert ttl == backend.ttl_seconds

        backend.client.get.return_value = raw
        assert _run(backend.read(sid)).user_id == "u1"
        backend.client.get.return_value = None
        assert _run(backend.read(sid)) is None
