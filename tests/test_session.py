import asyncio

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from conftest import FakeIdentityProvider, make_jwt
from p1doks_cli.api.session import (
    CredentialTriple,
    SessionManager,
    SessionState,
    TokenStore,
    decode_subject_id,
)
from p1doks_cli.exceptions import (
    IdentityProviderError,
    RefreshExpiredError,
    TokenExpiredError,
)


def _build_app(handler):
    app = web.Application()
    app.router.add_route("*", "/data", handler)
    return app


async def _call(provider, handler, requests=1, sign_in_first=False, **session_kwargs):
    """Runs `requests` concurrent calls against a server using `handler`."""
    session_kwargs.setdefault("password", provider.password)
    async with TestServer(_build_app(handler)) as server:
        url = str(server.make_url("/data"))
        async with SessionManager("driver@example.com", provider, **session_kwargs) as session:
            if sign_in_first:
                await session.authenticate()
            results = await asyncio.gather(
                *(session.make_authenticated_request(url) for _ in range(requests)),
                return_exceptions=True,
            )
            return session, results


def test_incomplete_credentials_are_rejected():
    with pytest.raises(ValueError):
        CredentialTriple(access_token="a", id_token="", refresh_token="r")


def test_session_requires_password_or_refresh_token(provider):
    with pytest.raises(ValueError):
        SessionManager("driver@example.com", provider)


def test_decode_subject_id_prefers_sub():
    token = make_jwt({"user_id": "other", "sub": "abc-123"})
    assert decode_subject_id(token) == "abc-123"


def test_decode_subject_id_falls_back_to_other_claims():
    assert decode_subject_id(make_jwt({"cognito:username": "u-9"})) == "u-9"
    assert decode_subject_id(make_jwt({"userId": 42})) == "42"


def test_decode_subject_id_handles_malformed_tokens():
    assert decode_subject_id("not-a-token") is None
    assert decode_subject_id("a.%%%.c") is None
    assert decode_subject_id(make_jwt({"email": "x@example.com"})) is None
    assert decode_subject_id("") is None


def test_token_store_keeps_first_subject():
    store = TokenStore()
    store.store(CredentialTriple("a1", make_jwt({"sub": "first"}), "r1"))
    store.store(CredentialTriple("a2", make_jwt({"sub": "second"}), "r2"))
    assert store.subject_id == "first"
    assert store.generation == 2
    assert store.authorization_header()["Authorization"].startswith("Bearer ")


def test_password_sign_in_stores_credentials(provider):
    saved = []
    session = SessionManager(
        "driver@example.com",
        provider,
        password=provider.password,
        on_credentials=saved.append,
    )
    assert session.state is SessionState.UNAUTHENTICATED
    assert session.get_user_id() is None

    credentials = asyncio.run(session.authenticate())

    assert session.state is SessionState.AUTHENTICATED
    assert session.credentials == credentials
    assert session.get_user_id() == "user-123"
    assert saved == [credentials]
    assert provider.password_calls == ["driver@example.com"]
    assert provider.refresh_calls == []


def test_refresh_token_only_uses_refresh_path(provider):
    session = SessionManager(
        "driver@example.com", provider, refresh_token="saved-refresh"
    )
    credentials = asyncio.run(session.authenticate())

    assert provider.refresh_calls == ["saved-refresh"]
    assert provider.password_calls == []
    assert session.refresh_token == credentials.refresh_token


def test_expired_refresh_token_then_password_sign_in():
    provider = FakeIdentityProvider(fail_refresh=True)
    session = SessionManager(
        "driver@example.com", provider, refresh_token="stale-refresh"
    )

    with pytest.raises(RefreshExpiredError):
        asyncio.run(session.authenticate())
    assert session.state is SessionState.UNAUTHENTICATED
    assert session.credentials is None

    session.supply_password(provider.password)
    asyncio.run(session.authenticate())

    assert session.state is SessionState.AUTHENTICATED
    assert provider.password_calls == ["driver@example.com"]


def test_wrong_password_propagates_provider_error(provider):
    session = SessionManager("driver@example.com", provider, password="wrong-one")
    with pytest.raises(IdentityProviderError) as excinfo:
        asyncio.run(session.authenticate())
    assert excinfo.value.error_type == "NotAuthorizedException"
    assert session.state is SessionState.UNAUTHENTICATED


def test_request_authenticates_implicitly_and_sends_id_token(provider):
    seen = []

    async def handler(request):
        seen.append(request.headers.get("Authorization"))
        return web.json_response({"ok": True})

    session, results = asyncio.run(_call(provider, handler))

    assert results == [{"ok": True}]
    assert seen == [f"Bearer {session.credentials.id_token}"]
    assert provider.issued == 1


def test_rejected_request_is_refreshed_and_retried_once(provider):
    calls = []

    async def handler(request):
        calls.append(request.headers["Authorization"])
        if len(calls) == 1:
            return web.json_response({"message": "expired"}, status=401)
        return web.json_response({"data": [1, 2]})

    session, results = asyncio.run(_call(provider, handler))

    assert results == [{"data": [1, 2]}]
    assert len(calls) == 2
    assert calls[0] != calls[1]
    assert calls[1] == f"Bearer {session.credentials.id_token}"
    assert provider.refresh_calls == ["refresh-1"]
    assert session.state is SessionState.AUTHENTICATED


def test_repeated_rejection_expires_the_session(provider):
    calls = []

    async def handler(request):
        calls.append(request.path)
        return web.json_response({"message": "forbidden"}, status=403)

    session, results = asyncio.run(_call(provider, handler))

    error = results[0]
    assert isinstance(error, TokenExpiredError)
    assert isinstance(error.original_error, aiohttp.ClientResponseError)
    assert error.original_error.status == 403
    assert len(calls) == 2
    assert session.state is SessionState.EXPIRED

    with pytest.raises(TokenExpiredError):
        asyncio.run(session.make_authenticated_request("http://127.0.0.1:1/data"))
    with pytest.raises(TokenExpiredError):
        asyncio.run(session.authenticate())


def test_failed_refresh_after_rejection_expires_the_session():
    provider = FakeIdentityProvider(fail_refresh=True)
    calls = []

    async def handler(request):
        calls.append(request.path)
        return web.json_response({}, status=401)

    session, results = asyncio.run(_call(provider, handler))

    assert isinstance(results[0], TokenExpiredError)
    assert results[0].original_error.status == 401
    assert len(calls) == 1
    assert session.state is SessionState.EXPIRED


def test_other_errors_propagate_unchanged(provider):
    calls = []

    async def handler(request):
        calls.append(request.path)
        return web.json_response({"message": "boom"}, status=500)

    session, results = asyncio.run(_call(provider, handler))

    assert isinstance(results[0], aiohttp.ClientResponseError)
    assert results[0].status == 500
    assert len(calls) == 1
    assert provider.refresh_calls == []
    assert session.state is SessionState.AUTHENTICATED


def test_concurrent_rejections_share_one_refresh(provider):
    async def handler(request):
        # Only the credentials from the second issue are accepted
        expected = make_jwt({"sub": provider.subject, "n": 2})
        if request.headers.get("Authorization") != f"Bearer {expected}":
            return web.json_response({}, status=401)
        return web.json_response({"ok": True})

    session, results = asyncio.run(_call(provider, handler, requests=3, sign_in_first=True))

    assert results == [{"ok": True}] * 3
    assert len(provider.refresh_calls) == 1
    assert session.state is SessionState.AUTHENTICATED


def test_refresh_rotation_is_reported(provider):
    saved = []
    calls = []

    async def handler(request):
        calls.append(request.path)
        if len(calls) == 1:
            return web.json_response({}, status=401)
        return web.json_response({})

    session, _ = asyncio.run(
        _call(provider, handler, on_credentials=lambda c: saved.append(c.refresh_token))
    )

    assert saved == ["refresh-1", "refresh-2"]
    assert session.refresh_token == "refresh-2"
    assert session.get_user_id() == "user-123"


class FirstRefreshFailsProvider(FakeIdentityProvider):
    async def refresh(self, username, refresh_token):
        self.fail_refresh = not self.refresh_calls
        return await super().refresh(username, refresh_token)


def test_failed_refresh_is_shared_by_concurrent_rejections():
    provider = FakeIdentityProvider(fail_refresh=True)

    async def handler(request):
        return web.json_response({}, status=401)

    session, results = asyncio.run(
        _call(provider, handler, requests=3, sign_in_first=True)
    )

    assert all(isinstance(result, TokenExpiredError) for result in results)
    assert len(provider.refresh_calls) == 1
    assert session.state is SessionState.EXPIRED


def test_expired_session_is_not_revived_by_waiting_requests():
    provider = FirstRefreshFailsProvider()

    async def handler(request):
        # Credentials from a second refresh would be accepted
        accepted = make_jwt({"sub": provider.subject, "n": 2})
        if request.headers.get("Authorization") != f"Bearer {accepted}":
            return web.json_response({}, status=401)
        return web.json_response({"ok": True})

    session, results = asyncio.run(
        _call(provider, handler, requests=3, sign_in_first=True)
    )

    assert all(isinstance(result, TokenExpiredError) for result in results)
    assert provider.refresh_calls == ["refresh-1"]
    assert session.state is SessionState.EXPIRED
    assert session.credentials.refresh_token == "refresh-1"


def test_session_built_with_password_refreshes_with_issued_token(provider):
    session = SessionManager("driver@example.com", provider, password=provider.password)
    assert session.refresh_token is None

    asyncio.run(session.authenticate())

    assert session.refresh_token == "refresh-1"
