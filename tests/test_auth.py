"""
Tests for ovirt_sdk.core.auth.
"""

import base64
import logging
import sys
import threading
import time
from urllib.parse import parse_qs

import pytest
from unittest.mock import patch

from ovirt_sdk.core.auth import (
    BasicStrategy,
    CredentialStrategy,
    KerberosStrategy,
    PasswordStrategy,
    SsoResponse,
    StaticTokenStrategy,
    Token,
    TokenManager,
    TokenState,
    make_strategy,
    parse_sso_response,
)
from ovirt_sdk.core.config import ConnectionConfig
from ovirt_sdk.core.errors import (
    AuthError,
    ConfigError,
    ConnectionClosedError,
    TransportError,
    TransportErrorKind,
)
from ovirt_sdk.core.http import Response

from conftest import (
    API_URL,
    ENGINE,
    SSO_LOGOUT_PATH,
    SSO_TOKEN_PATH,
    FakeTransport,
    json_response,
)


class CountingStrategy(CredentialStrategy):
    """Issues T1, T2, ... and counts exchanges."""

    def __init__(self, delay=0.0, error=None, expires_at=None):
        super().__init__(None)
        self.calls = 0
        self.revoked = []
        self.delay = delay
        self.error = error
        self.expires_at = expires_at
        self._lock = threading.Lock()

    def fetch(self, transport):
        with self._lock:
            self.calls += 1
            n = self.calls
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return Token(f"T{n}", self.expires_at)

    def revoke(self, transport, token):
        self.revoked.append(token.value)


def _password_config(**options):
    return ConnectionConfig.build(API_URL, "admin@internal", "secret", **options)


def _run_concurrently(n, target):
    barrier = threading.Barrier(n)
    results, errors = [], []
    lock = threading.Lock()

    def worker():
        barrier.wait(timeout=5)
        try:
            value = target()
        except Exception as exc:
            with lock:
                errors.append(exc)
        else:
            with lock:
                results.append(value)

    threads = [threading.Thread(target=worker) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return results, errors


class TestToken:
    """Tests for Token expiry."""

    def test_no_expiry_never_expires(self):
        assert not Token("T1").is_expired(now=1e12)

    def test_expiry_with_skew(self):
        token = Token("T1", expires_at=1000.0)
        assert not token.is_expired(now=900.0)
        assert token.is_expired(now=980.0)

    def test_short_lifetime_gets_half_as_margin(self):
        token = Token.issued("T1", expires_at=1020.0, now=1000.0)
        assert token.skew == 10.0
        assert not token.is_expired(now=1000.0)
        assert not token.is_expired(now=1009.0)
        assert token.is_expired(now=1010.0)

    def test_long_lifetime_keeps_full_margin(self):
        token = Token.issued("T1", expires_at=4600.0, now=1000.0)
        assert token.skew == 30.0
        assert token.is_expired(now=4570.0)

    def test_issued_without_expiry(self):
        assert Token.issued("T1", None, now=1000.0) == Token("T1")

    def test_value_hidden_from_repr(self):
        assert "secret-value" not in repr(Token("secret-value"))


class TestSsoResponse:
    """Tests for SSO payload decoding."""

    def test_access_token(self):
        payload = parse_sso_response(json_response(200, {"access_token": "T1", "token_type": "bearer"}))
        assert payload.access_token == "T1"
        assert payload.expires_at(now=100.0) is None

    def test_top_level_array(self):
        payload = parse_sso_response(json_response(200, [{"access_token": "T1"}]))
        assert payload.access_token == "T1"

    def test_exp_in_milliseconds(self):
        payload = SsoResponse.model_validate({"access_token": "T1", "exp": "1700000000000"})
        assert payload.expires_at(now=0.0) == 1700000000.0

    def test_expires_in(self):
        payload = SsoResponse.model_validate({"access_token": "T1", "expires_in": 60})
        assert payload.expires_at(now=1000.0) == 1060.0

    def test_error_payload(self):
        payload = parse_sso_response(json_response(400, {
            "error_code": "access_denied",
            "error": "Cannot authenticate user 'admin@internal'.",
        }))
        with pytest.raises(AuthError, match="access_denied") as info:
            payload.raise_for_error("authentication")
        assert info.value.code == "access_denied"

    def test_non_json_reply(self):
        resp = Response(502, {"Content-Type": "text/html"}, b"<html>proxy</html>", "Bad Gateway")
        with pytest.raises(AuthError, match="not JSON") as info:
            parse_sso_response(resp)
        assert info.value.status == 502


class TestPasswordStrategy:
    """Tests for the SSO password grant."""

    def test_fetch_posts_form(self):
        transport = FakeTransport().route(SSO_TOKEN_PATH, json_response(200, {"access_token": "T1"}))
        strategy = PasswordStrategy(_password_config(), _password_config().credentials)

        token = strategy.fetch(transport)

        assert token == Token("T1")
        call = transport.calls[0]
        assert call.method == "POST"
        assert call.url == ENGINE + SSO_TOKEN_PATH
        assert call.headers["Accept"] == "application/json"
        assert call.headers["Content-Type"] == "application/x-www-form-urlencoded"
        assert "Authorization" not in call.headers
        form = parse_qs(call.body.decode("ascii"))
        assert form == {
            "scope": ["ovirt-app-api"],
            "grant_type": ["password"],
            "username": ["admin@internal"],
            "password": ["secret"],
        }

    def test_sso_url_override(self):
        cfg = _password_config(sso_url="https://sso.example.com/token")
        transport = FakeTransport().route("/token", json_response(200, {"access_token": "T1"}))
        PasswordStrategy(cfg, cfg.credentials).fetch(transport)
        assert transport.calls[0].url == "https://sso.example.com/token"

    def test_server_error_becomes_auth_error(self):
        transport = FakeTransport().route(SSO_TOKEN_PATH, json_response(401, {
            "error": "access_denied",
            "error_description": "Cannot authenticate user",
        }))
        cfg = _password_config()
        with pytest.raises(AuthError, match="Cannot authenticate user"):
            PasswordStrategy(cfg, cfg.credentials).fetch(transport)

    def test_missing_access_token(self):
        transport = FakeTransport().route(SSO_TOKEN_PATH, json_response(200, {"token_type": "bearer"}))
        cfg = _password_config()
        with pytest.raises(AuthError, match="no access token"):
            PasswordStrategy(cfg, cfg.credentials).fetch(transport)

    def test_revoke_posts_token(self):
        transport = FakeTransport().route(SSO_LOGOUT_PATH, json_response(200, {}))
        cfg = _password_config()
        PasswordStrategy(cfg, cfg.credentials).revoke(transport, Token("T1"))
        call = transport.calls[0]
        assert call.url == ENGINE + SSO_LOGOUT_PATH
        assert parse_qs(call.body.decode("ascii"), keep_blank_values=True) == {
            "scope": [""],
            "token": ["T1"],
        }

    def test_revoke_url_override(self):
        cfg = _password_config(sso_revoke_url="https://sso.example.com/logout")
        assert PasswordStrategy(cfg, cfg.credentials).revoke_url == "https://sso.example.com/logout"


class TestKerberosStrategy:
    """Tests for the SSO negotiate grant."""

    def test_fetch_uses_negotiate(self):
        negotiate = object()
        cfg = ConnectionConfig.build(API_URL, kerberos=True)
        with patch("ovirt_sdk.core.auth._spnego_auth", return_value=negotiate):
            strategy = make_strategy(cfg)
        assert isinstance(strategy, KerberosStrategy)

        transport = FakeTransport().route(
            "/sso/oauth/token-http-auth", json_response(200, {"access_token": "K1"})
        )
        assert strategy.fetch(transport).value == "K1"

        call = transport.calls[0]
        assert call.auth is negotiate
        form = parse_qs(call.body.decode("ascii"))
        assert form["grant_type"] == ["urn:ovirt:params:oauth:grant-type:http"]
        assert "password" not in form

    def test_missing_library_is_config_error(self):
        cfg = ConnectionConfig.build(API_URL, kerberos=True)
        with patch.dict(sys.modules, {"requests_gssapi": None}):
            with pytest.raises(ConfigError, match="requests-gssapi"):
                make_strategy(cfg)


class TestBasicStrategy:
    """Tests for HTTP basic credentials."""

    def test_no_network(self):
        cfg = ConnectionConfig.build(API_URL, "admin@internal", "secret", auth="basic")
        strategy = make_strategy(cfg)
        assert isinstance(strategy, BasicStrategy)
        transport = FakeTransport()
        token = strategy.fetch(transport)
        assert token.scheme == "Basic"
        assert base64.b64decode(token.value) == b"admin@internal:secret"
        assert token.refreshable is False
        strategy.revoke(transport, token)
        assert transport.calls == []


class TestStaticTokenStrategy:
    """Tests for caller supplied tokens."""

    def test_no_network(self):
        cfg = ConnectionConfig.build(API_URL, token="static")
        strategy = make_strategy(cfg)
        assert isinstance(strategy, StaticTokenStrategy)
        transport = FakeTransport()
        token = strategy.fetch(transport)
        assert token.value == "static"
        assert token.refreshable is False
        assert transport.calls == []


class TestTokenManager:
    """Tests for TokenManager caching and single-flight behaviour."""

    def test_caches_token(self):
        strategy = CountingStrategy()
        manager = TokenManager(strategy, FakeTransport())
        assert manager.state is TokenState.UNAUTHENTICATED

        first = manager.ensure_token()
        second = manager.ensure_token()

        assert first.value == "T1"
        assert second is first
        assert strategy.calls == 1
        assert manager.state is TokenState.AUTHENTICATED

    def test_expired_token_is_refreshed(self):
        clock = [1000.0]
        strategy = CountingStrategy(expires_at=1100.0)
        manager = TokenManager(strategy, FakeTransport(), clock=lambda: clock[0])

        manager.ensure_token()
        clock[0] = 1080.0
        assert manager.state is TokenState.EXPIRED

        assert manager.ensure_token().value == "T2"
        assert strategy.calls == 2

    def test_invalidate_compare_and_clear(self):
        strategy = CountingStrategy()
        manager = TokenManager(strategy, FakeTransport())
        stale = manager.ensure_token()

        assert manager.invalidate(stale) is True
        fresh = manager.ensure_token()
        assert fresh.value == "T2"

        assert manager.invalidate(stale) is False
        assert manager.ensure_token() is fresh
        assert strategy.calls == 2

    def test_static_token_never_invalidated(self):
        cfg = ConnectionConfig.build(API_URL, token="static")
        manager = TokenManager(make_strategy(cfg), FakeTransport())
        token = manager.ensure_token()
        assert manager.invalidate(token) is False
        assert manager.ensure_token() is token

    def test_concurrent_callers_share_one_exchange(self):
        strategy = CountingStrategy(delay=0.2)
        manager = TokenManager(strategy, FakeTransport())

        results, errors = _run_concurrently(8, manager.ensure_token)

        assert errors == []
        assert len(results) == 8
        assert {t.value for t in results} == {"T1"}
        assert strategy.calls == 1

    def test_concurrent_callers_share_failure(self):
        strategy = CountingStrategy(delay=0.2, error=AuthError("denied"))
        manager = TokenManager(strategy, FakeTransport())

        results, errors = _run_concurrently(6, manager.ensure_token)

        assert results == []
        assert len(errors) == 6
        assert all(isinstance(e, AuthError) for e in errors)
        assert strategy.calls == 1
        assert manager.state is TokenState.UNAUTHENTICATED

    def test_failure_is_not_cached(self):
        strategy = CountingStrategy(error=AuthError("denied"))
        manager = TokenManager(strategy, FakeTransport())
        with pytest.raises(AuthError):
            manager.ensure_token()
        strategy.error = None
        assert manager.ensure_token().value == "T2"

    def test_revoke(self):
        strategy = CountingStrategy()
        manager = TokenManager(strategy, FakeTransport())
        manager.ensure_token()

        manager.revoke()
        manager.revoke()

        assert strategy.revoked == ["T1"]
        assert manager.state is TokenState.REVOKED
        with pytest.raises(ConnectionClosedError):
            manager.ensure_token()

    def test_revoke_without_token_is_local(self):
        strategy = CountingStrategy()
        manager = TokenManager(strategy, FakeTransport())
        manager.revoke()
        assert strategy.revoked == []
        assert manager.state is TokenState.REVOKED

    def test_revoke_without_remote_logout(self):
        strategy = CountingStrategy()
        manager = TokenManager(strategy, FakeTransport())
        manager.ensure_token()
        manager.revoke(remote=False)
        assert strategy.revoked == []
        assert manager.state is TokenState.REVOKED

    def test_revoke_during_fetch_logs_out_new_token(self):
        fetching = threading.Event()
        strategy = CountingStrategy()
        manager = TokenManager(strategy, FakeTransport())

        def slow_fetch(transport):
            fetching.set()
            deadline = time.monotonic() + 5
            while manager.state is not TokenState.REVOKED and time.monotonic() < deadline:
                time.sleep(0.01)
            return Token("T1")

        strategy.fetch = slow_fetch
        errors = []

        def worker():
            try:
                manager.ensure_token()
            except Exception as exc:
                errors.append(exc)

        thread = threading.Thread(target=worker)
        thread.start()
        assert fetching.wait(timeout=5)
        manager.revoke()
        # revoke() returns only after the in-flight token was logged out
        assert strategy.revoked == ["T1"]
        thread.join(timeout=10)

        assert len(errors) == 1
        assert isinstance(errors[0], ConnectionClosedError)

    def test_revoke_failure_is_logged(self, caplog):
        class FailingRevoke(CountingStrategy):
            def revoke(self, transport, token):
                raise TransportError(TransportErrorKind.CONNECT, "https://x", "refused")

        manager = TokenManager(FailingRevoke(), FakeTransport())
        manager.ensure_token()

        with caplog.at_level(logging.WARNING, logger="ovirt_sdk.auth"):
            manager.revoke()

        assert "Failed to revoke SSO token" in caplog.text
        assert manager.state is TokenState.REVOKED
