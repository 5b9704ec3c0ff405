from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from imagen_proxy.auth import token_provider
from imagen_proxy.auth.token_provider import (
    CLOUD_PLATFORM_SCOPE,
    AccessToken,
    TokenCache,
    fetch_google_access_token,
    normalize_access_token,
)
from imagen_proxy.errors import ConfigurationError


def _utc(delta: timedelta) -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None) + delta


class TestNormalizeAccessToken:

    def test_bare_string(self):
        token = normalize_access_token("ya29.abc")
        assert token == AccessToken(token="ya29.abc", expires_at=None)

    def test_object_with_token(self):
        expiry = _utc(timedelta(hours=1))
        token = normalize_access_token(SimpleNamespace(token="ya29.obj", expiry=expiry))
        assert token.token == "ya29.obj"
        assert token.expires_at == expiry

    def test_mapping_with_token(self):
        assert normalize_access_token({"token": "ya29.dict"}).token == "ya29.dict"

    def test_aware_expiry_is_converted_to_naive_utc(self):
        expiry = datetime(2030, 1, 1, 8, 0, tzinfo=timezone(timedelta(hours=8)))
        token = normalize_access_token(SimpleNamespace(token="t", expiry=expiry))
        assert token.expires_at == datetime(2030, 1, 1, 0, 0)

    @pytest.mark.parametrize("raw", [None, "", {"token": None}, SimpleNamespace(token=None)])
    def test_missing_token(self, raw):
        with pytest.raises(ConfigurationError, match="Failed to get access token"):
            normalize_access_token(raw)


class TestTokenCache:

    def test_returns_fresh_token(self, credential):
        cache = TokenCache()
        token = AccessToken("ya29.cached", _utc(timedelta(hours=1)))

        cache.put(credential, token)

        assert cache.get(credential) is token
        assert len(cache) == 1

    def test_drops_token_close_to_expiry(self, credential):
        cache = TokenCache()
        cache.put(credential, AccessToken("ya29.stale", _utc(timedelta(minutes=2))))

        assert cache.get(credential) is None
        assert len(cache) == 0

    def test_skips_token_without_expiry(self, credential):
        cache = TokenCache()
        cache.put(credential, AccessToken("ya29.no-expiry"))

        assert cache.get(credential) is None

    def test_keyed_by_credential(self, credential, credential_info):
        other_info = dict(credential_info, client_email="other@demo-project.iam.gserviceaccount.com")
        other = type(credential).model_validate(other_info)
        cache = TokenCache()
        cache.put(credential, AccessToken("ya29.one", _utc(timedelta(hours=1))))

        assert cache.get(other) is None

    def test_invalidate(self, credential):
        cache = TokenCache()
        cache.put(credential, AccessToken("ya29.one", _utc(timedelta(hours=1))))

        cache.invalidate(credential)
        assert cache.get(credential) is None

        cache.put(credential, AccessToken("ya29.two", _utc(timedelta(hours=1))))
        cache.invalidate()
        assert len(cache) == 0


@pytest.mark.asyncio
async def test_fetch_google_access_token_uses_cloud_platform_scope(monkeypatch, credential):
    calls = {}

    class FakeCredentials:
        token = None
        expiry = None

        def refresh(self, request):
            self.token = "ya29.fetched"

    def fake_from_info(info, scopes):
        calls["info"] = info
        calls["scopes"] = scopes
        return FakeCredentials()

    monkeypatch.setattr(
        token_provider.service_account.Credentials,
        "from_service_account_info",
        fake_from_info
    )

    result = await fetch_google_access_token(credential)

    assert normalize_access_token(result).token == "ya29.fetched"
    assert calls["scopes"] == [CLOUD_PLATFORM_SCOPE]
    assert calls["info"]["client_email"] == credential.client_email
    assert calls["info"]["private_key"] == credential.private_key
