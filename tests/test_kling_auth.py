import pytest
from jose import jwt
from jose.exceptions import JWSError

from editor_proxy.errors import ConfigurationError, CredentialError
from editor_proxy.kling_auth import KlingTokenManager, sign_kling_jwt
from editor_proxy.token_store import AuthToken, TokenStore


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_token_is_reused_inside_validity_window():
    clock = FakeClock()
    manager = KlingTokenManager("ak", "sk", ttl=1800, buffer=300, clock=clock)

    first = manager.get_valid_token()
    clock.now += 600
    second = manager.get_valid_token()

    assert first == second


def test_expired_token_is_replaced():
    clock = FakeClock()
    store = TokenStore()
    manager = KlingTokenManager("ak", "sk", store=store, ttl=1800, buffer=300, clock=clock)

    first = manager.get_valid_token()
    clock.now += 1801
    second = manager.get_valid_token()

    assert second != first
    assert store.get().value == second
    assert store.get().expires_at == int(clock.now) + 1800


def test_token_inside_buffer_counts_as_expired():
    clock = FakeClock()
    manager = KlingTokenManager("ak", "sk", ttl=1800, buffer=300, clock=clock)

    first = manager.get_valid_token()
    clock.now += 1500  # exactly at expiry minus buffer
    assert manager.get_valid_token() != first


def test_claims_follow_kling_contract():
    token = sign_kling_jwt("my-access-key", "my-secret", now=1_700_000_000, ttl=1800)

    claims = jwt.get_unverified_claims(token.value)
    header = jwt.get_unverified_header(token.value)

    assert claims == {"iss": "my-access-key", "exp": 1_700_001_800, "nbf": 1_699_999_995}
    assert header["alg"] == "HS256"
    assert header["typ"] == "JWT"
    assert token.expires_at == 1_700_001_800


def test_token_verifies_with_secret():
    manager = KlingTokenManager("ak", "sk")
    value = manager.get_valid_token()

    claims = jwt.decode(value, "sk", algorithms=["HS256"])
    assert claims["iss"] == "ak"


def test_missing_secrets_is_configuration_error():
    manager = KlingTokenManager("ak", None)
    with pytest.raises(ConfigurationError):
        manager.get_valid_token()


def test_signing_failure_leaves_store_untouched(monkeypatch):
    store = TokenStore()
    manager = KlingTokenManager("ak", "sk", store=store)

    def broken_encode(*args, **kwargs):
        raise JWSError("bad key")

    monkeypatch.setattr("editor_proxy.kling_auth.jwt.encode", broken_encode)

    with pytest.raises(CredentialError):
        manager.get_valid_token()
    assert store.get() is None


def test_refresh_token_always_resigns():
    clock = FakeClock()
    manager = KlingTokenManager("ak", "sk", clock=clock)

    first = manager.get_valid_token()
    clock.now += 1
    refreshed = manager.refresh_token()

    assert refreshed != first
    assert manager.get_valid_token() == refreshed


def test_stores_are_independent():
    clock = FakeClock()
    a = KlingTokenManager("ak", "sk", store=TokenStore(), clock=clock)
    b = KlingTokenManager("ak", "sk", store=TokenStore(), clock=clock)

    a.get_valid_token()
    assert b.store.get() is None


def test_preloaded_store_is_used():
    clock = FakeClock()
    store = TokenStore(AuthToken("cached-token", clock.now + 3600))
    manager = KlingTokenManager("ak", "sk", store=store, clock=clock)

    assert manager.get_valid_token() == "cached-token"


def test_non_positive_ttl_is_rejected():
    with pytest.raises(ConfigurationError):
        KlingTokenManager("ak", "sk", ttl=0)


def test_cleared_store_forces_new_token():
    clock = FakeClock()
    store = TokenStore()
    manager = KlingTokenManager("ak", "sk", store=store, clock=clock)

    first = manager.get_valid_token()
    store.clear()
    clock.now += 1

    assert store.get() is None
    assert manager.get_valid_token() != first


def test_refresh_within_same_second_yields_same_token():
    clock = FakeClock(1_700_000_000.2)
    manager = KlingTokenManager("ak", "sk", clock=clock)

    first = manager.get_valid_token()
    clock.now += 0.5
    assert manager.refresh_token() == first


def test_buffer_longer_than_ttl_still_reuses_fresh_token():
    clock = FakeClock()
    store = TokenStore()
    manager = KlingTokenManager("ak", "sk", store=store, ttl=60, buffer=600, clock=clock)

    assert manager.buffer == 59
    first = manager.get_valid_token()
    issued = store.get()
    second = manager.get_valid_token()

    assert second == first
    assert store.get() is issued
