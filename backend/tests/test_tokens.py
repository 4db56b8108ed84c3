"""
Bearer credential verification tests.

Covers the happy path plus each failure class the verifier distinguishes:
missing credential, invalid credential and expired credential.
"""
from __future__ import annotations

import pytest
from jose import jwt

from identity_access.errors import ExpiredCredential, InvalidCredential, MissingCredential
from identity_access.tokens import (
    MAX_CLOCK_SKEW_SECONDS,
    CredentialVerifier,
    TokenConfig,
    extract_bearer,
    issue_token,
)


SECRET = "unit-test-secret-0123456789abcdefghij"
NOW = 1_700_000_000


def _cfg(**kw) -> TokenConfig:
    return TokenConfig(secret=kw.pop("secret", SECRET), **kw)


def _verifier(now: float = NOW, **kw) -> CredentialVerifier:
    return CredentialVerifier(_cfg(**kw), clock=lambda: now)


def test_verify_returns_subject_of_valid_token():
    token = issue_token(principal_id="s1", cfg=_cfg(), now=NOW)
    assert _verifier().verify(f"Bearer {token}") == "s1"


def test_bearer_scheme_is_case_insensitive():
    token = issue_token(principal_id="s1", cfg=_cfg(), now=NOW)
    assert _verifier().verify(f"bearer {token}") == "s1"


@pytest.mark.parametrize("header", [None, "", "   ", "Bearer", "Bearer   ", "Basic dXNlcjpwYXNz", "Token abc"])
def test_missing_or_foreign_scheme_raises_missing_credential(header):
    with pytest.raises(MissingCredential):
        _verifier().verify(header)


def test_extract_bearer_strips_scheme():
    assert extract_bearer("Bearer  abc.def.ghi ") == "abc.def.ghi"


def test_wrong_secret_is_invalid():
    token = issue_token(principal_id="s1", cfg=_cfg(secret="another-secret-entirely-0123456789"), now=NOW)
    with pytest.raises(InvalidCredential):
        _verifier().verify(f"Bearer {token}")


def test_malformed_token_is_invalid():
    with pytest.raises(InvalidCredential):
        _verifier().verify("Bearer not.a.jwt")


def test_algorithm_outside_configured_one_is_invalid():
    token = jwt.encode({"sub": "s1", "exp": NOW + 60}, SECRET, algorithm="HS512")
    with pytest.raises(InvalidCredential):
        _verifier().verify(f"Bearer {token}")


def test_token_without_exp_is_invalid():
    token = jwt.encode({"sub": "s1"}, SECRET, algorithm="HS256")
    with pytest.raises(InvalidCredential):
        _verifier().verify(f"Bearer {token}")


def test_token_without_subject_is_invalid():
    token = jwt.encode({"exp": NOW + 60}, SECRET, algorithm="HS256")
    with pytest.raises(InvalidCredential):
        _verifier().verify(f"Bearer {token}")


def test_expired_token_raises_expired_credential():
    token = issue_token(principal_id="s1", cfg=_cfg(ttl_seconds=60), now=NOW)
    with pytest.raises(ExpiredCredential):
        _verifier(now=NOW + 60 + MAX_CLOCK_SKEW_SECONDS + 1).verify(f"Bearer {token}")


def test_expiry_tolerates_small_clock_skew():
    token = issue_token(principal_id="s1", cfg=_cfg(ttl_seconds=60), now=NOW)
    assert _verifier(now=NOW + 60 + MAX_CLOCK_SKEW_SECONDS - 1).verify(f"Bearer {token}") == "s1"


def test_not_yet_valid_token_is_invalid():
    token = jwt.encode({"sub": "s1", "exp": NOW + 3600, "nbf": NOW + 600}, SECRET, algorithm="HS256")
    with pytest.raises(InvalidCredential):
        _verifier().verify(f"Bearer {token}")


def test_expired_and_invalid_are_distinct_classes():
    assert not issubclass(ExpiredCredential, InvalidCredential)
    assert ExpiredCredential.code != InvalidCredential.code


def test_issue_token_carries_sub_iat_exp_only():
    token = issue_token(principal_id="t-9", cfg=_cfg(ttl_seconds=120), now=NOW)
    claims = jwt.get_unverified_claims(token)
    assert claims == {"sub": "t-9", "iat": NOW, "exp": NOW + 120}


def test_token_config_rejects_empty_secret_and_asymmetric_algorithms():
    with pytest.raises(ValueError):
        TokenConfig(secret="")
    with pytest.raises(ValueError):
        TokenConfig(secret=SECRET, algorithm="RS256")
