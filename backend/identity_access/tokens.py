"""
Bearer credential verification for the identity_access bounded context.

Why: Keep cryptographic validation of bearer tokens outside the web adapter so
we can unit test it independently and pass the signing configuration in
explicitly instead of reading it from the environment here.

Security: Validates the HMAC signature against the server-held secret with an
algorithm whitelist and enforces the expiry claim. The verifier only returns
the principal identifier (`sub`); it performs no lookups and has no side
effects.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict
import time

from jose import jwt
from jose.exceptions import JOSEError

from .errors import ExpiredCredential, InvalidCredential, MissingCredential


BEARER_SCHEME = "bearer"
HMAC_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})
MAX_CLOCK_SKEW_SECONDS = 5  # Allow minimal skew between servers


@dataclass(frozen=True)
class TokenConfig:
    secret: str
    algorithm: str = "HS256"
    ttl_seconds: int = 7 * 24 * 3600

    def __post_init__(self) -> None:
        if not self.secret:
            raise ValueError("token secret must not be empty")
        if self.algorithm not in HMAC_ALGORITHMS:
            raise ValueError(f"unsupported token algorithm: {self.algorithm}")


def extract_bearer(raw_header: str | None) -> str:
    """Strip the `Bearer` scheme from an Authorization header value.

    Raises MissingCredential when the header is absent, uses another scheme,
    or carries an empty token.
    """
    value = (raw_header or "").strip()
    if not value:
        raise MissingCredential()
    scheme, _, token = value.partition(" ")
    if scheme.lower() != BEARER_SCHEME:
        raise MissingCredential()
    token = token.strip()
    if not token:
        raise MissingCredential()
    return token


class CredentialVerifier:
    """Validate signed bearer tokens and extract the principal identifier."""

    def __init__(self, cfg: TokenConfig, *, clock: Callable[[], float] = time.time) -> None:
        self._cfg = cfg
        self._clock = clock

    def verify(self, raw_header: str | None) -> str:
        """Return the principal id embedded in a valid, unexpired token.

        Raises
        ------
        MissingCredential:
            No bearer token in the header.
        InvalidCredential:
            Signature, structure or required-claim failure.
        ExpiredCredential:
            The `exp` claim lies in the past (beyond the allowed skew).
        """
        token = extract_bearer(raw_header)
        claims = self.decode(token)
        sub = claims.get("sub")
        if not isinstance(sub, str) or not sub.strip():
            raise InvalidCredential()
        return sub

    def decode(self, token: str) -> Dict[str, object]:
        try:
            claims = jwt.decode(
                token,
                self._cfg.secret,
                algorithms=[self._cfg.algorithm],
                options={
                    "verify_signature": True,
                    "verify_aud": False,
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                },
            )
        except JOSEError as exc:
            raise InvalidCredential() from exc
        if not isinstance(claims, dict):
            raise InvalidCredential()
        self._validate_temporal_claims(claims)
        return claims

    def _validate_temporal_claims(self, claims: Dict[str, object]) -> None:
        now = self._clock()
        exp = claims.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            raise InvalidCredential()
        if exp + MAX_CLOCK_SKEW_SECONDS < now:
            raise ExpiredCredential()

        nbf = claims.get("nbf")
        if isinstance(nbf, (int, float)) and nbf - MAX_CLOCK_SKEW_SECONDS > now:
            raise InvalidCredential()


def issue_token(*, principal_id: str, cfg: TokenConfig, now: float | None = None) -> str:
    """Sign a bearer token for `principal_id` valid for `cfg.ttl_seconds`."""
    if not principal_id:
        raise ValueError("principal_id must not be empty")
    issued_at = int(now if now is not None else time.time())
    claims = {
        "sub": principal_id,
        "iat": issued_at,
        "exp": issued_at + int(cfg.ttl_seconds),
    }
    return jwt.encode(claims, cfg.secret, algorithm=cfg.algorithm)


__all__ = [
    "CredentialVerifier",
    "HMAC_ALGORITHMS",
    "MAX_CLOCK_SKEW_SECONDS",
    "TokenConfig",
    "extract_bearer",
    "issue_token",
]
