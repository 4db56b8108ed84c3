"""
Configuration and startup security checks for schoolhub.

Why: Every setting the request pipeline needs (signing secret, CORS origins,
store backend, assignment mode) is read once into an explicit `AppSettings`
value and passed to the components that need it. Nothing downstream reads
the environment on its own.

The startup guard prevents accidental insecure deployments without burdening
local development: it raises `SystemExit` on fatal misconfiguration in
production-like environments only.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Tuple
import os

from identity_access.tokens import HMAC_ALGORITHMS, TokenConfig


DEV_JWT_SECRET = "dev-only-secret-change-me"
MIN_PROD_SECRET_LENGTH = 32


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def _bool_env(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = (env.get(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got: {value}")
    return value


@dataclass(frozen=True)
class AppSettings:
    environment: str = "dev"
    jwt_secret: str = DEV_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_ttl_seconds: int = 7 * 24 * 3600
    cors_allowed_origins: Tuple[str, ...] = ("http://localhost:5173",)
    store_backend: str = "memory"  # "memory" | "db"
    database_url: str = ""
    assign_atomic: bool = False
    assign_deduplicate: bool = False
    uploads_root: str = field(default_factory=lambda: os.path.abspath(".tmp/uploads"))

    @property
    def is_prod_like(self) -> bool:
        return _is_prod_like(self.environment)

    def token_config(self) -> TokenConfig:
        return TokenConfig(
            secret=self.jwt_secret,
            algorithm=self.jwt_algorithm,
            ttl_seconds=self.jwt_ttl_seconds,
        )


def load_settings(env: Mapping[str, str] | None = None) -> AppSettings:
    """Build AppSettings from environment variables (or an explicit mapping)."""
    env = os.environ if env is None else env
    algorithm = (env.get("JWT_ALGORITHM") or "HS256").strip().upper()
    if algorithm not in HMAC_ALGORITHMS:
        raise ValueError(f"JWT_ALGORITHM must be one of {sorted(HMAC_ALGORITHMS)}, got: {algorithm!r}")
    backend = (env.get("STORE_BACKEND") or "memory").strip().lower()
    if backend not in ("memory", "db"):
        raise ValueError(f"STORE_BACKEND must be 'memory' or 'db', got: {backend!r}")
    origins_raw = env.get("CORS_ALLOWED_ORIGINS")
    if origins_raw is None:
        origins: Tuple[str, ...] = ("http://localhost:5173",)
    else:
        origins = tuple(o.strip().rstrip("/") for o in origins_raw.split(",") if o.strip())
    return AppSettings(
        environment=(env.get("SCHOOLHUB_ENV") or "dev").strip().lower(),
        jwt_secret=(env.get("JWT_SECRET") or DEV_JWT_SECRET).strip(),
        jwt_algorithm=algorithm,
        jwt_ttl_seconds=_int_env(env, "JWT_TTL_SECONDS", 7 * 24 * 3600),
        cors_allowed_origins=origins,
        store_backend=backend,
        database_url=(env.get("DATABASE_URL") or "").strip(),
        assign_atomic=_bool_env(env, "FEES_ASSIGN_ATOMIC"),
        assign_deduplicate=_bool_env(env, "FEES_ASSIGN_DEDUPLICATE"),
        uploads_root=os.path.abspath((env.get("UPLOADS_ROOT") or ".tmp/uploads").strip()),
    )


def ensure_secure_config_on_startup(settings: AppSettings) -> None:
    """Fail fast on insecure production configuration.

    Checks (prod/production/stage/staging only):
    - JWT secret is set, not the dev placeholder, and long enough.
    - DATABASE_URL does not explicitly disable TLS.
    - The db store backend has a DATABASE_URL.
    - CORS origins use https.
    """
    if not settings.is_prod_like:
        return  # dev/test remain permissive

    secret = settings.jwt_secret or ""
    if not secret or secret == DEV_JWT_SECRET or secret.upper().startswith("CHANGE_ME"):
        raise SystemExit("Refusing to start: JWT_SECRET is unset or a placeholder in production.")
    if len(secret) < MIN_PROD_SECRET_LENGTH:
        raise SystemExit(
            f"Refusing to start: JWT_SECRET must be at least {MIN_PROD_SECRET_LENGTH} characters in production."
        )

    if "sslmode=disable" in settings.database_url:
        raise SystemExit(
            "Refusing to start: DATABASE_URL contains sslmode=disable in production. Use sslmode=require or verify TLS."
        )
    if settings.store_backend == "db" and not settings.database_url:
        raise SystemExit("Refusing to start: STORE_BACKEND=db requires DATABASE_URL.")

    for origin in settings.cors_allowed_origins:
        if origin.lower().startswith("http://"):
            raise SystemExit(
                f"Refusing to start: CORS origin {origin} must use https in production (got http)."
            )


__all__ = ["AppSettings", "DEV_JWT_SECRET", "ensure_secure_config_on_startup", "load_settings"]
