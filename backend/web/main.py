"schoolhub API"
from __future__ import annotations

import asyncio
import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from identity_access.errors import AuthError
from identity_access.principals import PrincipalResolver
from identity_access.tokens import CredentialVerifier

from web.config import ensure_secure_config_on_startup
from web.routes.fees import fees_router
from web.routes.materials import materials_router
from web.routes.security import auth_error_response, error_json, internal_error, private_json, success
from web.wiring import get_principal_store, get_settings


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via SCHOOLHUB_ENABLE_DOTENV (default true
      outside pytest).
    """
    import sys
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("SCHOOLHUB_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    load_dotenv()

# Fail fast on insecure production configuration.
ensure_secure_config_on_startup(get_settings())

logger = logging.getLogger("schoolhub.identity_access")

app = FastAPI(title="schoolhub", description="School management API", version="0.1.0")

PUBLIC_PATHS = frozenset({"/health", "/docs", "/docs/oauth2-redirect", "/openapi.json"})


def _is_public_path(path: str) -> bool:
    return path in PUBLIC_PATHS


# --- Auth pipeline -------------------------------------------------------------

@app.middleware("http")
async def auth_enforcement(request: Request, call_next):
    """Verify the bearer credential and resolve the caller before any handler.

    On success `request.state.identity` holds the frozen Identity snapshot.
    Any pipeline failure short-circuits with a JSON error envelope; the
    handler never runs.
    """
    if request.method == "OPTIONS" or _is_public_path(request.url.path):
        return await call_next(request)

    verifier = CredentialVerifier(get_settings().token_config())
    resolver = PrincipalResolver(get_principal_store())
    try:
        principal_id = verifier.verify(request.headers.get("Authorization"))
        identity = await asyncio.to_thread(resolver.resolve, principal_id)
    except AuthError as exc:
        logger.info("Request rejected: code=%s path=%s", exc.code, request.url.path)
        return auth_error_response(exc)
    except Exception as exc:
        logger.error("Principal lookup failed: %s", exc.__class__.__name__)
        return internal_error()

    request.state.identity = identity
    return await call_next(request)


# --- Security Headers Middleware ----------------------------------------------

@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
    if get_settings().is_prod_like:
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


# Added last so CORS wraps the auth middleware and answers preflights itself.
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().cors_allowed_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # Payload violations are client errors with the common envelope, not 422.
    fields = sorted({".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()})
    return error_json("bad_request", "Invalid request payload.", status_code=400, fields=fields)


# --- Routes -------------------------------------------------------------------

app.include_router(fees_router)
app.include_router(materials_router)


@app.get("/health")
async def health_check():
    # Security: include no-store to avoid caching any runtime status.
    return private_json({"status": "healthy"})


@app.get("/api/me")
async def get_me(request: Request):
    """Return the calling principal's identity snapshot."""
    identity = request.state.identity
    return success(identity.to_public())
