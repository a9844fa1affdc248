"""
Security middleware: CSRF protection, security headers, staging gate.
"""

from __future__ import annotations

from urllib.parse import quote

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response
from starlette.types import ASGIApp

from app.core.auth import CSRF_COOKIE, SESSION_COOKIE

SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}

# ---------------------------------------------------------------------------
# Security Headers
# ---------------------------------------------------------------------------

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "0",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Content-Security-Policy": "default-src 'self'; frame-ancestors 'none';",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach security headers to every response."""

    def __init__(self, app: ASGIApp, hsts: bool = False):
        super().__init__(app)
        self.hsts = hsts

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers[header] = value
        if self.hsts:
            response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
        return response


# ---------------------------------------------------------------------------
# CSRF Protection (Double-Submit Cookie)
# ---------------------------------------------------------------------------

class CSRFMiddleware(BaseHTTPMiddleware):
    """
    Double-submit cookie CSRF protection.

    Skipped for:
    - Safe HTTP methods (GET, HEAD, OPTIONS)
    - Requests with Authorization header (bearer sessions and the cron trigger)
    - Requests without a session cookie
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method in SAFE_METHODS:
            return await call_next(request)

        if request.headers.get("Authorization"):
            return await call_next(request)

        if SESSION_COOKIE not in request.cookies:
            return await call_next(request)

        cookie_token = request.cookies.get(CSRF_COOKIE)
        header_token = request.headers.get("X-CSRF-Token")

        if not cookie_token or not header_token or cookie_token != header_token:
            return JSONResponse(
                status_code=403,
                content={"error": "Invalid or missing CSRF token."},
            )

        return await call_next(request)


# ---------------------------------------------------------------------------
# Staging gate
# ---------------------------------------------------------------------------

STAGING_COOKIE = "staging-access"
STAGING_COOKIE_MAX_AGE = 60 * 60 * 24 * 7
STAGING_OPEN_PATHS = ("/staging-gate", "/api/staging-access", "/health", "/ready")


class StagingGateMiddleware(BaseHTTPMiddleware):
    """Blocks non-production deployments until the staging password was entered."""

    def __init__(self, app: ASGIApp, enabled: bool = False):
        super().__init__(app)
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next) -> Response:
        if not self.enabled:
            return await call_next(request)

        path = request.url.path
        if any(path == open_path or path.startswith(open_path + "/") for open_path in STAGING_OPEN_PATHS):
            return await call_next(request)

        if request.cookies.get(STAGING_COOKIE) == "granted":
            return await call_next(request)

        if path.startswith("/api/"):
            return JSONResponse(status_code=401, content={"error": "Staging access required"})

        target = "/staging-gate"
        if path not in ("/", "/staging-gate"):
            target += f"?redirect={quote(path)}"
        return RedirectResponse(target, status_code=307)
