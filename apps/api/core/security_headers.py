"""
Security Headers Middleware

Adds standard protective headers to every response. The API serves JSON
and event streams only, so the CSP is locked down to nothing but the
upstream model API and image sources.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from core.config import settings


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = (
            "camera=(), geolocation=(), microphone=(), payment=(), usb=()"
        )

        if not settings.DEBUG:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
            response.headers["Content-Security-Policy"] = (
                "default-src 'none'; "
                "img-src 'self' data: https:; "
                f"connect-src 'self' {settings.OPENROUTER_BASE_URL.split('/api')[0]}; "
                "frame-ancestors 'none';"
            )

        return response
