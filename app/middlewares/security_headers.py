# app/middlewares/security_headers.py
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.platform.config import settings

CONTENT_SECURITY_POLICY = "; ".join(
    [
        "default-src 'self'",
        "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net",
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net",
        "img-src 'self' data: https:",
        "connect-src 'self'",
        "frame-ancestors 'none'",
        "base-uri 'self'",
        "form-action 'self'",
    ]
)

SECURITY_HEADERS = {
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
}


def is_https(request: Request) -> bool:
    forwarded_proto = request.headers.get("x-forwarded-proto", "")
    return request.url.scheme == "https" or forwarded_proto.split(",")[0].strip() == "https"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, api_prefix: str = settings.API_PREFIX):
        super().__init__(app)
        self.api_prefix = api_prefix.rstrip("/") + "/"

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers.update(SECURITY_HEADERS)
        if is_https(request):
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains; preload"

        # Audit results and reports are per request
        if request.url.path.startswith(self.api_prefix):
            response.headers.update(NO_STORE_HEADERS)

        return response
