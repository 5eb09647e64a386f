import secrets
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.platform.config import settings
from app.platform.exceptions import AuthError
from app.platform.security_logger import security_logger
from app.platform.utils.rate_limit import get_client_ip

security = HTTPBearer(auto_error=False)


async def require_admin_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    token = credentials.credentials if credentials else ""
    if not token or not secrets.compare_digest(token.encode(), settings.ADMIN_TOKEN.encode()):
        security_logger.log_suspicious_activity(
            get_client_ip(request),
            request.headers.get("user-agent"),
            f"unauthorized admin access to {request.url.path}",
        )
        raise AuthError("Unauthorized")
