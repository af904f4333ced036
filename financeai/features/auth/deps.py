import uuid
import logging
from typing import Optional

from fastapi import HTTPException, Request, status
from fastapi.security.utils import get_authorization_scheme_param

from financeai.core.config import get_settings
from financeai.core.security import decode_access_token, InvalidTokenError
from financeai.features.auth.schemas import CurrentUser

settings = get_settings()
logger = logging.getLogger(__name__)


def _extract_token(request: Request) -> Optional[str]:
    """Bearer header first, then the session cookie."""
    authorization = request.headers.get("Authorization")
    if authorization:
        scheme, param = get_authorization_scheme_param(authorization)
        if scheme.lower() == "bearer" and param:
            return param
        return None
    return request.cookies.get(settings.AUTH_COOKIE_NAME)


async def get_current_user(request: Request) -> CurrentUser:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required. Please try again.",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token = _extract_token(request)
    if not token:
        logger.warning(f"Authentication failed: no credentials on {request.url.path}")
        raise credentials_exception

    try:
        payload = decode_access_token(token)
        user_id = uuid.UUID(str(payload["sub"]))
    except (InvalidTokenError, ValueError):
        raise credentials_exception

    return CurrentUser(id=user_id, email=payload.get("email"))
