import logging
from typing import Any, Dict

import jwt

from financeai.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class InvalidTokenError(Exception):
    pass


def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify an access token issued by the hosted auth provider."""
    options = {"require": ["sub", "exp"]}
    if not settings.AUTH_JWT_AUDIENCE:
        options["verify_aud"] = False
    try:
        payload = jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            audience=settings.AUTH_JWT_AUDIENCE,
            options=options,
        )
    except jwt.PyJWTError as e:
        logger.warning(f"Rejected access token: {type(e).__name__}")
        raise InvalidTokenError(str(e))
    return payload
