import secrets
from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from rowgate.core.config import settings
from rowgate.core.errors import AuthError, InvalidTokenError

# auto_error=False so a missing header becomes our own nack instead of a 403
bearer_scheme = HTTPBearer(auto_error=False)


def verify_token(token: str, expected: str) -> bool:
    return bool(expected) and secrets.compare_digest(token.encode(), expected.encode())


# Check the bearer token against the process-wide write secret
async def require_write_token(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> str:
    if credentials is None or not credentials.credentials:
        raise AuthError("Missing or invalid Authorization header")

    if not verify_token(credentials.credentials, settings.WRITE_TOKEN):
        raise InvalidTokenError("Token authentication failed")

    return credentials.credentials
