"""
Session context - the caller's SmartLend bearer token, passed explicitly per request.

Token issuance and role checks stay with the SmartLend API; the gateway only
forwards the token.
"""
from dataclasses import dataclass

from fastapi import HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Session:
    token: str


async def get_session(
    credentials: HTTPAuthorizationCredentials = Security(bearer_scheme),
) -> Session:
    """
    Reads the Authorization: Bearer header into a Session.
    Missing or blank tokens are rejected before any upstream call.
    """
    if not credentials or not credentials.credentials.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token (Authorization header)",
        )
    return Session(token=credentials.credentials.strip())
