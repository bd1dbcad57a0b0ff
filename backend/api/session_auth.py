"""
Session Authentication for FastAPI

Dependencies for protected endpoints. The session token is read from the
session cookie or from an `Authorization: Bearer` header; the DID it names
is the only identity downstream handlers should trust.
"""
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.core.identity.service import AuthService
from backend.core.identity.sessions import SessionClaims, SessionCredential

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


def get_auth_service(request: Request) -> AuthService:
    """The AuthService built at application startup."""
    return request.app.state.auth_service


async def get_current_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    auth: AuthService = Depends(get_auth_service),
) -> SessionClaims:
    """
    Validate the caller's session.

    Raises 401 if the token is missing, malformed, or expired.
    """
    token = request.cookies.get(auth.settings.session_cookie_name)
    if credentials:
        token = credentials.credentials

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    claims = auth.sessions.validate(token)
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return claims


def set_session_cookie(response: Response, credential: SessionCredential, auth: AuthService) -> None:
    """Deliver a session token as an HttpOnly cookie that expires with the token."""
    settings = auth.settings
    response.set_cookie(
        key=settings.session_cookie_name,
        value=credential.token,
        max_age=credential.expires_in,
        path="/",
        secure=settings.session_cookie_secure,
        httponly=True,
        samesite=settings.session_cookie_samesite,
    )


def clear_session_cookie(response: Response, auth: AuthService) -> None:
    settings = auth.settings
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        secure=settings.session_cookie_secure,
        httponly=True,
        samesite=settings.session_cookie_samesite,
    )
