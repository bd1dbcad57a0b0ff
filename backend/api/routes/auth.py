"""
Sign-in and Session Endpoints

Flow:
1. Client obtains a challenge from /api/v1/identity/initiate-challenge
2. Client signs the challenge with the DID's key (wallet, off-band)
3. Client posts did + challenge + signature to /api/auth/callback/did
4. Backend consumes the challenge, has the identity service check the
   signature, and returns a session token (body and HttpOnly cookie)

Every failure in step 4 returns the same 401, whatever the cause.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from backend.api.schemas import (
    ProvidersResponse,
    SessionResponse,
    SessionTokenResponse,
    VerifyChallengeRequest,
)
from backend.api.session_auth import (
    clear_session_cookie,
    get_auth_service,
    get_current_session,
    set_session_cookie,
)
from backend.core.identity.errors import AuthenticationError, GENERIC_AUTH_FAILURE
from backend.core.identity.service import AuthService
from backend.core.identity.sessions import DID_CHALLENGE_METHOD, SessionClaims, to_session_view

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/callback/did", response_model=SessionTokenResponse)
async def complete_did_authentication(
    request: VerifyChallengeRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
) -> SessionTokenResponse:
    """
    Exchange a signed challenge for a session.

    The optional email field is accepted for older clients but plays no
    part in the decision; the session subject is always the DID.
    """
    try:
        principal = await auth.strategies.authorize(DID_CHALLENGE_METHOD, request.model_dump())
    except AuthenticationError as e:
        logger.info(f"Sign-in failed ({e.kind})")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=GENERIC_AUTH_FAILURE,
        )

    credential = auth.sessions.mint(
        principal.subject, principal.attributes, auth_method=principal.strategy
    )
    set_session_cookie(response, credential, auth)
    response.headers["Cache-Control"] = "no-store"

    return SessionTokenResponse(
        did=credential.claims.subject,
        expires_at=credential.claims.expires_at,
        access_token=credential.token,
    )


@router.get("/session", response_model=SessionResponse, response_model_exclude_none=True)
async def read_session(claims: SessionClaims = Depends(get_current_session)) -> dict:
    """Current session, derived from the token on every request."""
    return to_session_view(claims)


@router.post("/signout")
async def sign_out(response: Response, auth: AuthService = Depends(get_auth_service)) -> dict:
    """
    Clear the session cookie.

    Tokens are not revoked server-side; a copied token stays valid until it expires.
    """
    clear_session_cookie(response, auth)
    return {"signed_out": True}


@router.get("/providers", response_model=ProvidersResponse)
async def list_providers(auth: AuthService = Depends(get_auth_service)) -> ProvidersResponse:
    """Registered authentication strategies."""
    return ProvidersResponse(providers=auth.strategies.names())
