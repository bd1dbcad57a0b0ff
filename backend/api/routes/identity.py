"""
Challenge Issuance Endpoint

Step one of DID sign-in: the client sends an identity reference (email) and
receives the DID registered for it together with a single-use challenge to
sign with that DID's key.

Unknown identities and directory failures produce the same response, so the
endpoint cannot be used to enumerate registered accounts.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from backend.api.schemas import InitiateChallengeRequest, InitiateChallengeResponse
from backend.api.session_auth import get_auth_service
from backend.core.identity.errors import AuthenticationError, GENERIC_ISSUE_FAILURE
from backend.core.identity.service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/identity", tags=["identity"])


@router.post("/initiate-challenge", response_model=InitiateChallengeResponse)
async def initiate_challenge(
    request: InitiateChallengeRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
) -> InitiateChallengeResponse:
    """
    Issue a challenge for the DID registered to an email address.

    Any earlier challenge still outstanding for the same DID is invalidated.
    """
    try:
        issued = await auth.issuer.issue(request.email)
    except AuthenticationError as e:
        logger.warning(
            f"Challenge issuance failed: {e.kind} ({e})"
            + (f" - {e.details}" if e.details else "")
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=GENERIC_ISSUE_FAILURE,
        )

    response.headers["Cache-Control"] = "no-store"
    return InitiateChallengeResponse(
        did=issued.did,
        challenge=issued.challenge,
        expires_at=issued.expires_at,
    )
