"""
Request and response models for the authentication API.
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class InitiateChallengeRequest(BaseModel):
    """Request body for challenge issuance."""
    email: str = Field(..., min_length=1, max_length=320, description="Identity reference used to look up the DID")


class InitiateChallengeResponse(BaseModel):
    """A challenge for the client to sign with the DID's key."""
    did: str = Field(..., description="DID registered for the identity reference")
    challenge: str = Field(..., description="Single-use challenge to sign")
    expires_at: float = Field(..., description="Unix timestamp after which the challenge is rejected")


class VerifyChallengeRequest(BaseModel):
    """Signed challenge submitted to complete authentication."""
    did: str = Field(..., max_length=2048, description="DID the challenge was issued to")
    challenge: str = Field(..., max_length=512, description="The issued challenge")
    signature: str = Field(..., max_length=16384, description="Signature over the challenge (compact JWS)")
    email: Optional[str] = Field(
        None, max_length=320, description="Legacy identity reference (accepted, not trusted)"
    )


class SessionTokenResponse(BaseModel):
    """Response body for a successful authentication."""
    authenticated: bool = Field(True, description="Always true on success")
    did: str = Field(..., description="Subject of the session")
    expires_at: int = Field(..., description="Unix timestamp the session expires")
    access_token: str = Field(..., description="Session token (also set as cookie)")
    token_type: str = Field("bearer", description="Token type for the Authorization header")


class SessionUser(BaseModel):
    id: str = Field(..., description="The DID")
    did: str = Field(..., description="The DID")
    email: Optional[str] = None
    name: Optional[str] = None


class SessionResponse(BaseModel):
    """Client-visible session view."""
    user: SessionUser
    auth_method: str
    expires: str = Field(..., description="ISO 8601 expiry")


class ProvidersResponse(BaseModel):
    providers: List[str] = Field(..., description="Registered authentication strategies")
