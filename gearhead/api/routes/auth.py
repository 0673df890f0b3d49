"""
Auth Routes for Gearhead Assistant

Persists the Google OAuth tokens handed over after a Supabase Google
sign-in, encrypted at rest.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from gearhead.api.dependencies import get_current_user_id
from gearhead.infrastructure.db.repositories import (
    GoogleTokenRepository,
    get_google_token_repository,
)
from gearhead.infrastructure.exceptions import ValidationError
from gearhead.infrastructure.security.token_crypto import TokenCipher, get_token_cipher


logger = logging.getLogger(__name__)

router = APIRouter()


class StoreGoogleTokensRequest(BaseModel):
    provider_token: Optional[str] = None
    provider_refresh_token: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


@router.post("/auth/store-google-tokens", response_model=MessageResponse)
async def store_google_tokens(
    request: StoreGoogleTokensRequest,
    user_id: str = Depends(get_current_user_id),
    token_repository: GoogleTokenRepository = Depends(get_google_token_repository),
    cipher: TokenCipher = Depends(get_token_cipher),
):
    """
    Encrypt and store the caller's Google tokens.

    The refresh token is only replaced when a new one is sent.
    """
    if not request.provider_token:
        raise ValidationError("Missing provider_token")

    encrypted_refresh = (
        cipher.encrypt(request.provider_refresh_token) if request.provider_refresh_token else None
    )
    await token_repository.upsert(
        user_id=user_id,
        encrypted_access_token=cipher.encrypt(request.provider_token),
        encrypted_refresh_token=encrypted_refresh,
    )
    return MessageResponse(message="Tokens stored successfully")
