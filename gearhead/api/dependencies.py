"""
API Dependencies

FastAPI dependency injection for authentication and the services the
routes talk to.

Security: Supabase access tokens are verified against the project JWKS
(ES256) with an HS256 fallback through SUPABASE_JWT_SECRET.
"""

import logging
from typing import Optional

import jwt
from jwt import PyJWKClient
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from openai import AsyncOpenAI

from gearhead.config.settings import get_settings
from gearhead.infrastructure.ai.assistant_provisioning import (
    AssistantCache,
    AssistantProvisioner,
    get_assistant_cache,
)
from gearhead.infrastructure.ai.openai_client import get_openai_client
from gearhead.infrastructure.exceptions import AuthenticationError
from gearhead.infrastructure.db.repositories import (
    AssistantRepository,
    ChatRepository,
    EmailMetadataRepository,
    FileRepository,
    GoogleTokenRepository,
    ProcessingJobRepository,
    get_assistant_repository,
    get_chat_repository,
    get_email_metadata_repository,
    get_file_repository,
    get_google_token_repository,
    get_processing_job_repository,
)
from gearhead.infrastructure.services.chat_service import ChatService
from gearhead.infrastructure.services.chat_stream_service import ChatStreamService
from gearhead.infrastructure.services.email_ai_jobs import EmailAIJobService
from gearhead.infrastructure.services.file_service import FileService
from gearhead.infrastructure.services.google_drive import GoogleDriveClient
from gearhead.infrastructure.storage.object_storage import ObjectStorage, get_object_storage


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

_jwks_client: Optional[PyJWKClient] = None


def _get_jwks_client() -> PyJWKClient:
    """Return a singleton PyJWKClient for the Supabase JWKS endpoint."""
    global _jwks_client
    if _jwks_client is None:
        settings = get_settings()
        jwks_url = f"{settings.supabase_url}/auth/v1/.well-known/jwks.json"
        _jwks_client = PyJWKClient(jwks_url, cache_keys=True)
    return _jwks_client


def _decode_with_jwks(token: str, issuer: str) -> dict:
    signing_key = _get_jwks_client().get_signing_key_from_jwt(token)
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=["ES256"],
        issuer=issuer,
        audience="authenticated",
        options={"require": ["exp", "sub", "iss"]},
    )


def _decode_with_secret(token: str, secret: str, issuer: str) -> dict:
    return jwt.decode(
        token,
        secret,
        algorithms=["HS256"],
        issuer=issuer,
        audience="authenticated",
        options={"require": ["exp", "sub", "iss"]},
    )


def verify_access_token(token: str) -> str:
    """
    Verify a Supabase access token and return its subject.

    JWKS (ES256) is tried first, then HS256 with SUPABASE_JWT_SECRET.

    Raises:
        HTTPException 401: expired, invalid or missing the sub claim
    """
    settings = get_settings()
    issuer = f"{settings.supabase_url}/auth/v1"

    payload: Optional[dict] = None

    try:
        payload = _decode_with_jwks(token, issuer)
    except (jwt.exceptions.PyJWKClientError, jwt.InvalidTokenError) as jwks_err:
        logger.debug("JWKS verification failed, trying HS256 fallback: %s", jwks_err)

    if payload is None and settings.supabase_jwt_secret:
        try:
            payload = _decode_with_secret(token, settings.supabase_jwt_secret, issuer)
        except jwt.ExpiredSignatureError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
            )
        except jwt.InvalidTokenError as e:
            logger.warning("HS256 JWT verification also failed: %s", e)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or unverifiable token",
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user ID",
        )
    return user_id


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Authenticated user id (the ``sub`` claim).

    Raises:
        HTTPException 401: token missing, expired, or invalid.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return verify_access_token(credentials.credentials)


async def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """
    User id if a valid token was sent, else None.

    Lets a route validate its body before deciding the caller is
    unauthenticated.
    """
    if not credentials:
        return None

    try:
        return verify_access_token(credentials.credentials)
    except HTTPException:
        return None


def require_user(user_id: Optional[str]) -> str:
    """Turn an optional user id into a 401 when absent."""
    if not user_id:
        raise AuthenticationError("Unauthorized")
    return user_id


# =============================================================================
# Service wiring
# =============================================================================

def get_provisioner(
    client: AsyncOpenAI = Depends(get_openai_client),
    assistant_repository: AssistantRepository = Depends(get_assistant_repository),
) -> AssistantProvisioner:
    return AssistantProvisioner(client, assistant_repository)


def get_chat_service(
    client: AsyncOpenAI = Depends(get_openai_client),
    chat_repository: ChatRepository = Depends(get_chat_repository),
    assistant_repository: AssistantRepository = Depends(get_assistant_repository),
    assistant_cache: AssistantCache = Depends(get_assistant_cache),
    provisioner: AssistantProvisioner = Depends(get_provisioner),
) -> ChatService:
    return ChatService(client, chat_repository, assistant_repository, assistant_cache, provisioner)


def get_chat_stream_service(
    client: AsyncOpenAI = Depends(get_openai_client),
    chat_repository: ChatRepository = Depends(get_chat_repository),
    assistant_repository: AssistantRepository = Depends(get_assistant_repository),
    file_repository: FileRepository = Depends(get_file_repository),
    assistant_cache: AssistantCache = Depends(get_assistant_cache),
    provisioner: AssistantProvisioner = Depends(get_provisioner),
) -> ChatStreamService:
    return ChatStreamService(
        client,
        chat_repository,
        assistant_repository,
        file_repository,
        assistant_cache,
        provisioner,
    )


def get_file_service(
    client: AsyncOpenAI = Depends(get_openai_client),
    storage: ObjectStorage = Depends(get_object_storage),
    file_repository: FileRepository = Depends(get_file_repository),
    assistant_repository: AssistantRepository = Depends(get_assistant_repository),
) -> FileService:
    return FileService(client, storage, file_repository, assistant_repository)


def get_google_drive_client(
    token_repository: GoogleTokenRepository = Depends(get_google_token_repository),
) -> GoogleDriveClient:
    return GoogleDriveClient(token_repository)


def get_email_ai_job_service(
    client: AsyncOpenAI = Depends(get_openai_client),
    assistant_repository: AssistantRepository = Depends(get_assistant_repository),
    email_metadata_repository: EmailMetadataRepository = Depends(get_email_metadata_repository),
    job_repository: ProcessingJobRepository = Depends(get_processing_job_repository),
) -> EmailAIJobService:
    return EmailAIJobService(client, assistant_repository, email_metadata_repository, job_repository)
