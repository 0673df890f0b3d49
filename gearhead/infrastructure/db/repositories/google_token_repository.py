"""
Google Token Repository

Stores already-encrypted OAuth tokens. Encryption happens in
gearhead.infrastructure.security.token_crypto before values reach here.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlmodel import select

from gearhead.infrastructure.db.database import get_session_context
from gearhead.infrastructure.db.models.google_token import UserGoogleToken
from gearhead.infrastructure.db.repositories.base_repository import IdLike, as_uuid


logger = logging.getLogger(__name__)

GOOGLE_PROVIDER = "google"


class GoogleTokenRepository:
    """Repository for user_google_tokens."""

    async def get(self, user_id: IdLike, provider: str = GOOGLE_PROVIDER) -> Optional[UserGoogleToken]:
        async with get_session_context() as session:
            statement = (
                select(UserGoogleToken)
                .where(UserGoogleToken.user_id == as_uuid(user_id))
                .where(UserGoogleToken.provider == provider)
            )
            result = await session.execute(statement)
            return result.scalar_one_or_none()

    async def upsert(
        self,
        user_id: IdLike,
        encrypted_access_token: str,
        encrypted_refresh_token: Optional[str] = None,
        provider: str = GOOGLE_PROVIDER,
    ) -> None:
        """
        Create or update the token row for (user_id, provider).

        An existing refresh token is kept unless a new one is supplied,
        since Google only returns one on the first consent.
        """
        now = datetime.utcnow()
        values = {
            "id": uuid4(),
            "user_id": as_uuid(user_id),
            "provider": provider,
            "encrypted_access_token": encrypted_access_token,
            "created_at": now,
            "updated_at": now,
        }
        update_set = {
            "encrypted_access_token": encrypted_access_token,
            "updated_at": now,
        }
        if encrypted_refresh_token:
            values["encrypted_refresh_token"] = encrypted_refresh_token
            update_set["encrypted_refresh_token"] = encrypted_refresh_token

        async with get_session_context() as session:
            stmt = pg_insert(UserGoogleToken).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "provider"],
                set_=update_set,
            )
            await session.execute(stmt)

        logger.info(f"Stored Google tokens for user {user_id}")


_google_token_repo_instance: Optional[GoogleTokenRepository] = None


def get_google_token_repository() -> GoogleTokenRepository:
    """Get or create Google token repository singleton."""
    global _google_token_repo_instance

    if _google_token_repo_instance is None:
        _google_token_repo_instance = GoogleTokenRepository()

    return _google_token_repo_instance
