"""
Google Drive download.

Fetches a Drive file's metadata and bytes with the user's stored OAuth
access token.
"""

import logging
from typing import Optional
from urllib.parse import quote

import httpx

from gearhead.infrastructure.db.repositories.google_token_repository import GoogleTokenRepository
from gearhead.infrastructure.exceptions import GearheadError, PermissionDeniedError
from gearhead.infrastructure.security.token_crypto import TokenCipher, get_token_cipher
from gearhead.infrastructure.services.file_service import UploadedContent


logger = logging.getLogger(__name__)

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files/{file_id}"


class GoogleDriveError(GearheadError):
    """Drive rejected the request or returned an unusable response."""


class GoogleDriveClient:
    """Downloads Drive files on behalf of a user."""

    def __init__(
        self,
        token_repository: GoogleTokenRepository,
        cipher: Optional[TokenCipher] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ):
        self.token_repository = token_repository
        self.cipher = cipher
        self._http_client = http_client
        self.timeout = timeout

    async def get_access_token(self, user_id: str) -> str:
        """
        Decrypted access token for the user.

        Raises:
            PermissionDeniedError: no token stored
        """
        row = await self.token_repository.get(user_id)
        if not row or not row.encrypted_access_token:
            logger.warning(f"No Google access token stored for user {user_id}")
            raise PermissionDeniedError(
                "Google authentication token not found or expired. Please reconnect Google Drive."
            )
        cipher = self.cipher or get_token_cipher()
        return cipher.decrypt(row.encrypted_access_token)

    async def download(self, user_id: str, drive_file_id: str, file_name: str) -> UploadedContent:
        """
        Download a Drive file.

        Args:
            user_id: Whose token to use
            drive_file_id: Drive file id
            file_name: Client-supplied display name

        Returns:
            UploadedContent ready for FileService.ingest

        Raises:
            PermissionDeniedError: no token, or Drive answered 401/403
            GoogleDriveError: any other Drive failure
        """
        token = await self.get_access_token(user_id)
        headers = {"Authorization": f"Bearer {token}"}
        url = DRIVE_FILES_URL.format(file_id=quote(drive_file_id, safe=""))

        client = self._http_client or httpx.AsyncClient(timeout=self.timeout)
        try:
            meta = await client.get(url, headers=headers, params={"fields": "mimeType,name"})
            self._raise_for_status(meta, drive_file_id)
            mime_type = meta.json().get("mimeType") or "application/octet-stream"

            content = await client.get(url, headers=headers, params={"alt": "media"})
            self._raise_for_status(content, drive_file_id)
        except httpx.HTTPError as e:
            raise GoogleDriveError(f"Google Drive request failed: {e}", original_error=e)
        finally:
            if self._http_client is None:
                await client.aclose()

        logger.info(f"Downloaded Drive file {drive_file_id} ({len(content.content)} bytes)")
        return UploadedContent(filename=file_name, data=content.content, mime_type=mime_type)

    @staticmethod
    def _raise_for_status(response: httpx.Response, drive_file_id: str) -> None:
        if response.status_code in (401, 403):
            raise PermissionDeniedError(
                "Google Drive access denied. Please reconnect Google Drive.",
                details={"drive_file_id": drive_file_id},
            )
        if response.status_code >= 400:
            raise GoogleDriveError(
                f"Google Drive returned {response.status_code} for file {drive_file_id}",
                details={"status_code": response.status_code},
            )
