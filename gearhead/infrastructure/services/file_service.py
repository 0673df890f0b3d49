"""
File Service for Gearhead Assistant

Moves a user upload through object storage, the upstream Files API and
the assistant's vector store, then records it. Each failure step undoes
the resources already created.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

from openai import AsyncOpenAI

from gearhead.infrastructure.ai.vector_store_files import wait_for_vector_store_file
from gearhead.infrastructure.db.models.stored_file import StoredFile
from gearhead.infrastructure.db.repositories.assistant_repository import AssistantRepository
from gearhead.infrastructure.db.repositories.file_repository import FileRepository
from gearhead.infrastructure.exceptions import (
    AIServiceError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from gearhead.infrastructure.storage.object_storage import ObjectStorage


logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_.\s-]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_filename(name: str) -> str:
    """Replace anything outside [A-Za-z0-9_.- ] with "_" and collapse whitespace runs to "_"."""
    return _WHITESPACE.sub("_", _UNSAFE_CHARS.sub("_", name))


def build_storage_path(user_id: str, filename: str, now_ms: Optional[int] = None) -> str:
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"public/{user_id}/{timestamp}-{filename}"


@dataclass
class UploadedContent:
    """Bytes to ingest plus what the client said about them."""
    filename: str
    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)


class FileService:
    """
    Upload, list, download and delete user files.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        storage: ObjectStorage,
        file_repository: FileRepository,
        assistant_repository: AssistantRepository,
    ):
        self.client = client
        self.storage = storage
        self.file_repository = file_repository
        self.assistant_repository = assistant_repository

    # =========================================================================
    # Upload
    # =========================================================================

    async def ingest(self, user_id: str, assistant_config_id: str, upload: UploadedContent) -> StoredFile:
        """
        Store a file and index it in the assistant's vector store.

        Args:
            user_id: Owner
            assistant_config_id: Assistant whose vector store receives the file
            upload: File bytes and metadata

        Returns:
            The created file row

        Raises:
            NotFoundError: assistant configuration does not exist
            ValidationError: assistant has not been provisioned yet
            StorageError: storage upload failed
            AIServiceError: upstream upload or indexing failed
            DatabaseError: file row could not be written
        """
        config = await self.assistant_repository.get(assistant_config_id)
        if not config:
            raise NotFoundError(
                f"Assistant configuration with ID {assistant_config_id} not found.",
                operation="select",
                table="assistants",
            )
        if not config.openai_assistant_id:
            raise ValidationError(f"Assistant {assistant_config_id} is missing OpenAI assistant ID.")
        if not config.openai_vector_store_id:
            raise ValidationError(
                f"Assistant {assistant_config_id} is missing its dedicated OpenAI vector store ID."
            )
        vector_store_id = config.openai_vector_store_id

        filename = sanitize_filename(upload.filename)
        storage_path = build_storage_path(user_id, filename)
        logger.info(f"Processing upload {filename} for user {user_id} into vector store {vector_store_id}")

        await self.storage.upload(storage_path, upload.data, upload.mime_type)

        openai_file_id: Optional[str] = None
        try:
            uploaded = await self.client.files.create(
                file=(filename, upload.data, upload.mime_type),
                purpose="assistants",
            )
            openai_file_id = uploaded.id
            await self.client.vector_stores.files.create(
                vector_store_id=vector_store_id,
                file_id=openai_file_id,
            )
            await wait_for_vector_store_file(self.client, vector_store_id, openai_file_id)
        except Exception as e:
            logger.error(f"OpenAI processing failed for {filename}: {e}")
            if openai_file_id:
                await self._quietly(f"delete OpenAI file {openai_file_id}", self.client.files.delete(openai_file_id))
            await self._quietly(f"remove storage object {storage_path}", self.storage.remove([storage_path]))
            raise AIServiceError(f"OpenAI processing failed: {e}", operation="upload_file", original_error=e)

        try:
            record = await self.file_repository.create(
                user_id=user_id,
                filename=filename,
                storage_path=storage_path,
                mime_type=upload.mime_type,
                size_bytes=upload.size,
                openai_file_id=openai_file_id,
                openai_vector_store_id=vector_store_id,
            )
        except Exception as e:
            logger.error(f"File row insert failed for {filename}: {e}")
            await self._quietly(f"remove storage object {storage_path}", self.storage.remove([storage_path]))
            await self._quietly(
                f"detach file {openai_file_id} from vector store",
                self.client.vector_stores.files.delete(openai_file_id, vector_store_id=vector_store_id),
            )
            await self._quietly(f"delete OpenAI file {openai_file_id}", self.client.files.delete(openai_file_id))
            raise DatabaseError(
                f"Failed to save file metadata: {e}",
                operation="insert",
                table="files",
                original_error=e,
            )

        logger.info(f"File {record.id} stored and indexed")
        return record

    # =========================================================================
    # Read / Delete
    # =========================================================================

    async def list_files(self, user_id: str) -> List[StoredFile]:
        return await self.file_repository.list_for_user(user_id)

    async def download(self, user_id: str, file_id: str) -> Tuple[StoredFile, bytes]:
        """
        Fetch a file the user owns.

        Raises:
            NotFoundError: missing or not owned
            StorageError: the object could not be read
        """
        record = await self._get_owned(user_id, file_id)
        data = await self.storage.download(record.storage_path)
        return record, data

    async def delete(self, user_id: str, file_id: str) -> None:
        """
        Remove a file everywhere it lives.

        External cleanup is best-effort; only the row delete must succeed.

        Raises:
            NotFoundError: missing or not owned
        """
        record = await self._get_owned(user_id, file_id)

        if record.storage_path:
            await self._quietly(
                f"remove storage object {record.storage_path}",
                self.storage.remove([record.storage_path]),
            )

        if record.openai_file_id and record.openai_vector_store_id:
            await self._quietly(
                f"detach file {record.openai_file_id} from vector store {record.openai_vector_store_id}",
                self.client.vector_stores.files.delete(
                    record.openai_file_id, vector_store_id=record.openai_vector_store_id
                ),
            )
        if record.openai_file_id:
            await self._quietly(
                f"delete OpenAI file {record.openai_file_id}",
                self.client.files.delete(record.openai_file_id),
            )

        await self.file_repository.delete(record.id)
        logger.info(f"Deleted file {file_id} for user {user_id}")

    async def _get_owned(self, user_id: str, file_id: str) -> StoredFile:
        record = await self.file_repository.get_for_user(file_id, user_id)
        if not record:
            raise NotFoundError("File not found or access denied.", operation="select", table="files")
        return record

    async def _quietly(self, description: str, awaitable) -> None:
        try:
            await awaitable
        except Exception as e:
            logger.warning(f"Cleanup: failed to {description}: {e}")
