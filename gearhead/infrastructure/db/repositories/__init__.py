"""
Repository Layer for Gearhead Assistant

Exports all repository classes for dependency injection.
"""

from gearhead.infrastructure.db.repositories.chat_repository import (
    ChatRepository,
    get_chat_repository,
)
from gearhead.infrastructure.db.repositories.assistant_repository import (
    AssistantRepository,
    get_assistant_repository,
)
from gearhead.infrastructure.db.repositories.file_repository import (
    FileRepository,
    get_file_repository,
)
from gearhead.infrastructure.db.repositories.email_metadata_repository import (
    EmailMetadataRepository,
    get_email_metadata_repository,
)
from gearhead.infrastructure.db.repositories.processing_job_repository import (
    ProcessingJobRepository,
    get_processing_job_repository,
)
from gearhead.infrastructure.db.repositories.google_token_repository import (
    GoogleTokenRepository,
    get_google_token_repository,
)


__all__ = [
    "ChatRepository",
    "get_chat_repository",
    "AssistantRepository",
    "get_assistant_repository",
    "FileRepository",
    "get_file_repository",
    "EmailMetadataRepository",
    "get_email_metadata_repository",
    "ProcessingJobRepository",
    "get_processing_job_repository",
    "GoogleTokenRepository",
    "get_google_token_repository",
]
