"""
SQLModel ORM Models for Gearhead Assistant

Import models here to register them with SQLModel.metadata.
"""

from gearhead.infrastructure.db.models.assistant import AssistantConfig
from gearhead.infrastructure.db.models.thread import Thread
from gearhead.infrastructure.db.models.message import Message
from gearhead.infrastructure.db.models.stored_file import StoredFile
from gearhead.infrastructure.db.models.email_metadata import EmailMetadata
from gearhead.infrastructure.db.models.processing_job import AIProcessingJob
from gearhead.infrastructure.db.models.google_token import UserGoogleToken


__all__ = [
    # Chat
    "AssistantConfig",
    "Thread",
    "Message",
    # Files
    "StoredFile",
    # Email AI
    "EmailMetadata",
    "AIProcessingJob",
    # Auth
    "UserGoogleToken",
]
