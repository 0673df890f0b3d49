"""
AI Job Routes for Gearhead Assistant

Kick off background email categorization/prioritization and poll their
progress.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from gearhead.api.dependencies import (
    get_current_user_id,
    get_email_ai_job_service,
)
from gearhead.domain.email_ai import EmailAIJobKind, EmailInput
from gearhead.infrastructure.background import spawn
from gearhead.infrastructure.db.repositories import (
    ProcessingJobRepository,
    get_processing_job_repository,
)
from gearhead.infrastructure.exceptions import ValidationError
from gearhead.infrastructure.services.email_ai_jobs import (
    ACCEPTED_MESSAGES,
    EmailAIJobService,
    get_job_status,
)


logger = logging.getLogger(__name__)

router = APIRouter()


class EmailBatchRequest(BaseModel):
    emails: Optional[List[EmailInput]] = None
    job_id: Optional[UUID] = Field(None, alias="jobId")

    model_config = ConfigDict(populate_by_name=True)


class JobAcceptedResponse(BaseModel):
    message: str


class ProcessingStatusResponse(BaseModel):
    status: str
    processed_emails: int
    total_emails: int
    error_message: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


async def _start_job(
    kind: EmailAIJobKind,
    request: EmailBatchRequest,
    user_id: str,
    service: EmailAIJobService,
) -> JobAcceptedResponse:
    if not request.emails:
        raise ValidationError("Invalid request body: 'emails' array is required.")

    # Load the prompt now so configuration errors reach the caller
    system_prompt = await service.load_system_prompt(kind)

    job_id = str(request.job_id) if request.job_id else None
    spawn(
        service.run_batch(kind, user_id, list(request.emails), system_prompt, job_id=job_id),
        name=f"{kind.value}-{job_id or user_id}",
    )
    logger.info(f"[{kind.value}] Accepted {len(request.emails)} emails for user {user_id}")
    return JobAcceptedResponse(message=ACCEPTED_MESSAGES[kind].format(count=len(request.emails)))


@router.post("/ai/categorize", response_model=JobAcceptedResponse, status_code=202)
async def categorize_emails(
    request: EmailBatchRequest,
    user_id: str = Depends(get_current_user_id),
    service: EmailAIJobService = Depends(get_email_ai_job_service),
):
    """Assign a topic to each email in the background."""
    return await _start_job(EmailAIJobKind.CATEGORIZE, request, user_id, service)


@router.post("/ai/prioritize", response_model=JobAcceptedResponse, status_code=202)
async def prioritize_emails(
    request: EmailBatchRequest,
    user_id: str = Depends(get_current_user_id),
    service: EmailAIJobService = Depends(get_email_ai_job_service),
):
    """Assign HIGH/MID/LOW priority to each email in the background."""
    return await _start_job(EmailAIJobKind.PRIORITIZE, request, user_id, service)


@router.get("/ai/processing-status", response_model=ProcessingStatusResponse)
async def processing_status(
    job_id: UUID = Query(..., alias="jobId"),
    user_id: str = Depends(get_current_user_id),
    job_repository: ProcessingJobRepository = Depends(get_processing_job_repository),
):
    job = await get_job_status(job_repository, str(job_id), user_id)
    return ProcessingStatusResponse.model_validate(job)
