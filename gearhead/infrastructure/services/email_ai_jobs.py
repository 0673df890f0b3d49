"""
Email AI Jobs for Gearhead Assistant

Background batch classification of emails. The categorize job assigns a
topic, the prioritize job a priority. Each email is handled on its own:
one bad reply never stops the rest of the batch.
"""

import logging
from typing import List, Optional

from openai import AsyncOpenAI

from gearhead.config.settings import settings
from gearhead.domain.email_ai import (
    EmailAIJobKind,
    EmailInput,
    InvalidModelResponse,
    ItemResult,
    ItemStatus,
    build_system_prompt,
    build_user_prompt,
    map_priority,
    parse_model_reply,
    summarize_results,
)
from gearhead.infrastructure.db.repositories.assistant_repository import AssistantRepository
from gearhead.infrastructure.db.repositories.email_metadata_repository import EmailMetadataRepository
from gearhead.infrastructure.db.repositories.processing_job_repository import ProcessingJobRepository
from gearhead.infrastructure.exceptions import ConfigurationError, NotFoundError


logger = logging.getLogger(__name__)


ACCEPTED_MESSAGES = {
    EmailAIJobKind.CATEGORIZE: (
        "AI categorization initiated for {count} emails. "
        "Processing will continue in the background."
    ),
    EmailAIJobKind.PRIORITIZE: (
        "AI prioritization initiated for {count} emails. Processing in background."
    ),
}


def config_id_for(kind: EmailAIJobKind) -> str:
    if kind is EmailAIJobKind.CATEGORIZE:
        return settings.email_categorizer_assistant_id
    return settings.email_prioritizer_assistant_id


class EmailAIJobService:
    """
    Runs categorize/prioritize batches.

    load_system_prompt is called while the request is still open so a
    broken configuration surfaces as an HTTP error. run_batch is then
    scheduled detached.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        assistant_repository: AssistantRepository,
        email_metadata_repository: EmailMetadataRepository,
        job_repository: ProcessingJobRepository,
        model: Optional[str] = None,
    ):
        self.client = client
        self.assistant_repository = assistant_repository
        self.email_metadata_repository = email_metadata_repository
        self.job_repository = job_repository
        self.model = model or settings.openai_chat_model

    async def load_system_prompt(self, kind: EmailAIJobKind) -> str:
        """
        Build the job's system prompt from its assistant configuration.

        Raises:
            ConfigurationError: the configuration row is missing
        """
        config_id = config_id_for(kind)
        try:
            config = await self.assistant_repository.get(config_id)
        except Exception as e:
            raise ConfigurationError(
                f"Failed to initialize AI assistant configuration: {e}", original_error=e
            )
        if not config:
            raise ConfigurationError(
                f"Failed to initialize AI assistant configuration: {config_id} not found",
            )
        return build_system_prompt(kind, config.system_prompt)

    async def run_batch(
        self,
        kind: EmailAIJobKind,
        user_id: str,
        emails: List[EmailInput],
        system_prompt: str,
        job_id: Optional[str] = None,
    ) -> List[ItemResult]:
        """
        Process every email in order.

        Returns:
            One ItemResult per input email
        """
        logger.info(
            f"[{kind.value}] User {user_id}, job {job_id or 'N/A'}: processing "
            f"{len(emails)} emails with {self.model}"
        )

        results: List[ItemResult] = []
        for email in emails:
            results.append(await self._process_one(kind, user_id, email, system_prompt, job_id))

        logger.info(
            f"[{kind.value}] User {user_id}, job {job_id or 'N/A'}: finished. "
            f"Summary: {summarize_results(results)}"
        )
        for result in results:
            if result.status is not ItemStatus.SUCCESS:
                logger.debug(f"[{kind.value}] {result.email_id}: {result.status.value} ({result.reason})")
        return results

    async def _process_one(
        self,
        kind: EmailAIJobKind,
        user_id: str,
        email: EmailInput,
        system_prompt: str,
        job_id: Optional[str],
    ) -> ItemResult:
        if not email.id or not email.content:
            logger.error(f"[{kind.value}] Skipping email {email.id or 'ID unknown'}: missing id or content")
            return ItemResult(email_id=email.id, status=ItemStatus.SKIPPED, reason="Missing id or content")

        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": build_user_prompt(email.id, email.content)},
                ],
                response_format={"type": "json_object"},
            )
            reply = completion.choices[0].message.content if completion.choices else None

            try:
                value = parse_model_reply(kind, reply, email.id)
            except InvalidModelResponse as e:
                logger.error(f"[{kind.value}] Unusable reply for email {email.id}: {e}")
                return ItemResult(email_id=email.id, status=ItemStatus.FAILED, reason=str(e))

            if kind is EmailAIJobKind.PRIORITIZE:
                priority = map_priority(value)
                if priority is None:
                    logger.error(f"[{kind.value}] Could not map priority {value!r} for email {email.id}")
                    return ItemResult(
                        email_id=email.id,
                        status=ItemStatus.FAILED,
                        reason=f"Invalid priority value received: {value}",
                    )
                value = priority.value

            if job_id:
                try:
                    await self.job_repository.increment_processed(job_id, 1)
                except Exception as e:
                    logger.error(f"[{kind.value}] Failed to increment job {job_id} for email {email.id}: {e}")

            try:
                if kind is EmailAIJobKind.CATEGORIZE:
                    await self.email_metadata_repository.upsert_topic(email.id, user_id, value)
                else:
                    await self.email_metadata_repository.upsert_priority(email.id, user_id, value)
            except Exception as e:
                logger.error(f"[{kind.value}] Upsert failed for email {email.id}: {e}")
                return ItemResult(email_id=email.id, status=ItemStatus.DB_ERROR, reason=str(e))

            return ItemResult(email_id=email.id, status=ItemStatus.SUCCESS, value=value)

        except Exception as e:
            logger.error(f"[{kind.value}] Error processing email {email.id}: {e}")
            return ItemResult(email_id=email.id, status=ItemStatus.ERROR, reason=str(e) or "Unknown error")


async def get_job_status(job_repository: ProcessingJobRepository, job_id: str, user_id: str):
    """
    Progress of a job owned by the user.

    Raises:
        NotFoundError: unknown job or owned by someone else
    """
    job = await job_repository.get_for_user(job_id, user_id)
    if not job:
        raise NotFoundError("Job not found", operation="select", table="ai_processing_jobs")
    return job
