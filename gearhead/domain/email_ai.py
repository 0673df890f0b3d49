"""
Email AI Domain Rules

Prompt construction and response validation for the categorize and
prioritize batch jobs. Kept free of I/O so the rules can be tested alone.
"""

import json
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


EMAIL_TOPICS: List[str] = [
    "General Inquiry",
    "Support Request",
    "Billing Question",
    "Partnership Opportunity",
    "Feedback",
    "Product Update",
    "Sales Lead",
    "Job Application",
    "Complaint",
    "Other",
]

USER_PROMPT_TEMPLATE = "Original Email ID: {email_id}\nEmail Content:\n{email_content}"


class EmailAIJobKind(str, Enum):
    CATEGORIZE = "categorize"
    PRIORITIZE = "prioritize"


class EmailPriority(str, Enum):
    """Stored priority values."""
    HIGH = "HIGH"
    MID = "MID"
    LOW = "LOW"


class ItemStatus(str, Enum):
    """Outcome of processing one email in a batch."""
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"
    DB_ERROR = "db_error"
    ERROR = "error"


class EmailInput(BaseModel):
    """One email submitted to a batch job."""
    id: Optional[str] = None
    content: Optional[str] = None


class ItemResult(BaseModel):
    """Per-email result; logged in the batch summary."""
    email_id: Optional[str] = None
    status: ItemStatus
    value: Optional[str] = None
    reason: Optional[str] = None


class InvalidModelResponse(ValueError):
    """The model reply is not usable."""


_PRIORITY_MAP: Dict[str, EmailPriority] = {
    "HIGH": EmailPriority.HIGH,
    "MEDIUM": EmailPriority.MID,
    "LOW": EmailPriority.LOW,
}


def map_priority(raw: Any) -> Optional[EmailPriority]:
    """Map a model-reported priority (any case) to its stored value."""
    if not isinstance(raw, str):
        return None
    return _PRIORITY_MAP.get(raw.strip().upper())


def build_system_prompt(kind: EmailAIJobKind, config_prompt: Optional[str]) -> str:
    base = config_prompt or ""
    if kind is EmailAIJobKind.CATEGORIZE:
        return f"{base}\nCATEGORIES: {', '.join(EMAIL_TOPICS)}"
    return base


def build_user_prompt(email_id: str, content: str) -> str:
    return USER_PROMPT_TEMPLATE.format(email_id=email_id, email_content=content)


def parse_model_reply(
    kind: EmailAIJobKind,
    reply: Optional[str],
    expected_email_id: str,
) -> str:
    """
    Validate a JSON-mode reply and pull out the field the job writes.

    Args:
        kind: Which job produced the reply
        reply: Raw message content
        expected_email_id: Id the reply must echo back

    Returns:
        Category string, or the raw priority string for prioritize

    Raises:
        InvalidModelResponse: empty, unparseable, mis-shaped or mismatched reply
    """
    if not reply:
        raise InvalidModelResponse("empty response")

    try:
        payload = json.loads(reply)
    except json.JSONDecodeError as e:
        raise InvalidModelResponse(f"invalid JSON: {e}")

    if not isinstance(payload, dict):
        raise InvalidModelResponse("response is not a JSON object")

    if payload.get("email_id") != expected_email_id:
        raise InvalidModelResponse(
            f"email_id mismatch: expected {expected_email_id}, got {payload.get('email_id')}"
        )

    field = "category" if kind is EmailAIJobKind.CATEGORIZE else "priority"
    value = payload.get(field)
    if not isinstance(value, str):
        raise InvalidModelResponse(f"missing or non-string {field}")

    return value


def summarize_results(results: List[ItemResult]) -> Dict[str, int]:
    """Count results per status."""
    summary = {status.value: 0 for status in ItemStatus}
    for result in results:
        summary[result.status.value] += 1
    return summary
