"""
Chat stream routing.

Decides whether a stream request is served by the chat completions API
or by an upstream assistant thread. Short, file-free requests go to
completions. Anything that references a file or may overflow the model
context goes to the assistants path.
"""

import json
import math
from dataclasses import dataclass
from typing import Any, Optional

from gearhead.config.settings import settings
from gearhead.domain.chat import ChatMode


@dataclass(frozen=True)
class RoutingDecision:
    mode: ChatMode
    estimated_tokens: int
    has_file: bool


def estimate_token_count(text: Optional[str], chars_per_token: Optional[float] = None) -> int:
    """Rough token estimate: one token per CHARS_PER_TOKEN characters, rounded up."""
    if not text:
        return 0
    ratio = chars_per_token or settings.chars_per_token
    return math.ceil(len(text) / ratio)


def build_effective_message(message: str, context: Any = None) -> str:
    """Append serialized client context to the user message, if any."""
    if not context:
        return message
    return f"{message}\n\nCONTEXT:{json.dumps(context)}"


def choose_chat_mode(
    effective_message: str,
    user_prompt: Optional[str],
    filename: Optional[str],
    token_limit: Optional[int] = None,
) -> RoutingDecision:
    """
    Pick the upstream API for a stream request.

    Args:
        effective_message: User message with any context suffix applied
        user_prompt: Assistant configuration's per-turn prompt
        filename: Referenced file id, if the user attached one
        token_limit: Context window ceiling, defaults to CHAT_CONTEXT_TOKEN_LIMIT

    Returns:
        RoutingDecision with COMPLETIONS only when no file is referenced
        and the estimate is strictly below the limit
    """
    limit = token_limit if token_limit is not None else settings.chat_context_token_limit
    estimated = estimate_token_count(effective_message) + estimate_token_count(user_prompt)
    has_file = bool(filename)

    if not has_file and estimated < limit:
        mode = ChatMode.COMPLETIONS
    else:
        mode = ChatMode.ASSISTANTS

    return RoutingDecision(mode=mode, estimated_tokens=estimated, has_file=has_file)
