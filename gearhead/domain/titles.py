"""
Chat title formatting.
"""

from typing import Optional


MAX_TITLE_LENGTH = 70
SMART_CUT_MIN_INDEX = 35
SHORT_TEXT_THRESHOLD = 50
MIN_SUMMARY_LENGTH = 5
DEFAULT_TITLE = "New Chat"

_TRAILING_PUNCTUATION = (".", ",", "!", ";")


def truncate_title(title: str) -> str:
    """
    Cap a title at MAX_TITLE_LENGTH characters.

    Over-long titles are cut at the last space if that space falls past
    SMART_CUT_MIN_INDEX, then suffixed with "...".
    """
    title = title.strip()
    if len(title) <= MAX_TITLE_LENGTH:
        return title

    title = title[:MAX_TITLE_LENGTH].strip()
    if title.endswith("..."):
        return title

    last_space = title.rfind(" ")
    if last_space > SMART_CUT_MIN_INDEX:
        title = title[:last_space]
    return f"{title}..."


def first_line_title(text: str) -> str:
    """Title from the first line of text, or DEFAULT_TITLE if that is empty."""
    first_line = text.split("\n")[0]
    return truncate_title(first_line) or DEFAULT_TITLE


def clean_model_title(raw: Optional[str]) -> str:
    """Strip wrapping quotes and one trailing punctuation mark, then cap length."""
    summary = (raw or "").strip()
    if not summary:
        return ""

    if summary[0] in "'\"":
        summary = summary[1:]
    if summary and summary[-1] in "'\"":
        summary = summary[:-1]

    if summary and not summary.endswith("...") and summary.endswith(_TRAILING_PUNCTUATION):
        summary = summary[:-1]

    return truncate_title(summary.strip())


def is_usable_title(summary: str) -> bool:
    return len(summary) >= MIN_SUMMARY_LENGTH or summary.lower() == DEFAULT_TITLE.lower()
