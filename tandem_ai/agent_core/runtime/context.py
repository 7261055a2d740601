from __future__ import annotations

"""Working-memory trimming for long ReAct runs.

The loop calls ``trim_working_memory`` after every observation. Nothing is
dropped until the memory exceeds ``max_messages + 2`` messages or
``max_tokens`` estimated tokens. Then only the most recent ``max_messages``
messages are kept (fewer if they alone exceed the token budget), together with:

- the task anchor (the user message carrying the run's prompt), always first;
- a system marker saying how many messages were dropped.

The window never starts on a tool message. It is widened back to the
assistant message that requested the tool, or, when the token budget forbids
that, narrowed past the orphaned observation.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from ..schemas.domain import ChatMessage, ChatRole

logger = logging.getLogger(__name__)

TRIM_MARKER = "[Historical context trimmed]"
TOOL_CALL_TOKEN_OVERHEAD = 100


def estimate_tokens(message: ChatMessage) -> int:
    """Rough token count: characters / 1.5, plus a flat cost for a tool request."""
    length = len(message.content or "")
    if message.role == ChatRole.assistant and message.tool_name:
        length += TOOL_CALL_TOKEN_OVERHEAD
    return int(length / 1.5)


def estimate_total_tokens(messages: Sequence[ChatMessage]) -> int:
    return sum(estimate_tokens(m) for m in messages)


def _is_marker(message: ChatMessage) -> bool:
    return message.role == ChatRole.system and message.content.startswith(TRIM_MARKER)


def _find_anchor(messages: Sequence[ChatMessage], prompt: Optional[str]) -> Optional[int]:
    first_user: Optional[int] = None
    for i, m in enumerate(messages):
        if m.role != ChatRole.user:
            continue
        if prompt is not None and m.content == prompt:
            return i
        if first_user is None:
            first_user = i
    return first_user


def trim_working_memory(
    messages: List[ChatMessage],
    *,
    max_messages: int,
    max_tokens: int,
    prompt: Optional[str] = None,
) -> Tuple[List[ChatMessage], int]:
    """
    Return the trimmed memory and the number of messages dropped.

    Args:
        messages: The working memory, oldest first.
        max_messages: Messages kept from the tail once trimming kicks in.
        max_tokens: Estimated token budget that also triggers trimming.
        prompt: Text of the run's prompt; its user message is kept as anchor.

    Returns:
        ``(messages, 0)`` unchanged when below both thresholds.
    """
    if len(messages) < 4:
        return messages, 0
    if len(messages) <= max_messages + 2 and estimate_total_tokens(messages) <= max_tokens:
        return messages, 0

    start = max(0, len(messages) - max_messages)
    while start > 0 and messages[start].role == ChatRole.tool:
        start -= 1
    # over budget: shrink the window further, keeping at least the last two
    while start < len(messages) - 2 and estimate_total_tokens(messages[start:]) > max_tokens:
        start += 1
    while start < len(messages) - 1 and messages[start].role == ChatRole.tool:
        start += 1

    anchor = _find_anchor(messages, prompt)
    # earlier markers are replaced, not counted
    dropped = sum(1 for i, m in enumerate(messages[:start]) if i != anchor and not _is_marker(m))
    if dropped <= 0:
        return messages, 0

    trimmed: List[ChatMessage] = []
    if anchor is not None and anchor < start:
        trimmed.append(messages[anchor])
    trimmed.append(
        ChatMessage(
            role=ChatRole.system,
            content=f"{TRIM_MARKER} (Dropped {dropped} messages for context optimization)",
        )
    )
    trimmed.extend(m for m in messages[start:] if not _is_marker(m))
    return trimmed, dropped
