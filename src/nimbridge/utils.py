"""Utility functions for the NIM bridge proxy."""

import re
import time
import logging
from typing import Dict, Any, Optional

from .models import ChatCompletionResponse, Choice, ResponseMessage, Usage

logger = logging.getLogger(__name__)

REASONING_FIELDS = ("reasoning_content", "reasoning")

# Non-greedy and case-insensitive. The closing tag must repeat the opening
# tag name, and nested tags of the same name are not supported.
REASONING_BLOCK_PATTERN = re.compile(
    r"<\s*(thinking|analysis|reasoning)[^>]*>[\s\S]*?<\s*/\s*\1\s*>",
    re.IGNORECASE,
)
# Greedy, so the cut lands after the last marker.
ANSWER_MARKER_PATTERN = re.compile(r"^[\s\S]*(Final Answer:|Answer:)", re.IGNORECASE)


def strip_reasoning(content: Optional[str]) -> str:
    """
    Remove inline reasoning from model output.

    Drops <thinking>, <analysis> and <reasoning> blocks, then drops any
    narrative up to the last "Final Answer:" or "Answer:" marker, keeping
    only what follows it. Text with neither tags nor markers is returned
    trimmed. Filtering already filtered text changes nothing.

    This is a textual heuristic: an unclosed tag is left in place.

    Args:
        content: The text content to process

    Returns:
        The visible answer text
    """
    if not content:
        return ""
    # Removing a block can join the pieces of a new one around it.
    while True:
        stripped = REASONING_BLOCK_PATTERN.sub("", content)
        if stripped == content:
            break
        content = stripped
    content = ANSWER_MARKER_PATTERN.sub("", content, count=1)
    return content.strip()


def scrub_choice(choice: Dict[str, Any], strip_content: bool) -> Dict[str, Any]:
    """
    Remove reasoning fields from a choice in place and, when requested,
    filter its visible content.

    Both streaming deltas and full messages are handled, so the same helper
    serves chunks and complete responses.
    """
    for key in ("delta", "message"):
        part = choice.get(key)
        if not isinstance(part, dict):
            continue
        for field in REASONING_FIELDS:
            part.pop(field, None)
        content = part.get("content")
        if strip_content and isinstance(content, str) and content:
            part["content"] = strip_reasoning(content)
    return choice


def build_completion_envelope(
    upstream: Dict[str, Any], model: str, strip_content: bool
) -> ChatCompletionResponse:
    """
    Re-wrap a non-streaming upstream completion in the OpenAI envelope.

    The caller's model name is echoed back rather than the upstream one, and
    usage totals default to zero when the upstream omits them.
    """
    now = time.time()
    choices = []
    for position, choice in enumerate(upstream.get("choices") or []):
        message = choice.get("message") or {}
        content = message.get("content") or ""
        if not isinstance(content, str):
            content = str(content)
        if strip_content:
            content = strip_reasoning(content)
        index = choice.get("index")
        choices.append(
            Choice(
                index=position if index is None else index,
                message=ResponseMessage(
                    role=message.get("role") or "assistant", content=content
                ),
                finish_reason=choice.get("finish_reason"),
            )
        )

    usage = upstream.get("usage")
    return ChatCompletionResponse(
        id=f"chatcmpl-{int(now * 1000)}",
        created=int(now),
        model=model,
        choices=choices,
        usage=Usage.model_validate(usage) if isinstance(usage, dict) else Usage(),
    )
