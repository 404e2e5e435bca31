"""Separation of model reasoning from the visible answer.

Local reasoning models wrap their chain of thought in ``<think>...</think>``
markers. This module hides the marker convention from the rest of the code.
"""

import re
from functools import lru_cache

from pydantic import BaseModel, ConfigDict

THINK_START = "<think>"
THINK_END = "</think>"


class ParsedResponse(BaseModel):
    """Assistant text split into its reasoning and visible parts."""

    model_config = ConfigDict(frozen=True)

    thinking: str = ""
    content: str = ""


@lru_cache(maxsize=8)
def _section_pattern(start_tag: str, end_tag: str) -> re.Pattern[str]:
    return re.compile(
        f"{re.escape(start_tag)}(.*?){re.escape(end_tag)}",
        re.IGNORECASE | re.DOTALL,
    )


def extract_thinking(
    text: str,
    start_tag: str = THINK_START,
    end_tag: str = THINK_END
) -> ParsedResponse:
    """Split accumulated assistant text into thinking and content.

    Every closed section is removed from the text and its trimmed inner text
    is collected, in order, into ``thinking`` (sections joined by a blank
    line). An opening marker without a matching close stays in ``content``
    untouched, so callers re-run extraction as more text arrives.

    Removal repeats until no closed section is left, which keeps the result
    stable when fed its own ``content`` again.

    Args:
        text: Raw assistant text, possibly still streaming
        start_tag: Opening marker (matched case-insensitively)
        end_tag: Closing marker (matched case-insensitively)

    Returns:
        ParsedResponse with trimmed thinking and content
    """
    pattern = _section_pattern(start_tag, end_tag)
    sections: list[str] = []
    content = text

    while True:
        found = False
        for match in pattern.finditer(content):
            found = True
            inner = match.group(1).strip()
            if inner:
                sections.append(inner)
        if not found:
            break
        content = pattern.sub("", content)

    return ParsedResponse(
        thinking="\n\n".join(sections),
        content=content.strip(),
    )


def has_thinking_tags(text: str, start_tag: str = THINK_START) -> bool:
    """Check whether text contains an opening thinking marker."""
    return start_tag.lower() in text.lower()
