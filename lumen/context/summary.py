"""Token-budgeted context digest for the model's system prompt."""

import math
from typing import List, Optional, Tuple

from .config import SummaryConfig
from .models import ConversationMessage, Interaction, RankedItem


CHARS_PER_TOKEN = 4
SECTION_SEPARATOR = "\n\n"


def estimate_tokens(text: str) -> int:
    """Rough token count: four characters per token."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def _relevant_section(items: List[RankedItem], config: SummaryConfig) -> Optional[str]:
    high = [item for item in items if item.relevance >= config.high_relevance_threshold]
    if not high:
        return None
    lines = [f"- {item.entity_type.value}: {item.summary}" for item in high[:config.max_items]]
    return "## Relevant Context\n" + "\n".join(lines)


def _conversation_section(messages: List[ConversationMessage], config: SummaryConfig) -> Optional[str]:
    if not messages or config.max_messages <= 0:
        return None

    lines = []
    for message in messages[-config.max_messages:]:
        content = message.content[:config.message_chars]
        if len(message.content) > config.message_chars:
            content += "..."
        lines.append(f"{message.role.value}: {content}")
    return "## Recent Conversation\n" + "\n".join(lines)


def _activity_section(interactions: List[Interaction], config: SummaryConfig) -> Optional[str]:
    if not interactions or config.max_interactions <= 0:
        return None
    lines = [
        f"- {i.type.value} {i.entity_type}: {i.display_name}"
        for i in interactions[:config.max_interactions]
    ]
    return "## Recent Activity\n" + "\n".join(lines)


def build_summary(ranked_items: List[RankedItem],
                  conversation: List[ConversationMessage],
                  interactions: List[Interaction],
                  max_tokens: Optional[int] = None,
                  config: Optional[SummaryConfig] = None) -> Tuple[str, int]:
    """
    Greedily pack sections under a token budget.

    Sections are tried in a fixed order (relevant items, conversation,
    activity). A section is kept whole or dropped whole; the budget is
    checked against the joined text so the returned estimate never
    exceeds max_tokens.

    Returns:
        (summary text, estimated tokens)
    """
    config = config or SummaryConfig()
    if max_tokens is None:
        max_tokens = config.max_tokens

    sections: List[str] = []
    current_tokens = 0

    candidates = (
        _relevant_section(ranked_items, config),
        _conversation_section(conversation, config),
        _activity_section(interactions, config),
    )

    for section in candidates:
        if section is None or current_tokens >= max_tokens:
            continue

        tokens = estimate_tokens(SECTION_SEPARATOR.join(sections + [section]))
        if tokens <= max_tokens:
            sections.append(section)
            current_tokens = tokens

    return SECTION_SEPARATOR.join(sections), current_tokens
