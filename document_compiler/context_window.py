"""
Context window selection for the compilation prompt.

Chooses which part of a conversation history is sent to the model under a
token budget. The result is always a contiguous suffix of the history in its
original order; nothing is reordered, duplicated or mutated.
"""
import logging
from typing import Any, Dict, List, Sequence, TypeVar

from .token_estimator import calculate_message_tokens, message_tokens

logger = logging.getLogger(__name__)

DEFAULT_MIN_EXCHANGES = 5
DEFAULT_MAX_TOKENS = 4000

MessageT = TypeVar('MessageT')

def select_relevant_messages(
    messages: Sequence[MessageT],
    current_query: str,
    max_tokens: int = DEFAULT_MAX_TOKENS
) -> List[MessageT]:
    """
    Selects the newest messages that fit within the token budget.

    Walks backwards from the most recent message and stops at the first one
    that would overflow the budget.

    Args:
        messages: Full conversation history, oldest first.
        current_query: The pending user query. Reserved for relevance ranking; unused.
        max_tokens: Token budget.

    Returns:
        A contiguous suffix of `messages`.
    """
    if not messages:
        return []

    total_tokens = calculate_message_tokens(messages)
    if total_tokens <= max_tokens:
        logger.debug(f"All {len(messages)} messages fit within budget ({total_tokens}/{max_tokens} tokens)")
        return list(messages)

    current_tokens = 0
    start = len(messages)
    for i in range(len(messages) - 1, -1, -1):
        cost = message_tokens(messages[i])
        if current_tokens + cost > max_tokens:
            break
        current_tokens += cost
        start = i

    selected = list(messages[start:])
    reduction = (1 - current_tokens / total_tokens) * 100
    logger.info(
        f"Context optimized: {len(selected)}/{len(messages)} messages, "
        f"{current_tokens}/{total_tokens} tokens ({reduction:.1f}% reduction)"
    )
    return selected

def select_relevant_messages_with_min_context(
    messages: Sequence[MessageT],
    current_query: str,
    min_exchanges: int = DEFAULT_MIN_EXCHANGES,
    max_tokens: int = DEFAULT_MAX_TOKENS
) -> List[MessageT]:
    """
    Selects messages while keeping at least `min_exchanges` recent exchanges.

    The last `min_exchanges * 2` messages form a mandatory tail. When the tail
    fits the budget, older messages are prepended while they still fit. When
    the tail alone is over budget, selection degrades to
    `select_relevant_messages`.

    Args:
        messages: Full conversation history, oldest first.
        current_query: The pending user query. Reserved for relevance ranking; unused.
        min_exchanges: User/assistant pairs that should always be kept.
        max_tokens: Token budget.

    Returns:
        A contiguous suffix of `messages`.
    """
    if not messages:
        return []

    min_messages = min(max(min_exchanges, 0) * 2, len(messages))
    tail_start = len(messages) - min_messages
    tail_tokens = calculate_message_tokens(messages[tail_start:])

    if tail_tokens > max_tokens:
        logger.warning(
            f"Recent {min_messages} messages exceed budget ({tail_tokens}/{max_tokens}), "
            "using token-based selection"
        )
        return select_relevant_messages(messages, current_query, max_tokens)

    start = tail_start
    current_tokens = tail_tokens
    for i in range(tail_start - 1, -1, -1):
        cost = message_tokens(messages[i])
        if current_tokens + cost > max_tokens:
            break
        current_tokens += cost
        start = i

    return list(messages[start:])

def get_context_stats(original_messages: Sequence[Any], selected_messages: Sequence[Any]) -> Dict[str, Any]:
    """Summarizes how much a selection saved, for logging and monitoring."""
    original_tokens = calculate_message_tokens(original_messages)
    selected_tokens = calculate_message_tokens(selected_messages)
    if original_tokens:
        reduction_percent = round((1 - selected_tokens / original_tokens) * 100, 1)
    else:
        reduction_percent = 0.0

    return {
        'original_message_count': len(original_messages),
        'selected_message_count': len(selected_messages),
        'original_tokens': original_tokens,
        'selected_tokens': selected_tokens,
        'saved_tokens': original_tokens - selected_tokens,
        'reduction_percent': reduction_percent,
    }
