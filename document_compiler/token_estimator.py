"""
Rough token accounting used to size conversation context.

One token is taken as four characters. The figure is only a relative
heuristic; callers budget with plenty of slack.
"""
import math
from typing import Iterable, Union

from .models import Message

CHARS_PER_TOKEN = 4

def estimate_tokens(text: str) -> int:
    """Returns ceil(len(text) / 4)."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)

def message_tokens(message: Union[Message, dict]) -> int:
    """Cost of one message, counting its `role: ` prefix."""
    if isinstance(message, dict):
        role, content = message.get('role', ''), message.get('content', '')
    else:
        role, content = message.role, message.content
    return estimate_tokens(f"{role}: ") + estimate_tokens(content)

def calculate_message_tokens(messages: Iterable[Union[Message, dict]]) -> int:
    """Total cost of a list of messages."""
    return sum(message_tokens(m) for m in messages)
