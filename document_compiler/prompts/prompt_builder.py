"""
Builds the text prompt sent to the model for a compilation request.
"""
import logging
from typing import Iterable, List, Mapping, Optional, Sequence, Union

from ..entities import Entity, format_entities_for_prompt
from ..models import Message
from .COMPILATION_PROMPT import COMPILATION_SYSTEM_PROMPT, CURRENT_DRAFT_SECTION, ENTITY_SECTION

logger = logging.getLogger(__name__)

ROLE_LABELS = {'user': 'User', 'assistant': 'Assistant'}


class DocumentContext:
    """The template being compiled and its latest compiled draft, if any."""

    def __init__(self, file_name: str, file_type: str, extracted_text: str, compiled_content: Optional[str] = None):
        self.file_name = file_name
        self.file_type = file_type
        self.extracted_text = extracted_text
        self.compiled_content = compiled_content


def format_history(messages: Sequence[Union[Message, Mapping[str, str]]]) -> str:
    """Renders messages as ``User: ...`` / ``Assistant: ...`` blocks separated by blank lines."""
    blocks: List[str] = []
    for message in messages:
        if isinstance(message, Message):
            role, content = message.role, message.content
        else:
            role, content = message['role'], message.get('content', '')
        blocks.append(f"{ROLE_LABELS.get(role, role.capitalize())}: {content}")
    return "\n\n".join(blocks)


def build_compilation_prompt(
    messages: Sequence[Union[Message, Mapping[str, str]]],
    document_context: Optional[DocumentContext] = None,
    entities: Optional[Iterable[Entity]] = None
) -> str:
    """
    Assembles the full prompt: compilation instructions, current draft,
    entity registry and the selected conversation history.

    Without a document context only the history is rendered (plain chat).
    """
    parts: List[str] = []

    if document_context is not None:
        parts.append(COMPILATION_SYSTEM_PROMPT.format(
            file_name=document_context.file_name,
            file_type=document_context.file_type,
            template_text=document_context.extracted_text,
        ).strip())
        if document_context.compiled_content:
            parts.append(CURRENT_DRAFT_SECTION.format(
                compiled_content=document_context.compiled_content
            ).strip())

    entity_text = format_entities_for_prompt(entities or [])
    if entity_text:
        parts.append(ENTITY_SECTION.format(entities=entity_text).strip())

    parts.append(format_history(messages))
    prompt = "\n\n".join(parts)
    logger.debug(f"Built prompt of {len(prompt)} characters from {len(messages)} messages")
    return prompt
