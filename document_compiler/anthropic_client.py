"""
Client module for streaming compilations from the Anthropic API (Claude models).
"""
import anthropic
import logging
from typing import Any, AsyncIterator, Dict, Iterable, Optional, Sequence

from .entities import Entity
from .exceptions import ApiKeyError, ApiCallError, ApiBlockedError, RateLimitError, is_rate_limit_error
from .prompts.prompt_builder import DocumentContext, build_compilation_prompt

logger = logging.getLogger(__name__)

_anthropic_client = None

def get_anthropic_client(config: Dict[str, Any]):
    """
    Initializes and returns the async Anthropic client based on config.

    Raises:
        ApiKeyError: If the API key is missing or the client cannot be created.
    """
    global _anthropic_client

    if _anthropic_client is not None:
        return _anthropic_client

    api_key = config.get('anthropic', {}).get('resolved_key')
    if not api_key:
        logger.error("Attempted to configure Anthropic client without an API key.")
        raise ApiKeyError("API key is required to configure the Anthropic client.")

    try:
        _anthropic_client = anthropic.AsyncAnthropic(api_key=api_key)
        logger.info("Anthropic client configured successfully.")
    except Exception as e:
        logger.error(f"Failed to configure Anthropic client: {e}", exc_info=True)
        raise ApiKeyError(f"Failed to configure Anthropic client: {e}") from e
    return _anthropic_client

async def stream_chat_response(
    messages: Sequence[Any],
    config: Dict[str, Any],
    document_context: Optional[DocumentContext] = None,
    entities: Optional[Iterable[Entity]] = None
) -> AsyncIterator[str]:
    """
    Streams Claude's reply to a conversation, one text chunk at a time.

    Same contract as `gemini_client.stream_chat_response`.
    """
    prompt = build_compilation_prompt(messages, document_context, entities)
    api_config = config.get('anthropic', {})

    try:
        client = get_anthropic_client(config)
        model_name = api_config.get('model_name', 'claude-sonnet-4')
        logger.debug(f"Streaming prompt to Anthropic model {model_name}:\n{prompt[:200]}...")
        async with client.messages.stream(
            model=model_name,
            max_tokens=api_config.get('max_tokens', 8192),
            temperature=api_config.get('temperature', 0.4),
            messages=[{"role": "user", "content": prompt}],
        ) as stream:
            async for text in stream.text_stream:
                if text:
                    yield text
    except ApiKeyError:
        raise
    except anthropic.RateLimitError as e:
        logger.warning(f"Anthropic rate limit reached: {e}")
        raise RateLimitError() from e
    except anthropic.APIError as e:
        if is_rate_limit_error(e):
            logger.warning(f"Anthropic rate limit reached: {e}")
            raise RateLimitError() from e
        if "blocked" in str(e).lower() or "content policy" in str(e).lower():
            logger.error(f"Anthropic API request was blocked: {e}", exc_info=True)
            raise ApiBlockedError(f"Anthropic API request was blocked: {e}", reason=str(e)) from e
        logger.error(f"Error during Anthropic streaming call: {e}", exc_info=True)
        raise ApiCallError(f"Error during Anthropic streaming call: {e}") from e
    except Exception as e:
        if is_rate_limit_error(e):
            logger.warning(f"Anthropic rate limit reached: {e}")
            raise RateLimitError() from e
        logger.error(f"Unexpected error during Anthropic streaming call: {e}", exc_info=True)
        raise ApiCallError(f"Unexpected error during Anthropic streaming call: {e}") from e
