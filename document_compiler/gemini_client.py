"""
Client module for streaming compilations from the Google Generative AI (Gemini) API.

Provides functions for configuring the client, initializing the model and
streaming text chunks for a conversation, translating provider failures into
the application's exception hierarchy.
"""
import google.generativeai as genai
import logging
from typing import Any, AsyncIterator, Dict, Iterable, Optional, Sequence

from .entities import Entity
from .exceptions import ApiKeyError, ApiCallError, ApiBlockedError, RateLimitError, is_rate_limit_error
from .prompts.prompt_builder import DocumentContext, build_compilation_prompt

logger = logging.getLogger(__name__)

# Global variables to store initialized model
_gemini_model = None
_gemini_model_name = None
_client_configured = False

def configure_client(api_key: str):
    """Configures the Gemini client with the API key."""
    global _client_configured

    if _client_configured:
        return

    if not api_key:
        logger.error("Attempted to configure Gemini client without an API key.")
        raise ApiKeyError("API key is required to configure the Gemini client.")
    try:
        genai.configure(api_key=api_key)
        logger.info("Gemini client configured successfully.")
        _client_configured = True
    except Exception as e:
        logger.error(f"Failed to configure Gemini client: {e}", exc_info=True)
        raise ApiKeyError(f"Failed to configure Gemini client: {e}") from e

def get_gemini_model(config: Dict[str, Any]):
    """Initializes and returns the Gemini generative model based on config."""
    global _gemini_model, _gemini_model_name

    api_config = config.get('gemini', {})
    model_name = api_config.get('model_name', 'gemini-2.5-flash-lite')

    if _gemini_model is not None and _gemini_model_name == model_name:
        return _gemini_model

    configure_client(api_config.get('resolved_key'))

    generation_config = {
        "temperature": api_config.get('temperature', 0.4),
        "max_output_tokens": api_config.get('max_output_tokens', 8192),
    }

    try:
        _gemini_model = genai.GenerativeModel(
            model_name=model_name,
            generation_config=generation_config,
        )
        _gemini_model_name = model_name
        logger.info(f"Gemini model '{model_name}' initialized.")
        return _gemini_model
    except Exception as e:
        logger.error(f"Failed to initialize Gemini model '{model_name}': {e}", exc_info=True)
        raise ApiCallError(f"Failed to initialize Gemini model '{model_name}': {e}") from e

def _chunk_text(chunk: Any) -> str:
    """Collects the text parts of one streamed response chunk."""
    candidates = getattr(chunk, 'candidates', None)
    if not candidates:
        feedback = getattr(chunk, 'prompt_feedback', None)
        block_reason = getattr(feedback, 'block_reason', None) if feedback else None
        if block_reason:
            reason = getattr(block_reason, 'name', str(block_reason))
            raise ApiBlockedError("Gemini API call was blocked.", reason=reason,
                                  ratings=getattr(feedback, 'safety_ratings', None))
        return ""

    content = getattr(candidates[0], 'content', None)
    parts = getattr(content, 'parts', None) or []
    return "".join(part.text for part in parts if getattr(part, 'text', None))

async def stream_chat_response(
    messages: Sequence[Any],
    config: Dict[str, Any],
    document_context: Optional[DocumentContext] = None,
    entities: Optional[Iterable[Entity]] = None
) -> AsyncIterator[str]:
    """
    Streams the model's reply to a conversation, one text chunk at a time.

    Args:
        messages: The selected conversation history, oldest first.
        config: The application configuration dictionary.
        document_context: Template being compiled, if any.
        entities: Entity registry records to include as context.

    Yields:
        Text chunks as they arrive. Chunks may contain ``[PROGRESS]`` lines.

    Raises:
        RateLimitError: If the provider rejects the request for quota reasons.
        ApiBlockedError: If the request is blocked.
        ApiCallError: For any other failure.
    """
    prompt = build_compilation_prompt(messages, document_context, entities)
    request_options = {"timeout": config.get('gemini', {}).get('request_timeout', 600)}

    try:
        model = get_gemini_model(config)
        logger.debug(f"Streaming prompt to Gemini model {_gemini_model_name}:\n{prompt[:200]}...")
        response = await model.generate_content_async(prompt, stream=True, request_options=request_options)
        async for chunk in response:
            text = _chunk_text(chunk)
            if text:
                yield text
    except (ApiBlockedError, ApiKeyError):
        raise
    except Exception as e:
        if is_rate_limit_error(e):
            logger.warning(f"Gemini rate limit reached: {e}")
            raise RateLimitError() from e
        if e.__class__.__name__ == 'StopCandidateException':
            logger.error(f"Gemini API call stopped: {e}", exc_info=True)
            raise ApiBlockedError(f"Gemini API call stopped: {e}", reason="STOPPED") from e
        logger.error(f"Error during Gemini streaming call: {e}", exc_info=True)
        raise ApiCallError(f"Error during Gemini streaming call: {e}") from e
