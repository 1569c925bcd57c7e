import functools
import logging
from typing import Any, AsyncIterator, Callable, Dict, Iterable, Optional

from . import gemini_client
from . import anthropic_client
from .entities import Entity
from .exceptions import ConfigError
from .prompts.prompt_builder import DocumentContext

logger = logging.getLogger(__name__)

# Streaming entry point for each provider
PROVIDER_MAP = {
    "gemini": gemini_client.stream_chat_response,
    "anthropic": anthropic_client.stream_chat_response,
}

def select_stream_provider(config: Dict[str, Any], provider: Optional[str] = None) -> Callable:
    """
    Selects the streaming function for a provider.

    Args:
        config: The application configuration dictionary.
        provider: Provider name. Defaults to `config['default_provider']`.

    Returns:
        ``stream_chat_response(messages, config, document_context=None, entities=None)``

    Raises:
        ConfigError: If the provider is unknown.
    """
    name = (provider or config.get('default_provider') or '').lower()
    stream_fn = PROVIDER_MAP.get(name)
    if not stream_fn:
        raise ConfigError(f"Invalid provider '{name}'. Available providers: {', '.join(PROVIDER_MAP)}")
    logger.info(f"Using {name.capitalize()} provider for compilation streaming.")
    return stream_fn

def make_stream_factory(
    config: Dict[str, Any],
    document_context: Optional[DocumentContext] = None,
    entities: Optional[Iterable[Entity]] = None,
    provider: Optional[str] = None
) -> Callable[[Any], AsyncIterator[str]]:
    """
    Binds a provider to a document and entity context, producing the
    ``history -> chunk stream`` callable the compilation controller consumes.
    """
    stream_fn = select_stream_provider(config, provider)
    entity_list = list(entities or [])
    return functools.partial(stream_fn, config=config, document_context=document_context, entities=entity_list)
