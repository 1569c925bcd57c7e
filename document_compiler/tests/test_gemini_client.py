from types import SimpleNamespace

import pytest
from unittest.mock import AsyncMock, MagicMock

# Module to test
from document_compiler import gemini_client
from document_compiler.exceptions import ApiBlockedError, ApiCallError, ApiKeyError, RateLimitError
from document_compiler.models import Message

# --- Helpers ---

def text_chunk(*texts):
    parts = [SimpleNamespace(text=t) for t in texts]
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))])

def blocked_chunk(reason="SAFETY"):
    feedback = SimpleNamespace(block_reason=SimpleNamespace(name=reason), safety_ratings=["HARM_HIGH"])
    return SimpleNamespace(candidates=[], prompt_feedback=feedback)

class FakeStreamResponse:
    """Async-iterable stand-in for the SDK's streaming response."""

    def __init__(self, chunks, error=None):
        self.chunks = chunks
        self.error = error

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self.chunks:
            yield chunk
        if self.error:
            raise self.error

async def collect(stream):
    return [chunk async for chunk in stream]

# --- Test Fixtures ---

@pytest.fixture
def mock_config():
    """Provides a basic mock config dictionary for tests."""
    return {
        'gemini': {
            'resolved_key': 'test_api_key_123',
            'model_name': 'mock-model-test',
            'temperature': 0.5,
            'max_output_tokens': 100,
            'request_timeout': 30,
        },
    }

@pytest.fixture(autouse=True)
def reset_client_state(monkeypatch):
    monkeypatch.setattr(gemini_client, '_gemini_model', None)
    monkeypatch.setattr(gemini_client, '_gemini_model_name', None)
    monkeypatch.setattr(gemini_client, '_client_configured', False)

@pytest.fixture
def mock_generative_model(mocker):
    """Mocks the genai.GenerativeModel instance."""
    mock_model = MagicMock()
    mock_model.generate_content_async = AsyncMock(
        return_value=FakeStreamResponse([text_chunk("Nome: "), text_chunk("Mario", "\n")])
    )
    mocker.patch('google.generativeai.GenerativeModel', return_value=mock_model)
    mocker.patch('google.generativeai.configure')
    return mock_model

# --- Test Cases ---

@pytest.mark.asyncio
async def test_stream_yields_chunk_text(mock_config, mock_generative_model):
    chunks = await collect(gemini_client.stream_chat_response([Message('user', 'Compile')], mock_config))

    assert chunks == ["Nome: ", "Mario\n"]
    args, kwargs = mock_generative_model.generate_content_async.call_args
    assert args[0] == "User: Compile"
    assert kwargs['stream'] is True
    assert kwargs['request_options'] == {'timeout': 30}

@pytest.mark.asyncio
async def test_empty_chunks_are_skipped(mock_config, mock_generative_model):
    mock_generative_model.generate_content_async.return_value = FakeStreamResponse([
        text_chunk(), SimpleNamespace(candidates=[], prompt_feedback=None), text_chunk("ok"),
    ])
    assert await collect(gemini_client.stream_chat_response([], mock_config)) == ["ok"]

@pytest.mark.asyncio
async def test_model_is_initialized_once(mock_config, mock_generative_model, mocker):
    await collect(gemini_client.stream_chat_response([], mock_config))
    await collect(gemini_client.stream_chat_response([], mock_config))

    import google.generativeai as genai
    assert genai.GenerativeModel.call_count == 1
    genai.configure.assert_called_once_with(api_key='test_api_key_123')

@pytest.mark.asyncio
async def test_blocked_prompt(mock_config, mock_generative_model):
    mock_generative_model.generate_content_async.return_value = FakeStreamResponse([blocked_chunk()])

    with pytest.raises(ApiBlockedError, match="SAFETY"):
        await collect(gemini_client.stream_chat_response([], mock_config))

@pytest.mark.asyncio
async def test_quota_error_becomes_rate_limit_error(mock_config, mock_generative_model):
    mock_generative_model.generate_content_async.side_effect = Exception("429 Resource has been exhausted (e.g. check quota).")

    with pytest.raises(RateLimitError, match="API quota exceeded"):
        await collect(gemini_client.stream_chat_response([], mock_config))

@pytest.mark.asyncio
async def test_error_mid_stream(mock_config, mock_generative_model):
    mock_generative_model.generate_content_async.return_value = FakeStreamResponse(
        [text_chunk("partial")], error=ConnectionError("stream reset")
    )
    received = []

    with pytest.raises(ApiCallError, match="stream reset"):
        async for chunk in gemini_client.stream_chat_response([], mock_config):
            received.append(chunk)
    assert received == ["partial"]

@pytest.mark.asyncio
async def test_stop_candidate_exception(mock_config, mock_generative_model):
    class StopCandidateException(Exception):
        pass
    mock_generative_model.generate_content_async.side_effect = StopCandidateException("finish_reason: RECITATION")

    with pytest.raises(ApiBlockedError, match="STOPPED"):
        await collect(gemini_client.stream_chat_response([], mock_config))

@pytest.mark.asyncio
async def test_missing_api_key(mock_config, mocker):
    mocker.patch('google.generativeai.configure')
    mock_config['gemini']['resolved_key'] = None

    with pytest.raises(ApiKeyError):
        await collect(gemini_client.stream_chat_response([], mock_config))
