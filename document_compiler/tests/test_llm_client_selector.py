import pytest

from document_compiler import anthropic_client, gemini_client, llm_client_selector
from document_compiler.exceptions import ConfigError
from document_compiler.prompts.prompt_builder import DocumentContext


def test_select_default_provider():
    assert llm_client_selector.select_stream_provider({'default_provider': 'gemini'}) is gemini_client.stream_chat_response

def test_explicit_provider_overrides_default():
    fn = llm_client_selector.select_stream_provider({'default_provider': 'gemini'}, provider='Anthropic')
    assert fn is anthropic_client.stream_chat_response

def test_unknown_provider():
    with pytest.raises(ConfigError, match="Invalid provider 'openai'"):
        llm_client_selector.select_stream_provider({'default_provider': 'openai'})

def test_make_stream_factory_binds_context(mocker):
    fake_stream = mocker.MagicMock(return_value="stream")
    mocker.patch.dict(llm_client_selector.PROVIDER_MAP, {'gemini': fake_stream})
    config = {'default_provider': 'gemini'}
    context = DocumentContext("cv.txt", "txt", "Nome: ___")

    factory = llm_client_selector.make_stream_factory(config, context, entities=None)
    assert factory(["history"]) == "stream"

    fake_stream.assert_called_once_with(["history"], config=config, document_context=context, entities=[])
