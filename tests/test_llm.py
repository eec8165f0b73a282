import pytest

from geo_core.errors import GenerationError
from geo_core.generation.llm import LLMClient


@pytest.fixture
def mock_config_manager():
    class MockLLMConfig:
        llm_provider = "openai"
        openai_api_key = "sk-fake-key"
        anthropic_api_key = None
        model_name = "gpt-test"
        temperature = 0.7
        max_output_tokens = 2000
        request_timeout_seconds = 30

    class MockConfigManager:
        llm = MockLLMConfig()

    return MockConfigManager()


SCHEMA = {"type": "object", "properties": {"a": {"type": "string"}}}


def test_openai_completion(mocker, mock_config_manager):
    openai_cls = mocker.patch("geo_core.generation.llm.OpenAI")
    create = openai_cls.return_value.chat.completions.create
    create.return_value.choices = [mocker.Mock(message=mocker.Mock(content='{"a": "b"}'))]

    client = LLMClient(mock_config_manager)
    text = client.complete_json("system", "user", SCHEMA, schema_name="geo_content", temperature=0.3, max_tokens=100)

    assert text == '{"a": "b"}'
    openai_cls.assert_called_once_with(api_key="sk-fake-key", timeout=30)
    kwargs = create.call_args.kwargs
    assert kwargs["model"] == "gpt-test"
    assert kwargs["temperature"] == 0.3
    assert kwargs["max_tokens"] == 100
    assert kwargs["messages"][0] == {"role": "system", "content": "system"}
    assert kwargs["response_format"]["json_schema"]["schema"] == SCHEMA


def test_openai_without_system_prompt(mocker, mock_config_manager):
    openai_cls = mocker.patch("geo_core.generation.llm.OpenAI")
    create = openai_cls.return_value.chat.completions.create
    create.return_value.choices = [mocker.Mock(message=mocker.Mock(content="{}"))]

    LLMClient(mock_config_manager).complete_json(None, "critique this", SCHEMA)

    kwargs = create.call_args.kwargs
    assert kwargs["messages"] == [{"role": "user", "content": "critique this"}]
    assert kwargs["temperature"] == 0.7
    assert kwargs["max_tokens"] == 2000


def test_anthropic_completion(mocker, mock_config_manager):
    mock_config_manager.llm.llm_provider = "anthropic"
    mock_config_manager.llm.anthropic_api_key = "sk-ant-fake"
    anthropic_cls = mocker.patch("geo_core.generation.llm.Anthropic")
    create = anthropic_cls.return_value.messages.create
    create.return_value.content = [mocker.Mock(text='{"a": '), mocker.Mock(text='"b"}')]

    text = LLMClient(mock_config_manager).complete_json("Be on brand.", "user", SCHEMA)

    assert text == '{"a": "b"}'
    kwargs = create.call_args.kwargs
    assert kwargs["system"].startswith("Be on brand.")
    assert '"properties"' in kwargs["system"]
    assert kwargs["messages"] == [{"role": "user", "content": "user"}]


def test_missing_key_means_not_configured(mocker, mock_config_manager):
    mock_config_manager.llm.openai_api_key = None
    openai_cls = mocker.patch("geo_core.generation.llm.OpenAI")

    client = LLMClient(mock_config_manager)

    assert not client.is_configured
    openai_cls.assert_not_called()
    with pytest.raises(GenerationError):
        client.complete_json("system", "user", SCHEMA)


def test_api_error_becomes_generation_error(mocker, mock_config_manager):
    openai_cls = mocker.patch("geo_core.generation.llm.OpenAI")
    openai_cls.return_value.chat.completions.create.side_effect = Exception("API Error")

    with pytest.raises(GenerationError) as exc:
        LLMClient(mock_config_manager).complete_json("system", "user", SCHEMA)
    assert str(exc.value.cause) == "API Error"


def test_empty_content_is_an_error(mocker, mock_config_manager):
    openai_cls = mocker.patch("geo_core.generation.llm.OpenAI")
    openai_cls.return_value.chat.completions.create.return_value.choices = [
        mocker.Mock(message=mocker.Mock(content="  "))
    ]

    with pytest.raises(GenerationError, match="no content"):
        LLMClient(mock_config_manager).complete_json("system", "user", SCHEMA)


def test_unsupported_provider(mock_config_manager):
    mock_config_manager.llm.llm_provider = "gemini"
    with pytest.raises(ValueError):
        LLMClient(mock_config_manager)
