from types import SimpleNamespace

import pytest
from openai import OpenAIError

from market_intel.core.errors import ProviderError
from market_intel.providers.analysis import GeminiGenerator, OpenAIGenerator, build_generators


class FakeCompletions:
    def __init__(self, content="Market Sentiment: NEUTRAL", error=None, choices=True):
        self.content = content
        self.error = error
        self.choices = choices
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        if not self.choices:
            return SimpleNamespace(choices=[])
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))])


def _client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def test_openai_returns_message_text():
    completions = FakeCompletions("Market Sentiment: BULLISH\nProbability: 60%")
    generator = OpenAIGenerator("gpt-4o-mini", "sk-test", client=_client(completions))

    assert generator.generate("prompt", timeout=12).startswith("Market Sentiment: BULLISH")
    assert generator.identifier == "openai/gpt-4o-mini"
    assert completions.kwargs["timeout"] == 12
    assert completions.kwargs["model"] == "gpt-4o-mini"


@pytest.mark.parametrize(
    "completions",
    [
        FakeCompletions(error=OpenAIError("429 quota exceeded")),
        FakeCompletions(choices=False),
        FakeCompletions(content="  "),
    ],
)
def test_openai_failures_become_provider_error(completions):
    generator = OpenAIGenerator("gpt-4o-mini", "sk-test", client=_client(completions))
    with pytest.raises(ProviderError):
        generator.generate("prompt", timeout=5)


class FakeGeminiModel:
    def __init__(self, name, text="Market Sentiment: BEARISH", error=None):
        self.name = name
        self.text = text
        self.error = error
        self.request_options = None

    def generate_content(self, prompt, request_options=None):
        self.request_options = request_options
        if self.error:
            raise self.error
        return SimpleNamespace(text=self.text)


@pytest.fixture
def gemini(monkeypatch):
    models = []

    def _install(**kwargs):
        def factory(name):
            model = FakeGeminiModel(name, **kwargs)
            models.append(model)
            return model
        monkeypatch.setattr("market_intel.providers.analysis.genai.configure", lambda api_key: None)
        monkeypatch.setattr("market_intel.providers.analysis.genai.GenerativeModel", factory)
        return models
    return _install


def test_gemini_returns_text_with_timeout(gemini):
    models = gemini()
    generator = GeminiGenerator("gemini-2.0-flash", "key")

    assert generator.generate("prompt", timeout=30) == "Market Sentiment: BEARISH"
    assert generator.identifier == "gemini/gemini-2.0-flash"
    assert models[0].request_options == {"timeout": 30}


def test_gemini_blocked_response_becomes_provider_error(gemini):
    gemini(error=ValueError("response was blocked"))
    with pytest.raises(ProviderError):
        GeminiGenerator("gemini-2.0-flash", "key").generate("prompt", timeout=30)


def test_build_generators_skips_missing_credentials_and_unknown_ids(gemini):
    gemini()
    generators = build_generators(
        ["gemini/gemini-2.0-flash", "anthropic/some-model", "openai/gpt-4o-mini", "gemini/gemini-1.5-flash"],
        {"gemini": "key", "openai": "  "},
    )
    assert [g.identifier for g in generators] == ["gemini/gemini-2.0-flash", "gemini/gemini-1.5-flash"]


def test_build_generators_without_any_key():
    assert build_generators(["gemini/gemini-2.0-flash", "openai/gpt-4o-mini"], {}) == []
