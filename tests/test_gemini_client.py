from types import SimpleNamespace

import pytest

import gemini_client
from gemini_client import GeminiError, generate_text


class FakeModels:
    def __init__(self, text="{}", exc=None):
        self.text = text
        self.exc = exc
        self.calls = []

    def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.exc is not None:
            raise self.exc
        usage = SimpleNamespace(prompt_token_count=10, candidates_token_count=5)
        return SimpleNamespace(text=self.text, usage_metadata=usage)


@pytest.fixture
def fake_models(monkeypatch):
    models = FakeModels(text='{"full_name": "Jane"}')
    monkeypatch.setattr(gemini_client, "_client", SimpleNamespace(models=models))
    return models


def test_generate_text_returns_raw_text(fake_models):
    assert generate_text("prompt") == '{"full_name": "Jane"}'

    call = fake_models.calls[0]
    assert call["model"] == gemini_client.GEMINI_MODEL
    assert call["contents"] == ["prompt"]
    assert call["config"].response_mime_type == "application/json"
    assert call["config"].temperature == 0.0


def test_generate_text_without_json_mode(fake_models):
    generate_text("prompt", model="gemini-2.5-pro", json_mode=False)

    call = fake_models.calls[0]
    assert call["model"] == "gemini-2.5-pro"
    assert call["config"].response_mime_type is None
    assert call["config"].thinking_config.thinking_budget == 0


def test_api_failure_becomes_gemini_error(monkeypatch):
    models = FakeModels(exc=RuntimeError("quota exceeded"))
    monkeypatch.setattr(gemini_client, "_client", SimpleNamespace(models=models))

    with pytest.raises(GeminiError, match="quota exceeded"):
        generate_text("prompt")


def test_empty_response_is_an_error(monkeypatch):
    monkeypatch.setattr(gemini_client, "_client", SimpleNamespace(models=FakeModels(text="")))

    with pytest.raises(GeminiError):
        generate_text("prompt")


def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(gemini_client, "_client", None)
    monkeypatch.setattr(gemini_client, "GEMINI_API_KEY", None)

    with pytest.raises(GeminiError, match="GEMINI_API_KEY"):
        generate_text("prompt")
