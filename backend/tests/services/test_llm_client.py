import asyncio
from types import SimpleNamespace

import pytest
import requests

from fintrack.exceptions import ExternalModelError
from fintrack.services.llm_client import LLMClient, extract_json_object


def _response(status_code=200, body=None, raises=False):
    def _json():
        if raises:
            raise ValueError("not json")
        return body

    return SimpleNamespace(status_code=status_code, json=_json)


def _client(**overrides):
    options = dict(base_url="http://model:11434/", model="mistral", timeout=5, api_key=None, enabled=True)
    options.update(overrides)
    return LLMClient(**options)


def test_generate_posts_to_generate_endpoint(monkeypatch):
    calls = []

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append(SimpleNamespace(url=url, json=json, headers=headers, timeout=timeout))
        return _response(body={"response": '{"category": "Outros"}'})

    monkeypatch.setattr(requests, "post", fake_post)

    text = _client(api_key="secret").generate("prompt", max_tokens=50)

    assert text == '{"category": "Outros"}'
    call = calls[0]
    assert call.url == "http://model:11434/api/generate"
    assert call.json["model"] == "mistral"
    assert call.json["stream"] is False
    assert call.json["format"] == "json"
    assert call.json["options"]["num_predict"] == 50
    assert call.headers["Authorization"] == "Bearer secret"
    assert call.timeout == 5


def test_generate_without_json_mode_omits_format(monkeypatch):
    captured = {}

    def fake_post(url, json=None, headers=None, timeout=None):
        captured.update(json)
        return _response(body={"response": "texto"})

    monkeypatch.setattr(requests, "post", fake_post)

    _client().generate("prompt", json_mode=False)

    assert "format" not in captured


def test_disabled_client_never_calls_the_network(monkeypatch):
    def fake_post(*args, **kwargs):
        raise AssertionError("network used")

    monkeypatch.setattr(requests, "post", fake_post)

    with pytest.raises(ExternalModelError):
        _client(enabled=False).generate("prompt")


@pytest.mark.parametrize(
    "error",
    [requests.exceptions.Timeout("slow"), requests.exceptions.ConnectionError("down")],
)
def test_transport_errors_are_wrapped(monkeypatch, error):
    def fake_post(*args, **kwargs):
        raise error

    monkeypatch.setattr(requests, "post", fake_post)

    with pytest.raises(ExternalModelError):
        _client().generate("prompt")


@pytest.mark.parametrize(
    "response",
    [
        _response(status_code=500, body={"error": "boom"}),
        _response(raises=True),
        _response(body={"response": ""}),
        _response(body={"done": True}),
        _response(body=["not", "a", "dict"]),
    ],
)
def test_unusable_responses_are_wrapped(monkeypatch, response):
    monkeypatch.setattr(requests, "post", lambda *args, **kwargs: response)

    with pytest.raises(ExternalModelError):
        _client().generate("prompt")


def test_agenerate_runs_generate(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *args, **kwargs: _response(body={"response": "ok"}))

    assert asyncio.run(_client().agenerate("prompt")) == "ok"


def test_agenerate_propagates_model_errors():
    with pytest.raises(ExternalModelError):
        asyncio.run(_client(enabled=False).agenerate("prompt"))


@pytest.mark.parametrize(
    "text,expected",
    [
        ('{"a": 1}', {"a": 1}),
        ('  {"a": {"b": 2}}\n', {"a": {"b": 2}}),
        ('Claro! Segue:\n```json\n{"a": 1}\n```', {"a": 1}),
    ],
)
def test_extract_json_object(text, expected):
    assert extract_json_object(text) == expected


@pytest.mark.parametrize("text", ["sem json", "[1, 2]", "{quebrado", None])
def test_extract_json_object_rejects(text):
    with pytest.raises(ExternalModelError):
        extract_json_object(text)
