import pytest
import requests

from models import llm_clients, ocr_client
from models.llm_clients import GeminiClient, LLMError, OpenAIClient
from models.ocr_client import OcrClient


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


@pytest.fixture
def capture_post(monkeypatch):
    calls = []

    def install(response_or_exc, module=llm_clients):
        def fake_post(url, **kwargs):
            calls.append({"url": url, **kwargs})
            if isinstance(response_or_exc, Exception):
                raise response_or_exc
            return response_or_exc

        monkeypatch.setattr(module.requests, "post", fake_post)
        return calls

    return install


def test_gemini_success(capture_post):
    calls = capture_post(
        FakeResponse(
            payload={
                "candidates": [{"content": {"parts": [{"text": '{"triage_level": "self-care"}'}]}}],
                "usageMetadata": {"totalTokenCount": 321},
            }
        )
    )
    reply = GeminiClient(api_key="g-key", model="gemini-test", timeout=5).generate("hello")

    assert reply.text == '{"triage_level": "self-care"}'
    assert reply.model == "gemini-test"
    assert reply.tokens_used == 321
    assert calls[0]["url"].endswith("/models/gemini-test:generateContent")
    assert calls[0]["params"] == {"key": "g-key"}
    assert calls[0]["timeout"] == 5
    assert calls[0]["json"]["contents"][0]["parts"][0]["text"] == "hello"


def test_gemini_missing_key_raises_without_request(capture_post):
    calls = capture_post(FakeResponse(payload={}))
    with pytest.raises(LLMError, match="GEMINI_API_KEY"):
        GeminiClient().generate("hello")
    assert calls == []


def test_gemini_http_error(capture_post):
    capture_post(FakeResponse(status_code=429, text="quota exceeded"))
    with pytest.raises(LLMError, match="429"):
        GeminiClient(api_key="k").generate("hello")


def test_gemini_empty_candidates(capture_post):
    capture_post(FakeResponse(payload={"candidates": []}))
    with pytest.raises(LLMError):
        GeminiClient(api_key="k").generate("hello")


def test_transport_error_becomes_llm_error(capture_post):
    capture_post(requests.ConnectionError("boom"))
    with pytest.raises(LLMError, match="request failed"):
        OpenAIClient(api_key="k").generate("hello")


def test_openai_success_with_system_prompt(capture_post, monkeypatch):
    monkeypatch.setenv("OPENAI_MODEL", "gpt-test")
    calls = capture_post(
        FakeResponse(
            payload={
                "choices": [{"message": {"content": "{}"}}],
                "usage": {"total_tokens": 77},
            }
        )
    )
    reply = OpenAIClient(api_key="o-key", system_prompt="be careful").generate("hi")

    assert reply.model == "gpt-test"
    assert reply.tokens_used == 77
    assert calls[0]["headers"]["Authorization"] == "Bearer o-key"
    assert [m["role"] for m in calls[0]["json"]["messages"]] == ["system", "user"]


def test_openai_non_json_body(capture_post):
    capture_post(FakeResponse(payload=None))
    with pytest.raises(LLMError, match="non-JSON"):
        OpenAIClient(api_key="k").generate("hi")


def test_timeout_from_env(monkeypatch):
    monkeypatch.setenv("LLM_TIMEOUT_SECONDS", "12.5")
    assert GeminiClient(api_key="k").timeout == 12.5
    monkeypatch.setenv("LLM_TIMEOUT_SECONDS", "soon")
    assert GeminiClient(api_key="k").timeout == llm_clients.DEFAULT_TIMEOUT


def test_ocr_client_requires_gateway_config():
    with pytest.raises(LLMError, match="configuration is missing"):
        OcrClient().extract("AAAA", "image/png")


def test_ocr_client_sends_data_url(capture_post):
    calls = capture_post(
        FakeResponse(payload={"choices": [{"message": {"content": "text"}}]}),
        module=ocr_client,
    )
    reply = OcrClient(url="http://gw/v1/chat/completions", api_key="gw").extract("QUJD", "image/png")

    assert reply.text == "text"
    content = calls[0]["json"]["messages"][0]["content"]
    assert content[1]["image_url"]["url"] == "data:image/png;base64,QUJD"
    assert calls[0]["json"]["model"] == ocr_client.DEFAULT_OCR_MODEL
