import json
import pytest
import httpx
from fastapi.testclient import TestClient

from nimbridge.api import create_app
from nimbridge.config import ProxyConfig

# Mock response payloads
MOCK_COMPLETION_RESPONSE = {
    "id": "cmpl-nim-123",
    "object": "chat.completion",
    "created": 1677652288,
    "model": "qwen/qwen3-coder-480b-a35b-instruct",
    "choices": [
        {
            "index": 0,
            "message": {
                "role": "assistant",
                "content": "<thinking>The user wants a greeting.</thinking>Final Answer: Hello there!",
                "reasoning_content": "Greeting the user politely.",
            },
            "finish_reason": "stop",
        }
    ],
    "usage": {"prompt_tokens": 9, "completion_tokens": 12, "total_tokens": 21},
}

MOCK_STREAMING_CHUNKS = [
    {
        "id": "chatcmpl-123",
        "object": "chat.completion.chunk",
        "created": 1694268190,
        "model": "qwen/qwen3-coder-480b-a35b-instruct",
        "choices": [
            {
                "index": 0,
                "delta": {"role": "assistant", "content": ""},
                "finish_reason": None,
            }
        ],
    },
    {
        "id": "chatcmpl-123",
        "object": "chat.completion.chunk",
        "created": 1694268190,
        "model": "qwen/qwen3-coder-480b-a35b-instruct",
        "choices": [
            {
                "index": 0,
                "delta": {"reasoning_content": "Thinking about a greeting"},
                "finish_reason": None,
            }
        ],
    },
    {
        "id": "chatcmpl-123",
        "object": "chat.completion.chunk",
        "created": 1694268190,
        "model": "qwen/qwen3-coder-480b-a35b-instruct",
        "choices": [
            {
                "index": 0,
                "delta": {"content": "<thinking>hmm</thinking>Hello"},
                "finish_reason": None,
            }
        ],
    },
    {
        "id": "chatcmpl-123",
        "object": "chat.completion.chunk",
        "created": 1694268190,
        "model": "qwen/qwen3-coder-480b-a35b-instruct",
        "choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}],
    },
]


def sse_event(chunk) -> bytes:
    """Frame a payload the way the NIM endpoint does."""
    return f"data: {json.dumps(chunk)}\n\n".encode()


def mock_streaming_body(chunks=None) -> bytes:
    if chunks is None:
        chunks = MOCK_STREAMING_CHUNKS
    return b"".join(sse_event(chunk) for chunk in chunks) + b"data: [DONE]\n\n"


def streaming_response(request, pieces, error=None) -> httpx.Response:
    """
    Build an upstream SSE response that yields the given byte pieces one by
    one, optionally raising a transport error after the last piece.
    """

    async def body():
        for piece in pieces:
            yield piece
        if error is not None:
            raise error

    return httpx.Response(
        200,
        headers={"content-type": "text/event-stream"},
        content=body(),
        request=request,
    )


class MockUpstream:
    """Stands in for httpx.AsyncClient.send, recording every upstream request."""

    def __init__(self, handler):
        self.handler = handler
        self.requests = []
        self.responses = []

    async def send(self, request):
        self.requests.append(request)
        response = self.handler(request)
        self.responses.append(response)
        return response

    @property
    def last_body(self):
        return json.loads(self.requests[-1].content)


@pytest.fixture
def mock_upstream(monkeypatch):
    """Install a mock upstream; tests assign its handler."""
    upstream = MockUpstream(
        lambda request: httpx.Response(200, json=MOCK_COMPLETION_RESPONSE, request=request)
    )

    async def mock_send(self, request, **kwargs):
        return await upstream.send(request)

    monkeypatch.setattr(httpx.AsyncClient, "send", mock_send)
    return upstream


@pytest.fixture
def test_config():
    return ProxyConfig(
        nim_api_base="http://nim.example.com/v1",
        nim_api_key="nvapi-test-key",
    )


@pytest.fixture
def test_config_show_reasoning():
    return ProxyConfig(
        nim_api_base="http://nim.example.com/v1",
        nim_api_key="nvapi-test-key",
        show_reasoning=True,
        enable_thinking_mode=True,
    )


@pytest.fixture
def test_client(test_config):
    """Create a test client with reasoning stripped"""
    return TestClient(create_app(test_config))


@pytest.fixture
def test_client_show_reasoning(test_config_show_reasoning):
    """Create a test client with reasoning display and thinking mode enabled"""
    return TestClient(create_app(test_config_show_reasoning))


@pytest.fixture
def test_client_no_key():
    """Create a test client without a configured NIM key"""
    return TestClient(create_app(ProxyConfig(nim_api_base="http://nim.example.com/v1")))
