"""Upstream (NVIDIA NIM) handling for the NIM bridge proxy."""

import json
import logging
import httpx
from typing import Dict, Any, Optional

from .config import ProxyConfig
from .mapping import resolve_model
from .models import ChatCompletionRequest

logger = logging.getLogger(__name__)


class UpstreamError(Exception):
    """Raised when the upstream answers with an error status."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def build_upstream_payload(
    request: ChatCompletionRequest, config: ProxyConfig
) -> Dict[str, Any]:
    """
    Translate a caller request into the body sent to the NIM endpoint.

    Args:
        request: The validated caller request
        config: Proxy configuration

    Returns:
        JSON-serialisable request body with the model remapped, the
        reasoning-suppression system prompt prepended and defaults filled in
    """
    messages = [
        message.model_dump(exclude_none=True) for message in request.messages
    ]
    if config.system_prompt:
        messages.insert(0, {"role": "system", "content": config.system_prompt})

    payload = {
        "model": resolve_model(
            request.model, config.model_mapping, config.fallback_models
        ),
        "messages": messages,
        "temperature": (
            request.temperature
            if request.temperature is not None
            else config.default_temperature
        ),
        "max_tokens": (
            request.max_tokens
            if request.max_tokens is not None
            else config.default_max_tokens
        ),
        "stream": bool(request.stream),
    }
    if config.enable_thinking_mode:
        payload["chat_template_kwargs"] = {"thinking": True}
    return payload


def build_upstream_headers(
    config: ProxyConfig, incoming_authorization: Optional[str] = None
) -> Dict[str, str]:
    """Use the configured key, or forward the caller's bearer token."""
    headers = {"Content-Type": "application/json"}
    if config.nim_api_key:
        headers["Authorization"] = f"Bearer {config.nim_api_key}"
    elif incoming_authorization:
        headers["Authorization"] = incoming_authorization
    return headers


def _error_message(content: bytes, status_code: int) -> str:
    try:
        body = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if body.get("detail"):
            return str(body["detail"])
        if body.get("message"):
            return str(body["message"])
    return f"Request failed with status code {status_code}"


async def call_upstream(
    client: httpx.AsyncClient,
    request: ChatCompletionRequest,
    config: ProxyConfig,
    incoming_authorization: Optional[str] = None,
) -> httpx.Response:
    """
    Send a chat completion request to the NIM endpoint.

    Streaming requests return the response with its body still unread; the
    caller owns it and must close it. Non-streaming responses are fully read.

    Raises:
        UpstreamError: the upstream answered with a 4xx or 5xx status
        httpx.HTTPError: the request could not be completed
    """
    payload = build_upstream_payload(request, config)
    body = json.dumps(payload).encode()
    target_url = f"{config.nim_api_base}/chat/completions"
    logger.info(
        f"Calling upstream {target_url} with model {payload['model']} "
        f"(requested {request.model}, stream={payload['stream']})"
    )

    upstream_request = client.build_request(
        "POST",
        target_url,
        content=body,
        headers=build_upstream_headers(config, incoming_authorization),
        timeout=config.timeout,
    )
    response = await client.send(upstream_request, stream=payload["stream"])

    if response.status_code >= 400:
        try:
            content = await response.aread()
        finally:
            await response.aclose()
        message = _error_message(content, response.status_code)
        logger.error(f"Upstream returned {response.status_code}: {message}")
        raise UpstreamError(message, response.status_code)

    return response
