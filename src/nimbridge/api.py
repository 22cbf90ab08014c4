"""FastAPI application and routes for the NIM bridge proxy."""

import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from .config import ProxyConfig, load_config
from .backends import UpstreamError, call_upstream
from .models import ChatCompletionRequest
from .streaming import StreamReframer, reframe_stream
from .utils import build_completion_envelope

logger = logging.getLogger(__name__)

SERVICE_NAME = "OpenAI to NVIDIA NIM Proxy"
ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def error_response(message: str, status_code: int = 500) -> Response:
    """Build the OpenAI-style error envelope, mirroring the status as its code."""
    return Response(
        content=json.dumps(
            {
                "error": {
                    "message": message or "Internal server error",
                    "type": "invalid_request_error",
                    "code": status_code,
                }
            }
        ),
        status_code=status_code,
        media_type="application/json",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Close the shared upstream client on shutdown."""
    yield
    await app.state.http_client.aclose()


def create_app(
    config: ProxyConfig, http_client: Optional[httpx.AsyncClient] = None
) -> FastAPI:
    """
    Create the proxy application.

    Args:
        config: Proxy configuration, shared by reference with every request
        http_client: Client used for upstream calls; a pooled one is created
            when omitted

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(title="NIM Bridge Proxy", lifespan=lifespan)
    app.state.config = config
    app.state.http_client = http_client or httpx.AsyncClient(
        timeout=httpx.Timeout(config.timeout, connect=10.0)
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "reasoning_display": config.show_reasoning,
            "thinking_mode": config.enable_thinking_mode,
        }

    @app.get("/v1/models")
    async def list_models():
        """List the caller-facing model names this proxy maps."""
        created = int(time.time())
        return {
            "object": "list",
            "data": [
                {
                    "id": model,
                    "object": "model",
                    "created": created,
                    "owned_by": "nvidia-nim-proxy",
                }
                for model in config.model_mapping
            ],
        }

    @app.post("/v1/chat/completions")
    async def proxy_chat_completions(request: Request) -> Response:
        """
        Chat completions endpoint:
        - Remaps the model and forwards the request to NIM
        - Streams re-framed SSE events, or re-wraps the JSON completion
        - Strips reasoning unless reasoning display is enabled
        """
        body = await request.body()
        try:
            request_data = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return error_response("Invalid JSON", 400)

        try:
            chat_request = ChatCompletionRequest.model_validate(request_data)
        except ValidationError as e:
            logger.warning(f"Rejected chat completion request: {str(e)}")
            return error_response(
                f"Invalid request: {e.errors()[0]['msg']}", 400
            )

        try:
            response = await call_upstream(
                app.state.http_client,
                chat_request,
                config,
                request.headers.get("authorization"),
            )
        except UpstreamError as e:
            return error_response(e.message, e.status_code)
        except httpx.HTTPError as e:
            logger.error(f"Error calling upstream: {str(e)}")
            return error_response(str(e), 500)

        if chat_request.stream:
            return StreamingResponse(
                reframe_stream(response, StreamReframer(config)),
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
            )

        try:
            upstream = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"Upstream returned invalid JSON: {str(e)}")
            return error_response("Upstream returned invalid JSON", 500)
        if not isinstance(upstream, dict):
            return error_response("Upstream returned an unexpected response", 500)

        try:
            envelope = build_completion_envelope(
                upstream, chat_request.model, config.strip_content
            )
        except (ValidationError, AttributeError, TypeError) as e:
            logger.error(f"Unexpected upstream completion shape: {str(e)}")
            return error_response("Upstream returned an unexpected response", 500)
        return Response(
            content=envelope.model_dump_json(),
            status_code=200,
            media_type="application/json",
        )

    @app.api_route("/{path:path}", methods=ALL_METHODS)
    async def not_found(request: Request) -> Response:
        """Catch-all for unknown endpoints."""
        return error_response(f"Endpoint {request.url.path} not found", 404)

    return app


app = create_app(load_config())


def main():
    """Run the proxy with uvicorn."""
    import uvicorn

    config = app.state.config
    logger.info(f"Proxy running on port {config.port}")
    logger.info(
        f"Reasoning display: {'ENABLED' if config.show_reasoning else 'DISABLED'}"
    )
    logger.info(
        f"Thinking mode: {'ENABLED' if config.enable_thinking_mode else 'DISABLED'}"
    )
    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    main()
