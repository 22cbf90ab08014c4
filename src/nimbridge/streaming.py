"""Streaming response handling for the NIM bridge proxy."""

import codecs
import json
import logging
from typing import AsyncGenerator, List, Optional, Union

import anyio
import httpx

from .config import ProxyConfig
from .utils import scrub_choice

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


class StreamReframer:
    """
    Re-partitions an upstream SSE byte stream into lines and re-emits every
    data event with its reasoning fields removed.

    Upstream chunks carry no alignment to line or event boundaries, so the
    trailing partial line is buffered until a later chunk completes it. Bytes
    are decoded incrementally, which keeps a multi-byte character split across
    two chunks intact. One instance serves exactly one response stream.
    """

    def __init__(self, config: ProxyConfig):
        self.config = config
        self.buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def ingest(self, chunk: Union[bytes, str]) -> List[str]:
        """
        Add a chunk to the line buffer and return the frames for every line
        it completes, in arrival order.
        """
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self.buffer += chunk

        lines = self.buffer.split("\n")
        self.buffer = lines.pop()

        frames = []
        for line in lines:
            frame = self.emit(line.rstrip("\r"))
            if frame is not None:
                frames.append(frame)
        return frames

    def emit(self, line: str) -> Optional[str]:
        """
        Turn one complete line into an output frame.

        Returns None for lines that are not data events. The [DONE] sentinel
        is passed through untouched. A data line whose payload is not valid
        JSON is forwarded as-is with a single newline.
        """
        if not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):]
        if payload.strip() == DONE_SENTINEL:
            return line + "\n\n"

        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug(f"Forwarding unparseable event verbatim: {line!r}")
            return line + "\n"

        choices = data.get("choices") if isinstance(data, dict) else None
        if isinstance(choices, list):
            for choice in choices:
                if isinstance(choice, dict):
                    scrub_choice(choice, self.config.strip_content)

        return f"{DATA_PREFIX}{json.dumps(data, ensure_ascii=False, separators=(',', ':'))}\n\n"

    def flush(self) -> List[str]:
        """
        Process whatever is left in the buffer once the upstream has ended.

        An upstream that omits the final newline would otherwise lose its
        last event, so the remainder is treated as one more complete line.
        """
        remainder = self.buffer + self._decoder.decode(b"", final=True)
        self.buffer = ""
        if not remainder:
            return []
        frame = self.emit(remainder.rstrip("\r"))
        return [frame] if frame is not None else []

    def reset(self):
        """Drop any buffered state."""
        self.buffer = ""
        self._decoder.reset()


async def reframe_stream(
    response: httpx.Response, reframer: StreamReframer
) -> AsyncGenerator[bytes, None]:
    """
    Relay an upstream SSE response through a re-framer.

    A transport error mid-stream ends the downstream stream without an error
    event. The upstream response is closed however the stream finishes,
    including when the client disconnects and the generator is closed.
    """
    try:
        async for chunk in response.aiter_bytes():
            for frame in reframer.ingest(chunk):
                yield frame.encode()
        for frame in reframer.flush():
            yield frame.encode()
    except httpx.HTTPError as e:
        logger.warning(f"Upstream stream failed, closing downstream: {str(e)}")
    finally:
        reframer.reset()
        # The server cancels this task on client disconnect; the close must
        # still run to completion.
        with anyio.CancelScope(shield=True):
            await response.aclose()
