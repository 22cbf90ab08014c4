"""An OpenAI-compatible proxy for NVIDIA NIM chat completions."""

__version__ = "0.1.0"

from .config import ProxyConfig, load_config
from .api import app, create_app
from .streaming import StreamReframer, reframe_stream
from .backends import UpstreamError, call_upstream
from .mapping import resolve_model
from .utils import strip_reasoning
