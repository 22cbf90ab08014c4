"""Configuration handling for the NIM bridge proxy."""

import yaml
import logging
import os
import sys
from pathlib import Path
from typing import Dict, Any, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .mapping import MODEL_MAPPING, FALLBACK_MODELS

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config.yaml"
DEFAULT_NIM_API_BASE = "https://integrate.api.nvidia.com/v1"
DEFAULT_SYSTEM_PROMPT = (
    "Respond clearly and concisely. Do not explain your reasoning. "
    "Do not include analysis or thinking."
)

TRUTHY = ("1", "true", "yes", "on")


class ProxyConfig(BaseModel):
    """Settings shared by the app and every stream re-framer it creates."""

    nim_api_base: str = DEFAULT_NIM_API_BASE
    nim_api_key: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 3000
    show_reasoning: bool = False
    enable_thinking_mode: bool = False
    timeout: float = 300.0
    default_temperature: float = 0.6
    default_max_tokens: int = 9024
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    model_mapping: Dict[str, str] = Field(default_factory=lambda: dict(MODEL_MAPPING))
    fallback_models: List[Dict[str, Any]] = Field(
        default_factory=lambda: [dict(rule) for rule in FALLBACK_MODELS]
    )

    @property
    def strip_content(self) -> bool:
        """Visible content is filtered whenever reasoning is not displayed."""
        return not self.show_reasoning


def _env_flag(value: str) -> bool:
    return value.strip().lower() in TRUTHY


def load_yaml_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load the raw settings dictionary from a YAML file.

    Falls back to an empty dictionary when the file is missing or malformed,
    so the proxy can still start from environment variables alone.
    """
    if path is None:
        path = Path(os.environ.get("NIMBRIDGE_CONFIG", DEFAULT_CONFIG_PATH))
    try:
        config_yaml = Path(path).read_text()
        data = yaml.safe_load(config_yaml) or {}
        if not isinstance(data, dict):
            raise ValueError("top level of the config file must be a mapping")
        logger.info(f"Successfully loaded configuration from {path}")
        return data
    except Exception as e:
        logger.error(f"Error loading {path}: {str(e)}")
        return {}


def load_config(path: Optional[Path] = None) -> ProxyConfig:
    """
    Build the proxy configuration once at startup.

    Values come from config.yaml first and are then overridden by environment
    variables (a local .env file is loaded into the environment beforehand):

        NIM_API_BASE, NIM_API_KEY, HOST, PORT, SHOW_REASONING,
        ENABLE_THINKING_MODE, REQUEST_TIMEOUT
    """
    load_dotenv()
    data = load_yaml_config(path)

    settings = dict(data.get("settings", {}) or {})
    if data.get("model_mapping"):
        settings["model_mapping"] = data["model_mapping"]
    if data.get("fallback_models"):
        settings["fallback_models"] = data["fallback_models"]

    env = os.environ
    if env.get("NIM_API_BASE"):
        settings["nim_api_base"] = env["NIM_API_BASE"]
    if env.get("NIM_API_KEY"):
        settings["nim_api_key"] = env["NIM_API_KEY"]
    if env.get("HOST"):
        settings["host"] = env["HOST"]
    if env.get("PORT"):
        settings["port"] = int(env["PORT"])
    if env.get("REQUEST_TIMEOUT"):
        settings["timeout"] = float(env["REQUEST_TIMEOUT"])
    if "SHOW_REASONING" in env:
        settings["show_reasoning"] = _env_flag(env["SHOW_REASONING"])
    if "ENABLE_THINKING_MODE" in env:
        settings["enable_thinking_mode"] = _env_flag(env["ENABLE_THINKING_MODE"])

    config = ProxyConfig(**settings)
    config.nim_api_base = config.nim_api_base.rstrip("/")

    if not config.nim_api_key:
        logger.warning(
            "NIM_API_KEY not set, the caller's Authorization header will be forwarded"
        )
    return config
