"""Model name mapping from OpenAI-style identifiers to NIM model identifiers."""

import logging
from typing import Dict, Any, List, Optional

logger = logging.getLogger(__name__)

MODEL_MAPPING = {
    "gpt-3.5-turbo": "nvidia/llama-3.1-nemotron-ultra-253b-v1",
    "gpt-4": "qwen/qwen3-coder-480b-a35b-instruct",
    "gpt-4-turbo": "moonshotai/kimi-k2-instruct-0905",
    "gpt-4o": "deepseek-ai/deepseek-v3.1",
    "claude-3-opus": "openai/gpt-oss-120b",
    "claude-3-sonnet": "openai/gpt-oss-20b",
    "gemini-pro": "qwen/qwen3-next-80b-a3b-thinking",
}

# Checked in order against the lower-cased name when there is no exact match.
FALLBACK_MODELS = [
    {"contains": ["gpt-4", "claude-opus", "405b"], "model": "meta/llama-3.1-405b-instruct"},
    {"contains": ["claude", "gemini", "70b"], "model": "meta/llama-3.1-70b-instruct"},
]

DEFAULT_UPSTREAM_MODEL = "meta/llama-3.1-8b-instruct"


def resolve_model(
    model: str,
    mapping: Optional[Dict[str, str]] = None,
    fallbacks: Optional[List[Dict[str, Any]]] = None,
) -> str:
    """
    Map a caller-facing model name to the upstream model identifier.

    Exact matches in the mapping win. Otherwise the first fallback rule with
    a substring of the lower-cased name is used, and anything left over goes
    to the smallest Llama model.
    """
    if mapping is None:
        mapping = MODEL_MAPPING
    if fallbacks is None:
        fallbacks = FALLBACK_MODELS

    if model in mapping:
        return mapping[model]

    model_lower = (model or "").lower()
    for rule in fallbacks:
        if any(fragment in model_lower for fragment in rule.get("contains", [])):
            logger.info(f"No mapping for {model}, falling back to {rule['model']}")
            return rule["model"]

    logger.info(f"No mapping for {model}, using {DEFAULT_UPSTREAM_MODEL}")
    return DEFAULT_UPSTREAM_MODEL
