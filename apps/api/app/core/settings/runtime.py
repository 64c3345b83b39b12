from __future__ import annotations

from .base import SettingsView


class RuntimeSettings(SettingsView):
    """Proxy view for outbound provider settings (LLM, recommendation backend)."""

    FIELD_NAMES: tuple[str, ...] = (
        "llm_provider",
        "llm_model",
        "llm_base_url",
        "llm_api_key",
        "llm_timeout_seconds",
        "llm_max_output_tokens",
        "llm_temperature",
        "gemini_base_url",
        "gemini_api_key",
        "gemini_model",
        "recommendation_base_url",
        "recommendation_timeout_seconds",
    )
