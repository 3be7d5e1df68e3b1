"""Configuration for the chat session engine."""

import os
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, Field, model_validator


@dataclass
class ModelOption:
    """A selectable model identifier."""

    id: str
    label: str
    description: str


MODEL_OPTIONS: list[ModelOption] = [
    ModelOption("gpt-5.2", "GPT-5.2", "Flagship conversational model with adaptive tone."),
    ModelOption("o4-mini", "OpenAI o4 Mini", "Ultra-fast reasoning for high-volume tasks."),
    ModelOption("gpt-5.1-codex-max", "GPT-5.1 Codex Max", "Agentic model built for project-scale coding."),
    ModelOption("gemini-3-flash-preview", "Gemini 3 Flash", "Fast default with strong reasoning."),
    ModelOption("gemini-3-pro-preview", "Gemini 3 Pro", "Multimodal model for advanced math and logic."),
    ModelOption("gemini-2.5-flash", "Gemini 2.5 Flash", "Stable model for high-throughput workflows."),
    ModelOption("mistral-large-3", "Mistral Large 3", "Sparse MoE model with 256k context."),
    ModelOption("ministral-3-14b", "Ministral 3 (14B)", "Compact model for edge and local deployment."),
    ModelOption("magistral-medium-1.2", "Magistral Medium", "Transparent, multilingual reasoning."),
    ModelOption("devstral-2", "Devstral 2", "Code agent model for software engineering."),
]

DEFAULT_MODEL = MODEL_OPTIONS[6].id


class ChatConfig(BaseModel):
    """Tunables for the chat session engine and its collaborators."""

    endpoint_url: str = "http://localhost:3001/api/chat"
    telemetry_url: str = "http://localhost:3001/api/telemetry"
    telemetry_enabled: bool = False
    default_model: str = DEFAULT_MODEL
    request_timeout: float = 60.0

    # Archiving and trimming
    visibility_cap: int = Field(default=60, ge=1)
    trim_keep: int = Field(default=12, ge=0)

    # Retry policy: delay = backoff_base * 2**attempt + uniform(0, backoff_jitter)
    max_attempts: int = Field(default=3, ge=1)
    backoff_base: float = Field(default=0.5, gt=0)
    backoff_jitter: float = Field(default=0.3, ge=0)

    notification_dismiss_seconds: float = Field(default=5.0, gt=0)

    storage_path: Path = Path.home() / ".chatstream" / "conversations.json"
    persist_debounce_seconds: float = Field(default=0.3, ge=0)

    @model_validator(mode="after")
    def check_backoff_monotonic(self) -> "ChatConfig":
        """Jitter above twice the base could make a later delay shorter than an earlier one."""
        if self.backoff_jitter > 2 * self.backoff_base:
            raise ValueError(
                f"backoff_jitter ({self.backoff_jitter}) must not exceed twice backoff_base ({self.backoff_base})"
            )
        return self

    @classmethod
    def for_testing(cls, **overrides) -> "ChatConfig":
        """Same algorithm with much shorter backoff, for automated tests."""
        values = {"backoff_base": 0.01, "backoff_jitter": 0.01, "persist_debounce_seconds": 0.0}
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_env(cls) -> "ChatConfig":
        """Build configuration from CHATSTREAM_* environment variables."""
        overrides: dict = {}

        if endpoint := os.getenv("CHATSTREAM_ENDPOINT_URL"):
            overrides["endpoint_url"] = endpoint
        if telemetry_url := os.getenv("CHATSTREAM_TELEMETRY_URL"):
            overrides["telemetry_url"] = telemetry_url
        if telemetry := os.getenv("CHATSTREAM_TELEMETRY"):
            overrides["telemetry_enabled"] = telemetry.lower() in ("1", "true", "yes", "on")
        if model := os.getenv("CHATSTREAM_MODEL"):
            overrides["default_model"] = model
        if storage := os.getenv("CHATSTREAM_STORAGE_PATH"):
            overrides["storage_path"] = Path(storage).expanduser()
        if os.getenv("CHATSTREAM_MODE", "").lower() == "test":
            overrides.update(backoff_base=0.01, backoff_jitter=0.01)

        return cls(**overrides)

    def find_model(self, model_id: str) -> ModelOption | None:
        """Look up a catalog entry; unknown ids are still usable as opaque labels."""
        return next((option for option in MODEL_OPTIONS if option.id == model_id), None)
