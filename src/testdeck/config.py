import logging
import os
from dataclasses import dataclass, field

from testdeck.errors import ConfigError

logger = logging.getLogger(__name__)

MODEL_ALIASES = {
    "sonnet": "claude-sonnet-4-20250514",
    "opus": "claude-opus-4-20250514",
    "haiku": "claude-3-5-haiku-20241022",
    "4o": "gpt-4o",
    "4o-mini": "gpt-4o-mini",
    "flash": "gemini/gemini-2.5-flash",
    "deepseek": "deepseek/deepseek-chat",
}

ENGINE_CHOICES = ("simulated", "llm", "http")


def resolve_model_alias(name: str) -> str:
    return MODEL_ALIASES.get(name.lower(), name)


def get_optional_env(name: str, default: str) -> str:
    return os.environ.get(name, default)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


@dataclass
class DashboardConfig:
    model: str = "gpt-4o"
    engine: str = "simulated"
    engine_url: str | None = None
    timeout_s: float = 30.0
    simulated_delay_s: float = 1.5
    max_history: int | None = None
    temperature: float = 0.0
    max_tokens: int = 4096
    data_dir: str = field(
        default_factory=lambda: get_optional_env("TESTDECK_DATA_DIR", ".testdeck/sessions")
    )

    @classmethod
    def from_env(cls) -> "DashboardConfig":
        return cls(
            model=resolve_model_alias(get_optional_env("TESTDECK_MODEL", "gpt-4o")),
            engine=get_optional_env("TESTDECK_ENGINE", "simulated"),
            engine_url=os.environ.get("TESTDECK_ENGINE_URL") or None,
            timeout_s=_env_float("TESTDECK_TIMEOUT", 30.0),
            simulated_delay_s=_env_float("TESTDECK_SIMULATED_DELAY", 1.5),
            max_history=_env_int("TESTDECK_MAX_HISTORY", None),
        )

    def validate(self) -> None:
        if self.engine not in ENGINE_CHOICES:
            raise ConfigError(f"engine must be one of {', '.join(ENGINE_CHOICES)}")
        if self.engine == "http" and not self.engine_url:
            raise ConfigError("engine_url is required when engine is 'http'")
        if self.timeout_s <= 0:
            raise ConfigError("timeout_s must be > 0")
        if self.simulated_delay_s < 0:
            raise ConfigError("simulated_delay_s must be >= 0")
        if self.max_history is not None and self.max_history < 2:
            raise ConfigError("max_history must be at least 2 when set")
        if not 0.0 <= self.temperature <= 2.0:
            raise ConfigError("temperature must be between 0 and 2")
        if self.max_tokens < 1:
            raise ConfigError("max_tokens must be at least 1")
        logger.debug("Configuration validated successfully")
