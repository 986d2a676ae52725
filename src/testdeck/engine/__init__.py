from __future__ import annotations

from typing import TYPE_CHECKING

from testdeck.engine.base import EngineRequest, GenerationEngine
from testdeck.engine.simulated import SimulatedEngine
from testdeck.errors import ConfigError

if TYPE_CHECKING:
    from testdeck.config import DashboardConfig


def build_engine(config: DashboardConfig) -> GenerationEngine:
    if config.engine == "simulated":
        return SimulatedEngine(delay_s=config.simulated_delay_s)
    if config.engine == "llm":
        from testdeck.engine.llm import LLMEngine

        return LLMEngine(
            config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            request_timeout=config.timeout_s,
        )
    if config.engine == "http":
        from testdeck.engine.http import HttpEngine

        if not config.engine_url:
            raise ConfigError("engine_url is required for the http engine")
        return HttpEngine(config.engine_url, timeout=config.timeout_s)
    raise ConfigError(f"Unknown engine: {config.engine}")


__all__ = ["EngineRequest", "GenerationEngine", "SimulatedEngine", "build_engine"]
