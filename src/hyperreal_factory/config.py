"""Process-level configuration resolved from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping

from .adapters.common import GenerationClient
from .adapters.gemini_adapter import DEFAULT_IMAGE_MODEL, DEFAULT_VISION_MODEL
from .plan_catalog import DEFAULT_PLAN_PATH, PlanCatalog
from .schemas import QualityGatePolicy
from .utils.env import env_flag, env_float, env_int, fixture_mode_enabled

_DEFAULT_COOLDOWN_S = 4.0
_DEFAULT_THRESHOLD = 6


@dataclass(frozen=True)
class FactoryConfig:
    """Resolved runtime configuration for the CLI and the API."""

    api_key: str | None = None
    image_model: str = DEFAULT_IMAGE_MODEL
    vision_model: str = DEFAULT_VISION_MODEL
    cooldown_s: float = _DEFAULT_COOLDOWN_S
    quality_threshold: int = _DEFAULT_THRESHOLD
    max_retries: int = 0
    quality_gate_enabled: bool = False
    use_fixture: bool = False
    plan_path: Path = DEFAULT_PLAN_PATH
    telemetry_log: Path | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> FactoryConfig:
        data = os.environ if env is None else env
        api_key = (data.get("GEMINI_API_KEY") or data.get("GOOGLE_API_KEY") or "").strip() or None
        cooldown_s = env_float(data.get("HYPERREAL_COOLDOWN_S"), name="HYPERREAL_COOLDOWN_S", default=_DEFAULT_COOLDOWN_S)
        if cooldown_s < 0:
            raise ValueError("HYPERREAL_COOLDOWN_S must be >= 0")
        threshold = env_int(
            data.get("HYPERREAL_QUALITY_THRESHOLD"), name="HYPERREAL_QUALITY_THRESHOLD", default=_DEFAULT_THRESHOLD
        )
        if not 0 <= threshold <= 10:
            raise ValueError("HYPERREAL_QUALITY_THRESHOLD must be within 0..10")
        max_retries = env_int(data.get("HYPERREAL_MAX_RETRIES"), name="HYPERREAL_MAX_RETRIES", default=0)
        if max_retries < 0:
            raise ValueError("HYPERREAL_MAX_RETRIES must be >= 0")
        plan_hint = data.get("HYPERREAL_PLAN_PATH")
        telemetry_hint = data.get("HYPERREAL_TELEMETRY_LOG")
        return cls(
            api_key=api_key,
            image_model=data.get("HYPERREAL_IMAGE_MODEL") or DEFAULT_IMAGE_MODEL,
            vision_model=data.get("HYPERREAL_VISION_MODEL") or DEFAULT_VISION_MODEL,
            cooldown_s=cooldown_s,
            quality_threshold=threshold,
            max_retries=max_retries,
            quality_gate_enabled=env_flag(data.get("HYPERREAL_QUALITY_GATE"), default=False),
            use_fixture=fixture_mode_enabled(data),
            plan_path=Path(plan_hint).expanduser() if plan_hint else DEFAULT_PLAN_PATH,
            telemetry_log=Path(telemetry_hint).expanduser() if telemetry_hint else None,
        )

    def with_overrides(self, **changes: object) -> FactoryConfig:
        cleaned = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **cleaned)

    def quality_policy(self) -> QualityGatePolicy | None:
        if not self.quality_gate_enabled:
            return None
        return QualityGatePolicy(threshold=self.quality_threshold, max_retries=self.max_retries)

    def load_catalog(self) -> PlanCatalog:
        return PlanCatalog.from_yaml(self.plan_path)


def build_client(config: FactoryConfig) -> GenerationClient:
    """Fixture client in fixture mode, otherwise the Gemini client (requires an API key)."""
    if config.use_fixture:
        from .adapters.fixture_adapter import FixtureGenerationClient

        return FixtureGenerationClient()
    from .adapters.gemini_adapter import GeminiGenerationClient

    return GeminiGenerationClient(
        config.api_key,
        image_model=config.image_model,
        vision_model=config.vision_model,
    )


__all__ = ["FactoryConfig", "build_client"]
