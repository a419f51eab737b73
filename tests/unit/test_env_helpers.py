from __future__ import annotations

from pathlib import Path

import pytest

from hyperreal_factory import config as config_module
from hyperreal_factory.adapters.common import MissingDependencyError
from hyperreal_factory.adapters.fixture_adapter import FixtureGenerationClient
from hyperreal_factory.adapters.gemini_adapter import GeminiGenerationClient
from hyperreal_factory.config import FactoryConfig, build_client
from hyperreal_factory.plan_catalog import DEFAULT_PLAN_PATH
from hyperreal_factory.schemas import QualityGatePolicy
from hyperreal_factory.utils import env as env_utils


@pytest.mark.parametrize("raw, expected", [("1", True), ("YES", True), (" on ", True), ("0", False), ("off", False)])
def test_env_flag_tokens(raw: str, expected: bool) -> None:
    assert env_utils.env_flag(raw) is expected


def test_env_flag_unknown_uses_default() -> None:
    assert env_utils.env_flag("maybe", default=True) is True
    assert env_utils.env_flag(None) is False


def test_env_numbers_name_the_variable() -> None:
    assert env_utils.env_float(None, name="X", default=1.5) == 1.5
    assert env_utils.env_int("7", name="X", default=0) == 7
    with pytest.raises(ValueError, match="HYPERREAL_COOLDOWN_S"):
        env_utils.env_float("soon", name="HYPERREAL_COOLDOWN_S", default=4.0)


def test_fixture_mode_reads_process_env(monkeypatch: pytest.MonkeyPatch) -> None:
    assert not env_utils.fixture_mode_enabled()
    monkeypatch.setenv("HYPERREAL_USE_FIXTURE", "true")
    assert env_utils.fixture_mode_enabled()


def test_config_module_is_documented() -> None:
    assert config_module.__doc__ is not None
    assert config_module.__doc__.startswith("Process-level configuration")


def test_config_defaults() -> None:
    cfg = FactoryConfig.from_env({})
    assert cfg.api_key is None
    assert cfg.image_model == "gemini-3-pro-image-preview"
    assert cfg.cooldown_s == 4.0
    assert cfg.plan_path == DEFAULT_PLAN_PATH
    assert cfg.quality_policy() is None
    assert not cfg.use_fixture
    assert cfg.telemetry_log is None


def test_config_reads_overrides(tmp_path: Path) -> None:
    cfg = FactoryConfig.from_env(
        {
            "GOOGLE_API_KEY": " key-123 ",
            "HYPERREAL_COOLDOWN_S": "0.5",
            "HYPERREAL_QUALITY_GATE": "1",
            "HYPERREAL_QUALITY_THRESHOLD": "8",
            "HYPERREAL_MAX_RETRIES": "2",
            "HYPERREAL_PLAN_PATH": str(tmp_path / "plan.yaml"),
            "HYPERREAL_IMAGE_MODEL": "custom-image",
            "HYPERREAL_TELEMETRY_LOG": str(tmp_path / "events.jsonl"),
        }
    )
    assert cfg.api_key == "key-123"
    assert cfg.cooldown_s == 0.5
    assert cfg.quality_policy() == QualityGatePolicy(threshold=8, max_retries=2)
    assert cfg.plan_path == tmp_path / "plan.yaml"
    assert cfg.image_model == "custom-image"
    assert cfg.telemetry_log == tmp_path / "events.jsonl"


def test_gemini_key_wins_over_google_key() -> None:
    cfg = FactoryConfig.from_env({"GEMINI_API_KEY": "primary", "GOOGLE_API_KEY": "secondary"})
    assert cfg.api_key == "primary"


@pytest.mark.parametrize(
    "env",
    [
        {"HYPERREAL_COOLDOWN_S": "-1"},
        {"HYPERREAL_QUALITY_THRESHOLD": "11"},
        {"HYPERREAL_MAX_RETRIES": "-2"},
        {"HYPERREAL_MAX_RETRIES": "many"},
    ],
)
def test_config_rejects_invalid_numbers(env: dict) -> None:
    with pytest.raises(ValueError):
        FactoryConfig.from_env(env)


def test_with_overrides_ignores_none() -> None:
    cfg = FactoryConfig.from_env({}).with_overrides(use_fixture=True, cooldown_s=None)
    assert cfg.use_fixture
    assert cfg.cooldown_s == 4.0


def test_build_client_selects_backend() -> None:
    assert isinstance(build_client(FactoryConfig(use_fixture=True)), FixtureGenerationClient)
    assert isinstance(build_client(FactoryConfig(api_key="k")), GeminiGenerationClient)
    with pytest.raises(MissingDependencyError):
        build_client(FactoryConfig())
