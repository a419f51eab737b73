from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Literal, Optional

import jsonschema
import yaml

from .plan_catalog import PACKAGE_ROOT
from .schemas import QualityGatePolicy

LOG = logging.getLogger(__name__)

DEFAULT_POLICY_PATH = PACKAGE_ROOT / "data" / "quality_policy.yaml"
DEFAULT_SCHEMA_PATH = PACKAGE_ROOT / "data" / "quality_policy.schema.json"


class QualityPolicyError(RuntimeError):
    """Raised when a quality policy file cannot be parsed or validated."""


class QualityRejected(Exception):
    """Judge score fell below the threshold. Consumed by the controller."""

    def __init__(self, score: int, threshold: int) -> None:
        super().__init__(f"score {score} below threshold {threshold}")
        self.score = score
        self.threshold = threshold


@dataclass(frozen=True)
class QualityDecision:
    action: Literal["accept", "retry", "force_accept"]
    score: int
    threshold: int
    retries_used: int
    reasons: List[str] = field(default_factory=list)

    @property
    def proceed(self) -> bool:
        return self.action != "retry"


class QualityGate:
    """Applies a `QualityGatePolicy` to judge scores.

    Below-threshold images are regenerated while the retry budget lasts;
    once it is spent the image is accepted regardless so the run keeps moving.
    """

    def __init__(self, policy: QualityGatePolicy) -> None:
        self.policy = policy

    @property
    def threshold(self) -> int:
        return self.policy.threshold

    @property
    def max_retries(self) -> int:
        return self.policy.max_retries

    def check(self, score: int) -> None:
        if score < self.policy.threshold:
            raise QualityRejected(score, self.policy.threshold)

    def decide(self, score: int, retries_used: int) -> QualityDecision:
        try:
            self.check(score)
        except QualityRejected as rejected:
            if retries_used < self.policy.max_retries:
                return QualityDecision("retry", score, self.threshold, retries_used, [str(rejected)])
            return QualityDecision(
                "force_accept",
                score,
                self.threshold,
                retries_used,
                [str(rejected), f"retry budget {self.policy.max_retries} exhausted"],
            )
        return QualityDecision("accept", score, self.threshold, retries_used)


def load_policy(policy_path: Path = DEFAULT_POLICY_PATH, *, schema_path: Optional[Path] = DEFAULT_SCHEMA_PATH) -> QualityGatePolicy:
    """Load and validate a quality policy YAML file."""

    try:
        data = yaml.safe_load(Path(policy_path).read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise QualityPolicyError(f"Failed to read quality policy at {policy_path}: {exc}") from exc

    if schema_path is not None and Path(schema_path).exists():
        schema = json.loads(Path(schema_path).read_text(encoding="utf-8"))
        try:
            jsonschema.validate(instance=data, schema=schema)
        except jsonschema.ValidationError as exc:
            raise QualityPolicyError(f"Quality policy does not match schema {schema_path}: {exc.message}") from exc

    if not isinstance(data, dict):
        raise QualityPolicyError(f"Quality policy at {policy_path} must be a mapping")
    LOG.debug("Loaded quality policy from %s", policy_path)
    return QualityGatePolicy(threshold=data["threshold"], max_retries=data["max_retries"])


__all__ = [
    "DEFAULT_POLICY_PATH",
    "DEFAULT_SCHEMA_PATH",
    "QualityDecision",
    "QualityGate",
    "QualityPolicyError",
    "QualityRejected",
    "load_policy",
]
