"""Hyperreal dataset factory: plan-driven identity dataset generation.

Public surface: the plan catalog, the reference selector, the pipeline
controller, and the run supervisor. Remote generation clients live in
`hyperreal_factory.adapters`.
"""

from __future__ import annotations

from .adapters.common import GenerationClient, MissingDependencyError, RemoteCallError
from .pipeline import PipelineController, PipelineRunState, RunCancelled, RunValidationError
from .plan_catalog import PlanCatalog, PlanCatalogError
from .reference_selector import select
from .schemas import GeneratedArtifact, GenerationConfig, Phase, PlanItem, ReferenceSet, ReferenceSlot
from .supervisor import RunSupervisor

__version__ = "0.1.0"

__all__ = [
    "GeneratedArtifact",
    "GenerationClient",
    "GenerationConfig",
    "MissingDependencyError",
    "Phase",
    "PipelineController",
    "PipelineRunState",
    "PlanCatalog",
    "PlanCatalogError",
    "PlanItem",
    "ReferenceSet",
    "ReferenceSlot",
    "RemoteCallError",
    "RunCancelled",
    "RunSupervisor",
    "RunValidationError",
    "__version__",
    "select",
]
