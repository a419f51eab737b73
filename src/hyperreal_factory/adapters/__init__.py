"""Remote generation clients."""
from __future__ import annotations

from .common import GenerationClient, MissingDependencyError, ReferenceImage, RemoteCallError

__all__ = ["GenerationClient", "MissingDependencyError", "ReferenceImage", "RemoteCallError"]
