"""Pipeline controller: drives one shot through sketch, synthesis, judging and captioning.

All mutable run state lives in a single `PipelineRunState` shared by
reference between the supervisor and the controller. Cancellation is
cooperative: the controller reads the cancel flag synchronously at the
checkpoint in front of every remote call and raises `RunCancelled` there.
An in-flight call is never interrupted; its result is simply discarded.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Literal, Optional, TypeVar

from . import image_transform, prompts, reference_selector
from .adapters.common import GenerationClient, RemoteCallError
from .plan_catalog import PlanCatalog
from .quality_gate import QualityGate
from .schemas import (
    GeneratedArtifact,
    GenerationConfig,
    Phase,
    ReferenceSet,
    ReferenceSlot,
    RunProgress,
)
from .telemetry import emit_event

LOG = logging.getLogger(__name__)

T = TypeVar("T")
PhaseListener = Callable[[Phase, Phase], None]


class RunValidationError(ValueError):
    """Start preconditions failed; no run was created."""

    def __init__(self, message: str, *, reason: Literal["missing_front", "plan_exhausted", "empty_prompt"]) -> None:
        super().__init__(message)
        self.reason = reason


class RunCancelled(RuntimeError):
    """Cancellation was observed at a checkpoint."""


class CancelSignal:
    """Cancel flag readable synchronously from any thread and awaitable from the loop.

    `set()` may be called from outside the event loop; waiters are woken
    through `call_soon_threadsafe`.
    """

    def __init__(self) -> None:
        self._flag = threading.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._async_event: Optional[asyncio.Event] = None
        self._lock = threading.RLock()

    def is_set(self) -> bool:
        return self._flag.is_set()

    def set(self) -> None:
        self._flag.set()
        with self._lock:
            event = self._async_event
            loop = self._loop
        if not event or not loop or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(event.set)
        except RuntimeError:
            # Loop closed between the check and the call; nobody is waiting.
            pass

    async def wait(self, timeout: float) -> bool:
        """Sleep up to `timeout` seconds; returns True as soon as the flag is set."""
        event = self._ensure_async_event()
        if self._flag.is_set():
            return True
        if timeout <= 0:
            await asyncio.sleep(0)
            return self._flag.is_set()
        try:
            await asyncio.wait_for(event.wait(), timeout)
        except asyncio.TimeoutError:
            pass
        return self._flag.is_set()

    def _ensure_async_event(self) -> asyncio.Event:
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._async_event is None or self._loop is not loop:
                self._async_event = asyncio.Event()
                self._loop = loop
                if self._flag.is_set():
                    self._async_event.set()
            return self._async_event


@dataclass
class PipelineRunState:
    plan_cursor: int = 0
    phase: Phase = Phase.IDLE
    retry_count: int = 0
    last_sketch: Optional[bytes] = field(default=None, repr=False)
    current_plan_id: Optional[int] = None
    last_error: Optional[str] = None
    cancel: CancelSignal = field(default_factory=CancelSignal, repr=False)

    @property
    def cancel_requested(self) -> bool:
        return self.cancel.is_set()

    def request_cancel(self) -> None:
        self.cancel.set()

    def snapshot(self, plan_length: int, *, active: bool) -> RunProgress:
        return RunProgress(
            cursor=self.plan_cursor,
            plan_length=plan_length,
            phase=self.phase,
            active=active,
            retry_count=self.retry_count,
            current_plan_id=self.current_plan_id,
            last_error=self.last_error,
        )


class ArtifactCollection:
    """Most-recent-first artifact list; captions are updated in place by id."""

    def __init__(self) -> None:
        self._items: List[GeneratedArtifact] = []
        self._lock = threading.RLock()

    def add(self, artifact: GeneratedArtifact) -> None:
        with self._lock:
            self._items.insert(0, artifact)

    def update_caption(self, artifact_id: str, caption: str) -> Optional[GeneratedArtifact]:
        with self._lock:
            for artifact in self._items:
                if artifact.id == artifact_id:
                    artifact.caption = caption
                    artifact.is_analyzing = False
                    return artifact
        return None

    def get(self, artifact_id: str) -> Optional[GeneratedArtifact]:
        with self._lock:
            for artifact in self._items:
                if artifact.id == artifact_id:
                    return artifact
        return None

    def remove(self, artifact_id: str) -> bool:
        with self._lock:
            for index, artifact in enumerate(self._items):
                if artifact.id == artifact_id:
                    del self._items[index]
                    return True
        return False

    def items(self) -> List[GeneratedArtifact]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


def validate_start(references: ReferenceSet, catalog: PlanCatalog, cursor: int) -> None:
    if not references.has(ReferenceSlot.FRONT):
        raise RunValidationError("A front reference image is required to start a run", reason="missing_front")
    if cursor >= catalog.length():
        raise RunValidationError(
            f"Plan exhausted: cursor {cursor} of {catalog.length()}; reset to start again",
            reason="plan_exhausted",
        )


class PipelineController:
    """Sequences shots for one run. Owned and driven by the run supervisor."""

    def __init__(
        self,
        client: GenerationClient,
        catalog: PlanCatalog,
        state: PipelineRunState,
        *,
        references: ReferenceSet,
        trigger_label: str,
        config: GenerationConfig,
        artifacts: Optional[ArtifactCollection] = None,
        on_phase: Optional[PhaseListener] = None,
    ) -> None:
        self.client = client
        self.catalog = catalog
        self.state = state
        self.references = references
        self.trigger_label = trigger_label
        self.config = config
        self.artifacts = artifacts if artifacts is not None else ArtifactCollection()
        self.gate = QualityGate(config.quality_gate) if config.quality_gate is not None else None
        self._on_phase = on_phase

    def validate_start(self) -> None:
        validate_start(self.references, self.catalog, self.state.plan_cursor)

    @property
    def exhausted(self) -> bool:
        return self.state.plan_cursor >= self.catalog.length()

    def checkpoint(self) -> None:
        if self.state.cancel_requested:
            self.transition(Phase.STOPPED)
            raise RunCancelled("cancellation requested")

    def transition(self, phase: Phase) -> None:
        previous = self.state.phase
        if previous == phase:
            return
        self.state.phase = phase
        plan_id = self.state.current_plan_id if self.state.current_plan_id is not None else -1
        LOG.info("[factory] phase %s -> %s (plan %d)", previous.value, phase.value, plan_id)
        emit_event(
            "pipeline.phase",
            {"from": previous.value, "to": phase.value, "plan_id": self.state.current_plan_id, "cursor": self.state.plan_cursor},
        )
        if self._on_phase is not None:
            self._on_phase(previous, phase)

    async def _remote(self, phase: Phase, call: Awaitable[T]) -> T:
        try:
            return await call
        except RemoteCallError as exc:
            if exc.phase is None:
                exc.phase = phase
            raise

    async def run_shot(self) -> GeneratedArtifact:
        """Take the item at the cursor through every phase; advances the cursor by one."""
        item = self.catalog.get(self.state.plan_cursor)
        if item is None:
            raise RunValidationError("No plan item at the cursor", reason="plan_exhausted")
        self.state.current_plan_id = item.id
        self.state.retry_count = 0
        scene = prompts.scene_prompt(item)
        pose = prompts.pose_text(item)

        self.checkpoint()
        self.transition(Phase.SKETCHING)
        sketch = await self._remote(
            Phase.SKETCHING, self.client.generate_sketch(pose, self.config.aspect_ratio)
        )
        self.state.last_sketch = sketch

        # Selection reads the pose fields only, never lighting.
        selection = reference_selector.select(self.references, pose)
        reference_images = image_transform.apply_selection(self.references, selection)
        LOG.debug("[factory] plan %d references: %s", item.id, [entry.slot.value for entry in selection])

        image, score = await self._synthesize_until_accepted(scene, reference_images, sketch)

        self.checkpoint()
        self.transition(Phase.CAPTIONING)
        artifact = GeneratedArtifact(
            image=image,
            prompt=scene,
            caption=prompts.CAPTION_PLACEHOLDER,
            quality_score=score,
            source_plan_id=item.id,
            is_dataset=True,
            is_analyzing=True,
        )
        self.artifacts.add(artifact)
        emit_event("pipeline.artifact.created", {"artifact_id": artifact.id, "plan_id": item.id, "score": score})

        caption = await self._caption(artifact, prompts.fallback_caption(self.trigger_label, item))
        self.artifacts.update_caption(artifact.id, caption)
        emit_event("pipeline.artifact.captioned", {"artifact_id": artifact.id, "plan_id": item.id})

        self.state.plan_cursor += 1
        return artifact

    async def _synthesize_until_accepted(self, scene, reference_images, sketch):
        # Retries reuse the sketch from this shot; only synthesis repeats.
        while True:
            self.checkpoint()
            self.transition(Phase.GENERATING)
            images = await self._remote(
                Phase.GENERATING,
                self.client.synthesize(
                    scene,
                    reference_images,
                    sketch,
                    self.config,
                    negative_prompt=self.catalog.negative_prompt or None,
                ),
            )
            if not images:
                raise RemoteCallError(
                    "synthesis returned no images", operation="synthesize", phase=Phase.GENERATING, code="empty_result"
                )
            image = images[0]
            if self.gate is None:
                return image, None

            self.checkpoint()
            self.transition(Phase.JUDGING)
            score = await self._remote(Phase.JUDGING, self.client.evaluate_quality(image))
            decision = self.gate.decide(score, self.state.retry_count)
            LOG.info("[factory] plan %s scored %d (threshold %d): %s", self.state.current_plan_id, score, decision.threshold, decision.action)
            emit_event(
                "pipeline.quality.scored",
                {"plan_id": self.state.current_plan_id, "score": score, "action": decision.action, "retries": self.state.retry_count},
            )
            if decision.proceed:
                return image, score
            self.state.retry_count += 1
            emit_event("pipeline.quality.retry", {"plan_id": self.state.current_plan_id, "attempt": self.state.retry_count})

    async def _caption(self, artifact: GeneratedArtifact, fallback: str) -> str:
        try:
            text = await self.client.caption(artifact.image, self.trigger_label)
        except RemoteCallError as exc:
            LOG.warning("[factory] caption failed for %s, using fallback: %s", artifact.id, exc)
            text = ""
        text = (text or "").strip()
        if not text:
            LOG.warning("[factory] empty caption for %s, composed from plan metadata", artifact.id)
            emit_event("pipeline.caption.degraded", {"artifact_id": artifact.id, "plan_id": artifact.source_plan_id})
            return fallback
        return text

    async def generate_freeform(self, prompt: str) -> GeneratedArtifact:
        """Single synthesis from free text: no sketch, no judging, cursor untouched."""
        prompt = (prompt or "").strip()
        if not prompt:
            raise RunValidationError("Prompt is empty", reason="empty_prompt")
        if not self.references.has(ReferenceSlot.FRONT):
            raise RunValidationError("A front reference image is required", reason="missing_front")
        self.state.current_plan_id = None

        selection = reference_selector.select(self.references, prompt)
        reference_images = image_transform.apply_selection(self.references, selection)
        self.checkpoint()
        self.transition(Phase.GENERATING)
        images = await self._remote(
            Phase.GENERATING,
            self.client.synthesize(prompt, reference_images, None, self.config, negative_prompt=self.catalog.negative_prompt or None),
        )
        if not images:
            raise RemoteCallError(
                "synthesis returned no images", operation="synthesize", phase=Phase.GENERATING, code="empty_result"
            )

        self.checkpoint()
        self.transition(Phase.CAPTIONING)
        artifact = GeneratedArtifact(
            image=images[0], prompt=prompt, caption=prompts.CAPTION_PLACEHOLDER, is_analyzing=True
        )
        self.artifacts.add(artifact)
        emit_event("pipeline.artifact.created", {"artifact_id": artifact.id, "plan_id": None, "score": None})
        caption = await self._caption(artifact, prompt)
        self.artifacts.update_caption(artifact.id, caption)
        emit_event("pipeline.artifact.captioned", {"artifact_id": artifact.id, "plan_id": None})
        return artifact


__all__ = [
    "ArtifactCollection",
    "CancelSignal",
    "PipelineController",
    "PipelineRunState",
    "RunCancelled",
    "RunValidationError",
    "validate_start",
]
