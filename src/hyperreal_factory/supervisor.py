"""Run supervisor: at most one active run, cooperative stop, cooldown between shots.

`start()` and `stop()` are synchronous. `start()` must be called with an
event loop running (it schedules the run as a task); `stop()` may be called
from any thread and takes effect at the controller's next checkpoint or
immediately if the run is sitting in its cooldown.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from .adapters.common import GenerationClient, RemoteCallError
from .pipeline import (
    ArtifactCollection,
    PipelineController,
    PipelineRunState,
    RunCancelled,
    RunValidationError,
    validate_start,
)
from .plan_catalog import PlanCatalog
from .schemas import GeneratedArtifact, GenerationConfig, Phase, ReferenceSet, RunProgress
from .telemetry import emit_event

LOG = logging.getLogger(__name__)

DEFAULT_COOLDOWN_S = 4.0

ProgressListener = Callable[[RunProgress], None]
AlertListener = Callable[[str, Exception], None]


class RunSupervisor:
    def __init__(
        self,
        client: GenerationClient,
        catalog: PlanCatalog,
        *,
        cooldown_s: float = DEFAULT_COOLDOWN_S,
        start_index: int = 0,
        on_progress: Optional[ProgressListener] = None,
        on_alert: Optional[AlertListener] = None,
    ) -> None:
        if cooldown_s < 0:
            raise ValueError("cooldown_s must be >= 0")
        self.client = client
        self.catalog = catalog
        self.cooldown_s = cooldown_s
        self.artifacts = ArtifactCollection()
        self._progress_listeners: List[ProgressListener] = [on_progress] if on_progress else []
        self._alert_listeners: List[AlertListener] = [on_alert] if on_alert else []
        self._cursor = 0
        self._phase = Phase.IDLE
        self._last_error: Optional[str] = None
        self._state: Optional[PipelineRunState] = None
        self._task: Optional[asyncio.Task] = None
        self._pending_error: Optional[BaseException] = None
        self.reset(start_index)

    # -- observers -----------------------------------------------------

    def subscribe(self, listener: ProgressListener) -> None:
        self._progress_listeners.append(listener)

    def on_alert(self, listener: AlertListener) -> None:
        self._alert_listeners.append(listener)

    def _notify_progress(self) -> None:
        snapshot = self.progress()
        for listener in list(self._progress_listeners):
            listener(snapshot)

    def _alert(self, kind: str, exc: Exception) -> None:
        emit_event("supervisor.alert", {"kind": kind, "message": str(exc)})
        for listener in list(self._alert_listeners):
            listener(kind, exc)

    # -- state ---------------------------------------------------------

    @property
    def active(self) -> bool:
        return self._state is not None

    @property
    def cursor(self) -> int:
        if self._state is not None:
            return self._state.plan_cursor
        return self._cursor

    def progress(self) -> RunProgress:
        state = self._state
        if state is not None:
            return state.snapshot(self.catalog.length(), active=True)
        return RunProgress(
            cursor=self._cursor,
            plan_length=self.catalog.length(),
            phase=self._phase,
            active=False,
            last_error=self._last_error,
        )

    def reset(self, index: int = 0) -> None:
        """Move the cursor for the next run. Only allowed while idle."""
        if self.active:
            raise RuntimeError("Cannot reset the cursor while a run is active")
        if not 0 <= index <= self.catalog.length():
            raise ValueError(f"start index must be within 0..{self.catalog.length()}")
        self._cursor = index
        self._phase = Phase.IDLE
        self._last_error = None

    def list_artifacts(self) -> List[GeneratedArtifact]:
        return self.artifacts.items()

    # -- control -------------------------------------------------------

    def start(
        self,
        references: ReferenceSet,
        trigger_label: str,
        config: Optional[GenerationConfig] = None,
    ) -> bool:
        """Validate and schedule a run. Returns False when a run is already active."""
        if self.active:
            LOG.info("[factory] start ignored: a run is already active")
            return False
        try:
            validate_start(references, self.catalog, self._cursor)
        except RunValidationError as exc:
            LOG.warning("[factory] start rejected (%s): %s", exc.reason, exc)
            self._alert("validation", exc)
            raise

        loop = asyncio.get_running_loop()
        state = PipelineRunState(plan_cursor=self._cursor)
        controller = PipelineController(
            self.client,
            self.catalog,
            state,
            references=references,
            trigger_label=trigger_label,
            config=config or GenerationConfig(),
            artifacts=self.artifacts,
            on_phase=lambda _prev, _next: self._notify_progress(),
        )
        self._state = state
        self._pending_error = None
        self._last_error = None
        emit_event("supervisor.run.start", {"cursor": state.plan_cursor, "plan_length": self.catalog.length()})
        LOG.info("[factory] run started at %d/%d", state.plan_cursor, self.catalog.length())
        self._task = loop.create_task(self._drive(controller))
        return True

    def stop(self) -> None:
        state = self._state
        if state is None:
            return
        state.request_cancel()
        emit_event("supervisor.run.stop", {"cursor": state.plan_cursor, "phase": state.phase.value})
        LOG.info("[factory] stop requested at %d", state.plan_cursor)

    async def wait(self) -> None:
        """Wait for the active run to finish; re-raises the error that halted it."""
        task = self._task
        if task is not None:
            await task
        error, self._pending_error = self._pending_error, None
        if error is not None:
            raise error

    async def run(
        self,
        references: ReferenceSet,
        trigger_label: str,
        config: Optional[GenerationConfig] = None,
    ) -> List[GeneratedArtifact]:
        if not self.start(references, trigger_label, config):
            raise RuntimeError("A run is already active")
        await self.wait()
        return self.list_artifacts()

    async def generate_once(
        self,
        references: ReferenceSet,
        prompt: str,
        config: Optional[GenerationConfig] = None,
    ) -> GeneratedArtifact:
        """Free-form generation outside the plan. Not allowed during a run."""
        if self.active:
            raise RuntimeError("A run is already active")
        state = PipelineRunState(plan_cursor=self._cursor)
        controller = PipelineController(
            self.client,
            self.catalog,
            state,
            references=references,
            trigger_label="",
            config=config or GenerationConfig(),
            artifacts=self.artifacts,
        )
        self._state = state
        try:
            return await controller.generate_freeform(prompt)
        except RemoteCallError as exc:
            self._last_error = exc.describe()
            self._alert("remote", exc)
            raise
        finally:
            self._state = None
            self._phase = Phase.IDLE

    async def _drive(self, controller: PipelineController) -> None:
        state = controller.state
        try:
            while True:
                await controller.run_shot()
                if controller.exhausted:
                    controller.transition(Phase.STOPPED)
                    emit_event("supervisor.run.completed", {"cursor": state.plan_cursor})
                    LOG.info("[factory] plan complete (%d items)", state.plan_cursor)
                    break
                controller.checkpoint()
                controller.transition(Phase.WAITING)
                if await state.cancel.wait(self.cooldown_s):
                    controller.checkpoint()
        except RunCancelled:
            LOG.info("[factory] run stopped at %d/%d", state.plan_cursor, self.catalog.length())
        except RemoteCallError as exc:
            state.last_error = exc.describe()
            LOG.error("[factory] run halted: %s", state.last_error)
            emit_event(
                "supervisor.run.failed",
                {"cursor": state.plan_cursor, "phase": exc.phase.value if exc.phase else None, "code": exc.code},
            )
            self._pending_error = exc
            self._alert("remote", exc)
        finally:
            state.phase = Phase.STOPPED
            self._cursor = state.plan_cursor
            self._phase = Phase.STOPPED
            self._last_error = state.last_error
            self._state = None
            self._notify_progress()


__all__ = ["DEFAULT_COOLDOWN_S", "RunSupervisor"]
