"""FastAPI control surface for the run supervisor."""

from __future__ import annotations

import binascii
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .adapters.common import RemoteCallError
from .pipeline import RunValidationError
from .plan_catalog import PlanCatalog
from .schemas import GenerationConfig, ReferenceSet, RunProgress
from .supervisor import RunSupervisor


class RunRequest(BaseModel):
    references: Dict[str, Optional[str]] = Field(..., description="Slot name to base64 image (data URLs accepted).")
    trigger_label: str = Field(..., min_length=1)
    config: GenerationConfig = Field(default_factory=GenerationConfig)
    start_index: Optional[int] = Field(None, ge=0)


class GenerateRequest(BaseModel):
    references: Dict[str, Optional[str]]
    prompt: str = Field(..., min_length=1)
    config: GenerationConfig = Field(default_factory=GenerationConfig)


def _progress_payload(progress: RunProgress) -> Dict[str, Any]:
    payload = progress.model_dump(mode="json")
    payload["fraction"] = progress.fraction
    return payload


def _http_error(status_code: int, code: str, message: str, details: Optional[Dict[str, Any]] = None) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"error": {"code": code, "message": message, "details": details or {}}},
    )


def _decode_references(raw: Dict[str, Optional[str]]) -> ReferenceSet:
    try:
        return ReferenceSet.from_base64(raw)
    except (binascii.Error, ValueError) as exc:
        raise _http_error(status.HTTP_400_BAD_REQUEST, "invalid_reference", str(exc)) from exc


def create_app(supervisor: RunSupervisor, catalog: Optional[PlanCatalog] = None) -> FastAPI:
    """Create a FastAPI app bound to one supervisor (one active run at a time)."""

    plan = catalog or supervisor.catalog
    app = FastAPI(title="Hyperreal Dataset Factory")

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
        content = exc.detail if isinstance(exc.detail, dict) else {
            "error": {"code": "request_failed", "message": str(exc.detail), "details": {}}
        }
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.get("/healthz")
    async def healthz() -> Dict[str, Any]:
        return {"status": "ok", "plan_length": plan.length()}

    @app.get("/plan")
    async def get_plan() -> Dict[str, Any]:
        return {"items": plan.as_payload(), "negative_prompt": plan.negative_prompt}

    @app.get("/progress")
    async def get_progress() -> Dict[str, Any]:
        return _progress_payload(supervisor.progress())

    @app.get("/artifacts")
    async def list_artifacts(include_image: bool = False) -> Dict[str, Any]:
        items = [artifact.as_payload(include_image=include_image) for artifact in supervisor.list_artifacts()]
        return {"items": items, "count": len(items)}

    @app.post("/runs", status_code=status.HTTP_202_ACCEPTED)
    async def start_run(body: RunRequest) -> Dict[str, Any]:
        if supervisor.active:
            raise _http_error(status.HTTP_409_CONFLICT, "run_active", "A run is already active")
        references = _decode_references(body.references)
        if body.start_index is not None:
            try:
                supervisor.reset(body.start_index)
            except ValueError as exc:
                raise _http_error(status.HTTP_400_BAD_REQUEST, "invalid_start_index", str(exc)) from exc
        try:
            started = supervisor.start(references, body.trigger_label, body.config)
        except RunValidationError as exc:
            raise _http_error(status.HTTP_400_BAD_REQUEST, exc.reason, str(exc)) from exc
        if not started:
            raise _http_error(status.HTTP_409_CONFLICT, "run_active", "A run is already active")
        return _progress_payload(supervisor.progress())

    @app.post("/runs/stop")
    async def stop_run() -> Dict[str, Any]:
        supervisor.stop()
        return _progress_payload(supervisor.progress())

    @app.post("/generate", status_code=status.HTTP_201_CREATED)
    async def generate(body: GenerateRequest) -> Dict[str, Any]:
        if supervisor.active:
            raise _http_error(status.HTTP_409_CONFLICT, "run_active", "A run is already active")
        references = _decode_references(body.references)
        try:
            artifact = await supervisor.generate_once(references, body.prompt, body.config)
        except RunValidationError as exc:
            raise _http_error(status.HTTP_400_BAD_REQUEST, exc.reason, str(exc)) from exc
        except RemoteCallError as exc:
            raise _http_error(
                status.HTTP_502_BAD_GATEWAY, exc.code or "remote_failure", str(exc), {"operation": exc.operation}
            ) from exc
        return artifact.as_payload()

    return app


__all__ = ["GenerateRequest", "RunRequest", "create_app"]
