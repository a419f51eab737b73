from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from . import telemetry
from .adapters.common import MissingDependencyError, RemoteCallError
from .config import FactoryConfig, build_client
from .pipeline import RunValidationError
from .plan_catalog import PlanCatalog, PlanCatalogError
from .quality_gate import QualityPolicyError, load_policy
from .schemas import (
    PRODUCT_SLOTS,
    AspectRatio,
    GeneratedArtifact,
    GenerationConfig,
    ImageSize,
    QualityGatePolicy,
    ReferenceSet,
    ReferenceSlot,
)
from .supervisor import RunSupervisor

LOG = logging.getLogger(__name__)

_IDENTITY_FLAGS = {
    "front": ReferenceSlot.FRONT,
    "side": ReferenceSlot.SIDE,
    "three_quarter": ReferenceSlot.THREE_QUARTER,
    "expression": ReferenceSlot.EXPRESSION,
    "side90": ReferenceSlot.SIDE90,
}


def dataset_stem(trigger_label: str) -> str:
    words = trigger_label.split()
    return words[0] if words else "image"


def export_dataset(
    artifacts: Sequence[GeneratedArtifact],
    out_dir: Path,
    trigger_label: str,
    *,
    start_number: int = 1,
) -> List[Path]:
    """Write `{stem}_{NNN}.png` plus a matching `.txt` caption for each artifact.

    `artifacts` is most-recent-first (as the supervisor keeps them); numbering
    follows generation order starting at `start_number`. A resumed run passes
    its start index + 1 so files from earlier sessions keep their names.
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    stem = dataset_stem(trigger_label)
    written: List[Path] = []
    total = len(artifacts)
    for position, artifact in enumerate(artifacts):
        name = f"{stem}_{start_number + total - position - 1:03d}"
        image_path = out_dir / f"{name}.png"
        image_path.write_bytes(artifact.image)
        (out_dir / f"{name}.txt").write_text(artifact.caption, encoding="utf-8")
        written.append(image_path)
    return sorted(written)


def _reference_paths(args: argparse.Namespace) -> Dict[ReferenceSlot, Optional[str]]:
    paths: Dict[ReferenceSlot, Optional[str]] = {slot: getattr(args, flag) for flag, slot in _IDENTITY_FLAGS.items()}
    products = args.product or []
    if len(products) > len(PRODUCT_SLOTS):
        raise SystemExit(f"At most {len(PRODUCT_SLOTS)} --product images are supported")
    for slot, path in zip(PRODUCT_SLOTS, products):
        paths[slot] = path
    return paths


def _quality_policy(args: argparse.Namespace, config: FactoryConfig) -> Optional[QualityGatePolicy]:
    if args.quality_policy:
        return load_policy(Path(args.quality_policy))
    if args.quality_threshold is not None or args.max_retries is not None:
        return QualityGatePolicy(
            threshold=args.quality_threshold if args.quality_threshold is not None else config.quality_threshold,
            max_retries=args.max_retries if args.max_retries is not None else config.max_retries,
        )
    return config.quality_policy()


def _resolve_config(args: argparse.Namespace) -> FactoryConfig:
    config = FactoryConfig.from_env()
    return config.with_overrides(
        use_fixture=True if getattr(args, "fixture", False) else None,
        plan_path=Path(args.plan) if getattr(args, "plan", None) else None,
        cooldown_s=getattr(args, "cooldown", None),
        telemetry_log=Path(args.telemetry_log) if getattr(args, "telemetry_log", None) else None,
    )


async def _run_async(supervisor: RunSupervisor, references: ReferenceSet, trigger: str, gen_config: GenerationConfig) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, supervisor.stop)
    except (NotImplementedError, RuntimeError):
        LOG.debug("SIGINT handler unavailable; Ctrl+C aborts immediately")
    try:
        await supervisor.run(references, trigger, gen_config)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


def cmd_run(args: argparse.Namespace) -> int:
    config = _resolve_config(args)
    telemetry.set_log_path(config.telemetry_log)
    try:
        catalog = config.load_catalog()
        references = ReferenceSet.from_paths(_reference_paths(args))
        policy = _quality_policy(args, config)
        client = build_client(config)
    except (PlanCatalogError, QualityPolicyError, MissingDependencyError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    gen_config = GenerationConfig(
        aspect_ratio=AspectRatio(args.aspect_ratio),
        image_size=ImageSize(args.image_size),
        raw_mode=not args.polished,
        quality_gate=policy,
    )
    try:
        supervisor = RunSupervisor(client, catalog, cooldown_s=config.cooldown_s, start_index=args.start_index)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    exit_code = 0
    try:
        asyncio.run(_run_async(supervisor, references, args.trigger, gen_config))
    except RunValidationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except RemoteCallError as exc:
        print(f"error: run halted during {exc.describe()}", file=sys.stderr)
        exit_code = 1

    artifacts = supervisor.list_artifacts()
    written = export_dataset(artifacts, Path(args.out), args.trigger, start_number=args.start_index + 1)
    progress = supervisor.progress()
    print(f"Wrote {len(written)} image(s) to {args.out}; cursor {progress.cursor}/{progress.plan_length}")
    if progress.cursor < progress.plan_length:
        print(f"Resume with --start-index {progress.cursor}")
    return exit_code


def cmd_plan(args: argparse.Namespace) -> int:
    config = _resolve_config(args)
    try:
        catalog = PlanCatalog.from_yaml(config.plan_path)
    except PlanCatalogError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    for index, item in enumerate(catalog):
        print(f"{index:3d}  #{item.id:<3d} {item.shot_type} | {item.expression} | {item.lighting} | {item.description}")
    print(f"{catalog.length()} item(s)")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from .api import create_app

    config = _resolve_config(args)
    telemetry.set_log_path(config.telemetry_log)
    try:
        catalog = config.load_catalog()
        client = build_client(config)
    except (PlanCatalogError, MissingDependencyError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    supervisor = RunSupervisor(client, catalog, cooldown_s=config.cooldown_s)
    uvicorn.run(create_app(supervisor, catalog), host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hyperreal-factory", description="Generate a captioned identity dataset")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the dataset plan and write images + captions")
    run.add_argument("--front", required=True, help="Front view reference image (required)")
    run.add_argument("--side", help="Side profile reference image")
    run.add_argument("--three-quarter", dest="three_quarter", help="3/4 angle reference image")
    run.add_argument("--expression", help="Expression (smile) reference image")
    run.add_argument("--side90", help="Strict 90 degree profile reference image")
    run.add_argument("--product", action="append", help="Garment reference image (repeatable, up to 4)")
    run.add_argument("--trigger", required=True, help="Trigger label prefixed to every caption")
    run.add_argument("--out", default="./dataset", help="Output directory")
    run.add_argument("--fixture", action="store_true", help="Use the offline fixture client")
    run.add_argument("--plan", help="Plan YAML (defaults to the bundled 50-shot plan)")
    run.add_argument("--aspect-ratio", default=AspectRatio.SQUARE.value, choices=[r.value for r in AspectRatio])
    run.add_argument("--image-size", default=ImageSize.ONE_K.value, choices=[s.value for s in ImageSize])
    run.add_argument("--polished", action="store_true", help="Polished style instead of raw/analog")
    run.add_argument("--quality-threshold", type=int, choices=range(0, 11), metavar="0-10")
    run.add_argument("--max-retries", type=int)
    run.add_argument("--quality-policy", help="Quality policy YAML (threshold/max_retries)")
    run.add_argument("--start-index", type=int, default=0, help="Plan index to resume from")
    run.add_argument("--cooldown", type=float, help="Seconds between shots")
    run.add_argument("--telemetry-log", help="Append telemetry events to this JSONL file")
    run.set_defaults(func=cmd_run)

    plan = sub.add_parser("plan", help="List the dataset plan")
    plan.add_argument("--plan", help="Plan YAML (defaults to the bundled 50-shot plan)")
    plan.set_defaults(func=cmd_plan)

    serve = sub.add_parser("serve", help="Serve the HTTP control API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8080)
    serve.add_argument("--fixture", action="store_true", help="Use the offline fixture client")
    serve.add_argument("--plan", help="Plan YAML (defaults to the bundled 50-shot plan)")
    serve.add_argument("--cooldown", type=float, help="Seconds between shots")
    serve.add_argument("--telemetry-log", help="Append telemetry events to this JSONL file")
    serve.set_defaults(func=cmd_serve)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
