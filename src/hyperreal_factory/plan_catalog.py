"""Ordered, immutable shot list consumed by the pipeline controller.

The catalog is loaded once (from YAML or in-memory dicts), validated item by
item, and then only read. Items are referenced from generated artifacts by
their `id`, so ids must be unique.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import yaml
from pydantic import ValidationError

from .schemas import PlanItem

PACKAGE_ROOT = Path(__file__).resolve().parent
DEFAULT_PLAN_PATH = PACKAGE_ROOT / "data" / "dataset_plan.yaml"


class PlanCatalogError(ValueError):
    """Raised when a plan file cannot be parsed or an item is invalid."""


class PlanCatalog:
    def __init__(self, items: Iterable[PlanItem], *, negative_prompt: str = "") -> None:
        frozen: Tuple[PlanItem, ...] = tuple(items)
        seen: set[int] = set()
        for item in frozen:
            if item.id in seen:
                raise PlanCatalogError(f"Duplicate plan item id {item.id}")
            seen.add(item.id)
        self._items = frozen
        self.negative_prompt = " ".join(negative_prompt.split())

    @classmethod
    def from_dicts(cls, raw_items: Sequence[Mapping[str, Any]], *, negative_prompt: str = "") -> "PlanCatalog":
        items: List[PlanItem] = []
        for position, raw in enumerate(raw_items):
            try:
                items.append(PlanItem.model_validate(dict(raw)))
            except ValidationError as exc:
                raise PlanCatalogError(f"Plan item #{position} is invalid: {exc}") from exc
        return cls(items, negative_prompt=negative_prompt)

    @classmethod
    def from_yaml(cls, path: Path) -> "PlanCatalog":
        try:
            data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise PlanCatalogError(f"Failed to read plan at {path}: {exc}") from exc
        if isinstance(data, list):
            return cls.from_dicts(data)
        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            raise PlanCatalogError(f"Plan at {path} must be a list or a mapping with an 'items' list")
        return cls.from_dicts(data["items"], negative_prompt=str(data.get("negative_prompt") or ""))

    @classmethod
    def default(cls) -> "PlanCatalog":
        return cls.from_yaml(DEFAULT_PLAN_PATH)

    def get(self, index: int) -> Optional[PlanItem]:
        if 0 <= index < len(self._items):
            return self._items[index]
        return None

    def length(self) -> int:
        return len(self._items)

    def find(self, plan_id: int) -> Optional[PlanItem]:
        for item in self._items:
            if item.id == plan_id:
                return item
        return None

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[PlanItem]:
        return iter(self._items)

    def as_payload(self) -> List[Dict[str, Any]]:
        return [item.model_dump() for item in self._items]


__all__ = ["DEFAULT_PLAN_PATH", "PlanCatalog", "PlanCatalogError"]
