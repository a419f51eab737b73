from __future__ import annotations

from pathlib import Path

import pytest

from hyperreal_factory.plan_catalog import DEFAULT_PLAN_PATH, PlanCatalog, PlanCatalogError


def _item(item_id: int, **overrides: object) -> dict:
    base = {
        "id": item_id,
        "shot_type": "Close-up",
        "expression": "Neutral",
        "lighting": "Window light",
        "outfit": "Hoodie",
        "description": "front view portrait",
    }
    base.update(overrides)
    return base


def test_default_plan_has_fifty_unique_items() -> None:
    catalog = PlanCatalog.default()
    assert catalog.length() == 50
    assert len({item.id for item in catalog}) == 50
    assert catalog.get(0).id == 1
    assert catalog.get(49).id == 50
    assert "watermark" in catalog.negative_prompt
    assert DEFAULT_PLAN_PATH.exists()


def test_get_out_of_range_returns_none() -> None:
    catalog = PlanCatalog.from_dicts([_item(1)])
    assert catalog.get(1) is None
    assert catalog.get(-1) is None
    assert catalog.find(1).description == "front view portrait"
    assert catalog.find(99) is None


def test_blank_field_is_rejected() -> None:
    with pytest.raises(PlanCatalogError):
        PlanCatalog.from_dicts([_item(1, outfit="   ")])


def test_missing_field_is_rejected() -> None:
    raw = _item(1)
    del raw["lighting"]
    with pytest.raises(PlanCatalogError):
        PlanCatalog.from_dicts([raw])


def test_duplicate_ids_are_rejected() -> None:
    with pytest.raises(PlanCatalogError):
        PlanCatalog.from_dicts([_item(1), _item(1)])


def test_fields_are_stripped_and_items_frozen() -> None:
    catalog = PlanCatalog.from_dicts([_item(3, shot_type="  Wide shot ")])
    item = catalog.get(0)
    assert item.shot_type == "Wide shot"
    with pytest.raises(Exception):
        item.shot_type = "changed"  # type: ignore[misc]


def test_from_yaml_accepts_plain_list(tmp_path: Path) -> None:
    path = tmp_path / "plan.yaml"
    path.write_text(
        "- {id: 7, shot_type: Wide, expression: Calm, lighting: Dusk, outfit: Coat, description: walking}\n",
        encoding="utf-8",
    )
    catalog = PlanCatalog.from_yaml(path)
    assert [item.id for item in catalog] == [7]
    assert catalog.negative_prompt == ""


def test_from_yaml_rejects_bad_shape(tmp_path: Path) -> None:
    path = tmp_path / "plan.yaml"
    path.write_text("title: nope\n", encoding="utf-8")
    with pytest.raises(PlanCatalogError):
        PlanCatalog.from_yaml(path)


def test_from_yaml_missing_file(tmp_path: Path) -> None:
    with pytest.raises(PlanCatalogError):
        PlanCatalog.from_yaml(tmp_path / "missing.yaml")


def test_as_payload_round_trips_fields() -> None:
    catalog = PlanCatalog.from_dicts([_item(1), _item(2, description="side profile")])
    payload = catalog.as_payload()
    assert [entry["id"] for entry in payload] == [1, 2]
    assert payload[1]["description"] == "side profile"
