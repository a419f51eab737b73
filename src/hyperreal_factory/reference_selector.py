"""Choose which identity references to send for a shot, and how to transform them.

Scene text is classified by case-insensitive substring match against an
ordered rule table; the first matching rule wins. Full-resolution references
carry geometry (jaw and nose shape at a matching viewing angle). Cropped
references keep the face but drop shoulders, background, and camera angle so
the synthesizer cannot copy the reference's own pose.

Garment references are orthogonal to pose and are appended after whichever
rule matched.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from .schemas import ReferenceSet, ReferenceSlot, SelectionEntry, SelectionPlan, Transform


@dataclass(frozen=True)
class _Pick:
    candidates: Tuple[ReferenceSlot, ...]
    transform: Transform
    first_only: bool = False

    def resolve(self, references: ReferenceSet) -> List[SelectionEntry]:
        found = [slot for slot in self.candidates if references.has(slot)]
        if self.first_only:
            found = found[:1]
        return [SelectionEntry(slot, self.transform) for slot in found]


@dataclass(frozen=True)
class SelectionRule:
    name: str
    keywords: Tuple[str, ...]
    picks: Tuple[_Pick, ...]

    def matches(self, text: str) -> bool:
        if not self.keywords:
            return True
        return any(keyword in text for keyword in self.keywords)

    def apply(self, references: ReferenceSet) -> List[SelectionEntry]:
        entries: List[SelectionEntry] = []
        for pick in self.picks:
            entries.extend(pick.resolve(references))
        return entries


SIDE_PROFILE = SelectionRule(
    name="side_profile",
    keywords=("side", "profile", "90"),
    picks=(_Pick((ReferenceSlot.SIDE90, ReferenceSlot.SIDE), Transform.FULL, first_only=True),),
)
BACK_VIEW = SelectionRule(
    name="back_view",
    keywords=("back", "behind"),
    picks=(
        _Pick((ReferenceSlot.THREE_QUARTER,), Transform.FULL),
        _Pick((ReferenceSlot.SIDE,), Transform.FULL),
    ),
)
EXPRESSION = SelectionRule(
    name="expression",
    keywords=("smile", "laugh", "happy"),
    picks=(
        _Pick((ReferenceSlot.EXPRESSION,), Transform.CROP),
        _Pick((ReferenceSlot.FRONT,), Transform.CROP),
    ),
)
DEFAULT = SelectionRule(
    name="default",
    keywords=(),
    picks=(
        _Pick((ReferenceSlot.FRONT,), Transform.CROP),
        _Pick((ReferenceSlot.THREE_QUARTER,), Transform.FULL),
    ),
)

RULES: Tuple[SelectionRule, ...] = (SIDE_PROFILE, BACK_VIEW, EXPRESSION, DEFAULT)


def classify(scene_text: Optional[str], rules: Tuple[SelectionRule, ...] = RULES) -> SelectionRule:
    text = (scene_text or "").lower()
    for rule in rules:
        if rule.matches(text):
            return rule
    return DEFAULT


def select(
    references: ReferenceSet,
    scene_text: Optional[str],
    *,
    rules: Tuple[SelectionRule, ...] = RULES,
) -> SelectionPlan:
    """Return the ordered (slot, transform) plan for `scene_text`.

    Pure: the same inputs always yield an equal tuple.
    """
    text = (scene_text or "").lower()
    rule = classify(text, rules)
    entries = rule.apply(references)

    # Last resort: never send zero identity references while a front image exists.
    if not entries and references.has(ReferenceSlot.FRONT):
        entries = [SelectionEntry(ReferenceSlot.FRONT, Transform.CROP)]

    entries.extend(SelectionEntry(slot, Transform.FULL) for slot in references.product_slots())
    return tuple(entries)


__all__ = ["RULES", "SelectionRule", "classify", "select"]
