"""Prompt builders for the four remote operations.

Kept free of SDK imports so the wording can be unit tested and reused by any
client implementation.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .reference_selector import BACK_VIEW, EXPRESSION, SIDE_PROFILE, classify
from .schemas import SLOT_LABELS, PlanItem, ReferenceSlot

SUBJECT_NOUN = "a woman"

RAW_NEGATIVE_PROMPT = (
    "cartoon, drawing, illustration, 3d render, plastic skin, airbrushed, neon, fantasy, sci-fi, cyberpunk, "
    "makeup, text, watermark, border, frame, split screen, multiple views, collage, deformed hands"
)
POLISHED_NEGATIVE_PROMPT = (
    "cartoon, illustration, low quality, blurry, text, watermark, border, frame, split screen, multiple views"
)
CAPTION_PLACEHOLDER = "Generating caption..."

_SCORE_RE = re.compile(r"-?\d+")


def pose_text(item: PlanItem) -> str:
    """Text handed to the sketch artist: framing, expression, outfit, and body pose."""
    return f"{item.shot_type}, {item.expression} expression, {item.outfit}, body pose: {item.description}"


def scene_prompt(item: PlanItem, *, subject: str = SUBJECT_NOUN) -> str:
    return (
        f"{item.shot_type} of {subject}, {item.expression} expression, wearing {item.outfit}, "
        f"{item.lighting} lighting. {item.description}"
    )


def fallback_caption(trigger_label: str, item: PlanItem, *, subject: str = SUBJECT_NOUN) -> str:
    """Caption composed from plan metadata when the vision caption is unavailable."""
    return (
        f"{trigger_label}, {item.shot_type} of {subject}, {item.description}, "
        f"{item.expression}, {item.outfit}, {item.lighting}"
    )


def sketch_prompt(pose: str) -> str:
    return (
        "Act as a Technical Storyboard Artist. DRAW A COMPOSITION SKETCH for: "
        f'"{pose}".\n\n'
        "[STRICT CAMERA RULES]\n"
        '1. IF text contains "Front" -> Draw a perfectly symmetrical stick figure facing forward.\n'
        '2. IF text contains "Side" or "Profile" -> Draw a figure facing 90 degrees right. NO EXCEPTIONS. '
        "The nose must be the furthest point.\n"
        '3. IF text contains "Back" -> Draw the back of the head.\n'
        '4. IF text contains "High Angle" -> Draw a grid on the floor to show perspective looking down.\n\n'
        "[STYLE]\n"
        "- Use thick, confident black markers.\n"
        "- NO FACES. Draw an oval with a cross (+) to indicate face direction.\n"
        "- NO SHADING. High contrast black & white only.\n"
        "- FILL THE CANVAS. Ensure the sketch matches the requested aspect ratio fully."
    )


@dataclass(frozen=True)
class SynthesisPrompt:
    """Composed instruction plus the image map it refers to (1-based image order)."""

    text: str
    image_map: List[str]


def _identity_focus(scene: str) -> str:
    rule = classify(scene)
    if rule is SIDE_PROFILE:
        return (
            "CRITICAL: For this Side View, disregard any front view structure. STRICTLY COPY the nose shape "
            "and jawline from the '90 DEGREE SIDE PROFILE' or 'SIDE PROFILE' reference images."
        )
    if rule is BACK_VIEW:
        return (
            "CRITICAL: Focus on the hair volume and shoulder structure. Do NOT force a face to be visible "
            "if the sketch shows a back view."
        )
    if rule is EXPRESSION:
        return (
            "CRITICAL: Use the 'EXPRESSION REF' image as the primary reference for teeth, mouth shape, "
            "and eye crinkles."
        )
    return "Use the 'FRONT VIEW' as the primary facial reference, but map it onto the 3D structure implied by the Sketch."


def synthesis_prompt(
    scene: str,
    reference_slots: Sequence[ReferenceSlot],
    *,
    has_sketch: bool,
    raw_mode: bool = True,
    negative_prompt: Optional[str] = None,
) -> SynthesisPrompt:
    """Compose the identity-synthesis instruction.

    Images must be submitted in the same order as `image_map`: the sketch
    first (when present), then the references in selection order.
    """
    image_map: List[str] = []
    if has_sketch:
        image_map.append("Image 1 (POSE SKETCH - COMPOSITION ONLY)")
    offset = len(image_map)
    for index, slot in enumerate(reference_slots, start=offset + 1):
        image_map.append(f"Image {index} ({SLOT_LABELS[slot]})")

    geometry_rule = (
        "- Image 1 is the SOLE authority for pose, body geometry, framing and camera angle."
        if has_sketch
        else "- Take pose, framing and camera angle ONLY from the scene description below."
    )
    lines = [
        "[TASK]",
        "Create a highly photorealistic image of a specific person based on MULTIPLE reference inputs.",
        "",
        "[INPUT CONTEXT]",
        *(f"- {entry}" for entry in image_map),
        "",
        "[GEOMETRY]",
        geometry_rule,
        "- The identity references are texture and feature sources ONLY. IGNORE their pose, camera angle, "
        "background, lighting and clothing.",
        "",
        "[IDENTITY SYNTHESIS (CRITICAL)]",
        "- Construct a mental 3D model of this person by combining ALL identity references provided.",
        f"- {_identity_focus(scene)}",
        "- Preserve facial asymmetries, moles, skin texture and pores exactly.",
        "- Preserve eye shape, eye distance and nose geometry.",
        "- Do NOT beautify, smooth or idealize. Do NOT blend features with generic faces.",
        "",
        "[BODY & OUTFIT]",
        "- Use the outfit described below, not the clothes in the identity references.",
    ]
    if any(slot.is_product for slot in reference_slots):
        lines.append("- Reproduce the PRODUCT references faithfully: cut, fabric, colour and print.")

    if raw_mode:
        lines += [
            "",
            "[SCENE DESCRIPTION]",
            scene,
            "",
            "[STYLE GUIDE]",
            "- Candid lifestyle photography.",
            "- 35mm film look (grain, slight imperfections).",
            "- Natural lighting (no studio gloss unless specified).",
            "- Texture: focus on fabric weaves and skin pores.",
        ]
        negatives = RAW_NEGATIVE_PROMPT
    else:
        lines += [
            "",
            f"Subject: {scene}",
            "Style: Photorealistic lifestyle photography.",
        ]
        negatives = POLISHED_NEGATIVE_PROMPT
    if negative_prompt:
        negatives = f"{negatives}, {negative_prompt}"
    lines += ["", "[NEGATIVE PROMPT]", negatives]
    return SynthesisPrompt(text="\n".join(lines), image_map=image_map)


def judge_prompt() -> str:
    return (
        "Act as a strict photography curator for a LoRA training dataset.\n"
        "Analyze this image and rate it from 1 to 10 based on these criteria:\n"
        "1. Anatomical Correctness (hands, eyes, limbs must be perfect).\n"
        "2. Face Clarity (sharp focus, distinct features).\n"
        "3. Photorealism (lighting, texture).\n\n"
        "If the image has deformed hands, extra fingers, or a blurred face, score it below 5.\n\n"
        "OUTPUT FORMAT: Just return the single number (integer). Example: 8"
    )


def parse_score(text: Optional[str]) -> int:
    """First integer in the judge response, clamped to 0..10; anything else is 0."""
    if not text:
        return 0
    match = _SCORE_RE.search(text)
    if match is None:
        return 0
    return max(0, min(10, int(match.group(0))))


def caption_prompt(trigger_label: str) -> str:
    return (
        "Analyze this image for AI image model training (LoRA/Flux dataset).\n"
        f'Start the caption with the trigger word: "{trigger_label}".\n\n'
        "Format: Comma-separated tags and short phrases. Lowercase.\n\n"
        "Structure the caption in this order:\n"
        "1. Trigger word\n"
        "2. Shot type (e.g., close up, full body)\n"
        "3. Subject description (hair, ethnicity, gaze)\n"
        "4. Action/Pose\n"
        "5. Outfit (detailed)\n"
        "6. Environment/Background\n"
        "7. Lighting quality (e.g., hard shadow, soft window light)\n"
        "8. Technical details (e.g., blurry background, film grain, flash photography)\n\n"
        "Example output:\n"
        f"{trigger_label}, close up portrait of a woman, looking at camera, messy bun, wearing a grey hoodie, "
        "indoors, window light, hard shadows, film grain, high quality"
    )


__all__ = [
    "CAPTION_PLACEHOLDER",
    "POLISHED_NEGATIVE_PROMPT",
    "RAW_NEGATIVE_PROMPT",
    "SynthesisPrompt",
    "caption_prompt",
    "fallback_caption",
    "judge_prompt",
    "parse_score",
    "pose_text",
    "scene_prompt",
    "sketch_prompt",
    "synthesis_prompt",
]
