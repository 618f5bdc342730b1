"""Parsing and normalisation of grading model replies."""
from __future__ import annotations

from dataclasses import dataclass, field
import json
import math
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .models import ImageDetail

ATTACHMENT_SCHEME = "attachment://"

_JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)
_LEADING_INT_PATTERN = re.compile(r"[+-]?\d+")


@dataclass
class ReconciledFields:
    """Normalised grading fields, minus the activity and response identifiers."""

    score: Optional[float] = None
    reason: str = ""
    categories: List[str] = field(default_factory=list)
    target_audiences: List[str] = field(default_factory=list)
    hero_image_index: Optional[int] = None
    hero_image_url: Optional[str] = None
    hero_image_reason: str = ""


def _to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def _stringify(value: Any) -> str:
    return value if isinstance(value, str) else _to_json(value)


def parse_json_response(text: str) -> Any:
    """Parse the model reply, falling back to the outermost ``{...}`` block."""

    if not text:
        return {"score": None, "reason": "Empty response from model."}

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        match = _JSON_OBJECT_PATTERN.search(text)
        if match:
            try:
                return json.loads(match.group(0))
            except json.JSONDecodeError:
                pass

    return {"score": None, "reason": f"Failed to parse JSON: {text}"}


def normalise_string_list(value: Any) -> List[str]:
    if isinstance(value, list):
        items = [_stringify(item) for item in value if item is not None]
        return [item for item in items if item]
    if value is None or value == "":
        return []
    return [_stringify(value)]


def coerce_score(value: Any) -> Optional[float]:
    """Return ``value`` as a number clamped to [0, 5], or None when not numeric."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(numeric):
        return None
    return min(5.0, max(0.0, numeric))


def coerce_index(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        match = _LEADING_INT_PATTERN.match(value.strip())
        return int(match.group(0)) if match else None
    return None


def reconcile_hero_image(
    raw_index: Any, raw_url: Any, image_details: Sequence[ImageDetail]
) -> Tuple[Optional[int], Optional[str]]:
    """Make the hero image index and URL agree with the offer's own image list."""

    index = coerce_index(raw_index)
    url = str(raw_url).strip() if raw_url else None
    if not url:
        url = None

    if index is not None:
        if 1 <= index <= len(image_details):
            url = image_details[index - 1].url or url
        else:
            index = None

    if url and url.startswith(ATTACHMENT_SCHEME):
        url = None

    if not url and index is not None:
        url = image_details[index - 1].url or None

    if url and index is None:
        for position, detail in enumerate(image_details, start=1):
            if detail.url == url:
                index = position
                break

    return index, url


def reconcile_response(text: str, image_details: Sequence[ImageDetail]) -> ReconciledFields:
    """Turn the raw reply text into strict grading fields."""

    parsed = parse_json_response(text)
    fields: Dict[str, Any] = parsed if isinstance(parsed, dict) else {}

    hero_index, hero_url = reconcile_hero_image(
        fields.get("hero_image_index"), fields.get("hero_image_url"), image_details
    )

    hero_reason_value = fields.get("hero_image_reason")
    if hero_reason_value is None:
        hero_reason = ""
    elif isinstance(hero_reason_value, str):
        hero_reason = hero_reason_value.strip()
    else:
        hero_reason = _to_json(hero_reason_value)

    reason_value = fields.get("reason")
    reason = _stringify(reason_value if reason_value is not None else parsed)

    return ReconciledFields(
        score=coerce_score(fields.get("score")),
        reason=reason,
        categories=normalise_string_list(fields.get("categories")),
        target_audiences=normalise_string_list(fields.get("target_audiences")),
        hero_image_index=hero_index,
        hero_image_url=hero_url,
        hero_image_reason=hero_reason,
    )
