"""Image reference extraction for raw activity records."""
from __future__ import annotations

from typing import Any, Iterable, Iterator, List, Mapping, Optional, Set

from .models import ImageDetail


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _optional_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _build_detail(entry: Mapping[str, Any], source: str) -> Optional[ImageDetail]:
    url = entry.get("image_url_host")
    if not isinstance(url, str) or not url:
        return None
    return ImageDetail(
        url=url,
        type=_optional_str(entry.get("image_type")),
        alt=_optional_str(entry.get("image_alt")),
        description=_optional_str(entry.get("image_desc")),
        width=_optional_number(entry.get("width")),
        height=_optional_number(entry.get("height")),
        source=source,
    )


def _iter_candidates(images: Iterable[Any]) -> Iterator[ImageDetail]:
    for image in images:
        if not isinstance(image, Mapping):
            continue
        primary = _build_detail(image, "primary")
        if primary is not None:
            yield primary

        nested = image.get("images")
        if not isinstance(nested, list):
            continue
        for item in nested:
            if not isinstance(item, Mapping):
                continue
            detail = _build_detail(item, "nested")
            if detail is not None:
                yield detail


def extract_image_details(images: Any) -> List[ImageDetail]:
    """Flatten primary and nested image entries, keeping the first of each URL."""

    if not isinstance(images, list):
        return []

    seen: Set[str] = set()
    unique: List[ImageDetail] = []
    for detail in _iter_candidates(images):
        if detail.url in seen:
            continue
        seen.add(detail.url)
        unique.append(detail)
    return unique
