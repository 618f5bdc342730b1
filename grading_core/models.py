"""Shared data structures used across structuring, grading and exporting."""
from __future__ import annotations

from dataclasses import dataclass, field
import json
from typing import Any, Dict, List, Optional


def format_identifier(value: Any) -> str:
    """Return the string form of an opaque identifier used for sorting and export."""

    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, ensure_ascii=False)


@dataclass
class ImageDetail:
    """A single image reference found inside a raw activity record."""

    url: str
    type: Optional[str] = None
    alt: Optional[str] = None
    description: Optional[str] = None
    width: Optional[float] = None
    height: Optional[float] = None
    source: str = "primary"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "type": self.type,
            "alt": self.alt,
            "description": self.description,
            "width": self.width,
            "height": self.height,
            "source": self.source,
        }


@dataclass
class PackageSummary:
    """One package tier of an offer with its rendered section text."""

    package_id: Any = None
    package_name: Optional[str] = None
    sections_markdown: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "package_id": self.package_id,
            "package_name": self.package_name,
            "sections_markdown": self.sections_markdown,
        }


@dataclass
class StructuredOffer:
    """Normalised representation of a raw activity ready for grading."""

    source_path: str
    activity_id: Any = None
    title: Optional[str] = None
    subtitle: Optional[str] = None
    what_we_love: Optional[str] = None
    location: Any = None
    address: Any = None
    category: Optional[str] = None
    category_detail: Optional[Dict[str, Any]] = None
    description_markdown: str = ""
    packages: List[PackageSummary] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    image_details: List[ImageDetail] = field(default_factory=list)
    city: Optional[str] = None
    country: Optional[str] = None
    status: Any = None
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serialisable version of the offer without the raw payload."""

        return {
            "source_path": self.source_path,
            "activity_id": self.activity_id,
            "title": self.title,
            "subtitle": self.subtitle,
            "what_we_love": self.what_we_love,
            "location": self.location,
            "address": self.address,
            "category": self.category,
            "category_detail": self.category_detail,
            "description_markdown": self.description_markdown,
            "packages": [package.to_dict() for package in self.packages],
            "images": list(self.images),
            "image_details": [detail.to_dict() for detail in self.image_details],
            "city": self.city,
            "country": self.country,
            "status": self.status,
        }


@dataclass
class GradingResult:
    """Outcome of grading a single offer."""

    activity_id: Any
    score: Optional[float] = None
    reason: str = ""
    categories: List[str] = field(default_factory=list)
    target_audiences: List[str] = field(default_factory=list)
    hero_image_index: Optional[int] = None
    hero_image_url: Optional[str] = None
    hero_image_reason: str = ""
    response_id: Optional[str] = None

    @property
    def activity_key(self) -> str:
        return format_identifier(self.activity_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "activity_id": self.activity_id,
            "score": self.score,
            "reason": self.reason,
            "categories": list(self.categories),
            "target_audiences": list(self.target_audiences),
            "hero_image_index": self.hero_image_index,
            "hero_image_url": self.hero_image_url,
            "hero_image_reason": self.hero_image_reason,
            "response_id": self.response_id,
        }
