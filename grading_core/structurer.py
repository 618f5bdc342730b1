"""Normalisation of raw activity records into :class:`StructuredOffer` objects."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .images import extract_image_details
from .models import PackageSummary, StructuredOffer

LOGGER = logging.getLogger(__name__)


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _as_mapping(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def render_sections(section_info: Any) -> str:
    """Flatten a section -> group -> content tree into markdown-like text.

    Groups without content are dropped, as are sections left without a body.
    Named groups get a ``###`` heading and named sections a ``##`` heading.
    """

    if not isinstance(section_info, list):
        return ""

    chunks: List[str] = []
    for section in section_info:
        if not isinstance(section, Mapping):
            continue
        section_name = _clean_text(section.get("section_name"))
        groups = section.get("groups")
        if not isinstance(groups, list):
            groups = []

        group_blocks: List[str] = []
        for group in groups:
            if not isinstance(group, Mapping):
                continue
            group_name = _clean_text(group.get("group_name"))
            content = _clean_text(group.get("content"))
            if not content:
                continue
            group_blocks.append(f"### {group_name}\n{content}" if group_name else content)

        body = "\n\n".join(group_blocks)
        if not body:
            continue
        chunks.append(f"## {section_name}\n{body}" if section_name else body)

    return "\n\n".join(chunks)


def _structure_packages(package_list: Any) -> List[PackageSummary]:
    if not isinstance(package_list, list):
        return []
    packages: List[PackageSummary] = []
    for item in package_list:
        if not isinstance(item, Mapping):
            continue
        packages.append(
            PackageSummary(
                package_id=item.get("package_id"),
                package_name=_optional_str(item.get("package_name")),
                sections_markdown=render_sections(item.get("section_info")),
            )
        )
    return packages


def _first_city(city_info: Any) -> Dict[str, Any]:
    if isinstance(city_info, list) and city_info:
        return _as_mapping(city_info[0])
    return {}


def structure_activity(activity: Mapping[str, Any], source_path: str) -> StructuredOffer:
    """Convert a raw ``activity`` mapping into a :class:`StructuredOffer`.

    Malformed sub-fields are treated as absent rather than failing the record.
    """

    category_info = activity.get("category_info")
    category_detail = dict(category_info) if isinstance(category_info, Mapping) else None
    category_fields = category_detail or {}
    primary_city = _first_city(activity.get("city_info"))

    status = (
        activity.get("status")
        or activity.get("curation_status")
        or category_fields.get("curation_status")
        or None
    )

    image_details = extract_image_details(activity.get("images"))

    return StructuredOffer(
        source_path=source_path,
        activity_id=activity.get("activity_id"),
        title=_optional_str(activity.get("title")),
        subtitle=_optional_str(activity.get("subtitle")),
        what_we_love=_optional_str(activity.get("what_we_love")),
        location=activity.get("location"),
        address=activity.get("address_desc_multilang"),
        category=_optional_str(category_fields.get("sub_category_name")),
        category_detail=category_detail,
        description_markdown=render_sections(activity.get("section_info")),
        packages=_structure_packages(activity.get("package_list")),
        images=[detail.url for detail in image_details],
        image_details=image_details,
        city=_optional_str(primary_city.get("city_name")),
        country=_optional_str(primary_city.get("country_name")),
        status=status,
        raw=activity,
    )


def load_offers(directory: Path | str) -> List[StructuredOffer]:
    """Load every ``*.json`` offer file in ``directory``, sorted by file name.

    Files that cannot be parsed or lack an ``activity`` object are skipped.
    """

    root = Path(directory)
    try:
        file_names = sorted(
            entry.name
            for entry in root.iterdir()
            if entry.is_file() and entry.name.lower().endswith(".json")
        )
    except OSError as exc:
        raise RuntimeError(f"Failed to read offers directory: {root}") from exc

    offers: List[StructuredOffer] = []
    for file_name in file_names:
        file_path = root / file_name
        try:
            payload = json.loads(file_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            LOGGER.warning("Skipping %s due to read/parse error: %s", file_path, exc)
            continue

        activity = payload.get("activity") if isinstance(payload, Mapping) else None
        if not isinstance(activity, Mapping):
            LOGGER.warning("Skipping %s: no activity object found", file_path)
            continue
        offers.append(structure_activity(activity, str(file_path)))

    return offers
