"""CSV export and summary helpers for grading results."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from .models import GradingResult, format_identifier

LOGGER = logging.getLogger(__name__)

ACTIVITY_URL_TEMPLATE = "https://www.klook.com/en-AU/activity/{activity_id}"
LOG_URL_TEMPLATE = "https://platform.openai.com/logs/{response_id}"
LIST_SEPARATOR = "; "

CSV_COLUMNS = [
    "activity_id",
    "activity_url",
    "hero_image_index",
    "hero_image_url",
    "hero_image_reason",
    "categories",
    "target_audiences",
    "score",
    "reason",
    "log_url",
]


def build_activity_url(activity_id: Any) -> str:
    key = format_identifier(activity_id)
    return ACTIVITY_URL_TEMPLATE.format(activity_id=key) if key else ""


def build_log_url(response_id: Optional[str]) -> str:
    return LOG_URL_TEMPLATE.format(response_id=response_id) if response_id else ""


def escape_csv_value(value: Any) -> str:
    """Quote values containing a comma, double quote or newline."""

    text = "" if value is None else str(value)
    if any(character in text for character in (",", '"', "\n")):
        return '"' + text.replace('"', '""') + '"'
    return text


def _format_number(value: Optional[float]) -> str:
    if value is None:
        return ""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def _result_record(result: GradingResult) -> Dict[str, str]:
    return {
        "activity_id": result.activity_key,
        "activity_url": build_activity_url(result.activity_id),
        "hero_image_index": _format_number(result.hero_image_index),
        "hero_image_url": result.hero_image_url or "",
        "hero_image_reason": result.hero_image_reason,
        "categories": LIST_SEPARATOR.join(result.categories),
        "target_audiences": LIST_SEPARATOR.join(result.target_audiences),
        "score": _format_number(result.score),
        "reason": result.reason,
        "log_url": build_log_url(result.response_id),
    }


def results_to_dataframe(results: Iterable[GradingResult]) -> pd.DataFrame:
    """Convert grading results into export rows, one string cell per column."""

    records = [_result_record(result) for result in results]
    return pd.DataFrame.from_records(records, columns=CSV_COLUMNS)


def render_csv(frame: pd.DataFrame) -> str:
    lines: List[str] = [",".join(CSV_COLUMNS)]
    for row in frame[CSV_COLUMNS].itertuples(index=False, name=None):
        lines.append(",".join(escape_csv_value(value) for value in row))
    return "\n".join(lines)


def write_results_csv(results: Iterable[GradingResult], output_path: Path | str) -> Path:
    """Write ``results`` to ``output_path``, replacing any existing file."""

    path = Path(output_path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_csv(results_to_dataframe(results)), encoding="utf-8")
    LOGGER.info("CSV exported to %s", path)
    return path


def summarise_results(results: Iterable[GradingResult]) -> Dict[str, float]:
    """Return simple statistics across all grading results."""

    scores = pd.Series([result.score for result in results], dtype="float64")
    if scores.empty:
        return {"count": 0, "graded": 0, "failed": 0, "average_score": 0.0}

    graded = int(scores.notna().sum())
    return {
        "count": int(len(scores)),
        "graded": graded,
        "failed": int(len(scores) - graded),
        "average_score": float(scores.mean()) if graded else 0.0,
    }
