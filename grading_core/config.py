"""Configuration helpers for the offer grading pipeline."""
from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

from dotenv import dotenv_values

LOGGER = logging.getLogger(__name__)

OPENAI_API_KEY_ENV = "OPENAI_API_KEY"
API_KEY_CANDIDATE_FILES = (".env", ".openai_api_key")

DEFAULT_CONCURRENCY = 4
DEFAULT_MAX_IMAGES = 8
DEFAULT_MODEL = "gpt-5"
DEFAULT_REASONING_EFFORT = "medium"
DEFAULT_MAX_OUTPUT_TOKENS = 5000


@dataclass
class GradingConfig:
    """Canonical configuration used by the grading workflow."""

    offers_dir: Path
    output_path: Path
    concurrency: int = DEFAULT_CONCURRENCY
    max_images: int = DEFAULT_MAX_IMAGES
    model: str = DEFAULT_MODEL
    reasoning_effort: str = DEFAULT_REASONING_EFFORT
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serialisable version of the configuration."""

        return {
            "offers_dir": str(self.offers_dir),
            "output_path": str(self.output_path),
            "concurrency": self.concurrency,
            "max_images": self.max_images,
            "model": self.model,
            "reasoning_effort": self.reasoning_effort,
            "max_output_tokens": self.max_output_tokens,
        }


def _parse_int(value: str | None, default: int, minimum: int = 1) -> int:
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        LOGGER.warning("Ignoring invalid integer setting %r, using %s", value, default)
        return default
    return max(minimum, parsed)


def _parse_str(value: str | None, default: str) -> str:
    if value is None:
        return default
    cleaned = value.strip()
    return cleaned or default


def create_config_from_env(
    environ: Optional[Mapping[str, str]] = None, base_dir: Optional[Path] = None
) -> GradingConfig:
    """Create a configuration object from environment variables.

    Relative defaults for the offers directory and CSV output are resolved
    against ``base_dir`` (the current working directory when omitted).
    """

    env = os.environ if environ is None else environ
    root = Path(base_dir) if base_dir is not None else Path.cwd()

    offers_dir = env.get("OFFERS_DIR")
    output_path = env.get("OFFER_GRADING_OUTPUT")

    return GradingConfig(
        offers_dir=Path(offers_dir) if offers_dir else root / "offers",
        output_path=Path(output_path) if output_path else root / "graded_offers.csv",
        concurrency=_parse_int(env.get("OFFER_GRADING_CONCURRENCY"), DEFAULT_CONCURRENCY),
        max_images=min(
            DEFAULT_MAX_IMAGES,
            _parse_int(env.get("OFFER_GRADING_MAX_IMAGES"), DEFAULT_MAX_IMAGES),
        ),
        model=_parse_str(env.get("OFFER_GRADING_MODEL"), DEFAULT_MODEL),
        reasoning_effort=_parse_str(
            env.get("OFFER_GRADING_REASONING_EFFORT"), DEFAULT_REASONING_EFFORT
        ),
        max_output_tokens=_parse_int(
            env.get("OFFER_GRADING_MAX_OUTPUT_TOKENS"), DEFAULT_MAX_OUTPUT_TOKENS
        ),
    )


def _load_api_key_from_file(candidate: Path) -> Optional[str]:
    if not candidate.is_file():
        return None
    value = dotenv_values(candidate).get(OPENAI_API_KEY_ENV)
    if not value:
        return None
    return value.strip().strip('"').strip("'") or None


def load_api_key(
    environ: Optional[Mapping[str, str]] = None,
    base_dir: Optional[Path] = None,
    candidates: Sequence[str] = API_KEY_CANDIDATE_FILES,
) -> str:
    """Return the OpenAI API key from the environment or a local dotenv file.

    The environment wins; otherwise each candidate file is tried in order.
    """

    env = os.environ if environ is None else environ
    env_value = (env.get(OPENAI_API_KEY_ENV) or "").strip()
    if env_value:
        return env_value

    root = Path(base_dir) if base_dir is not None else Path.cwd()
    for candidate in candidates:
        key = _load_api_key_from_file(root / candidate)
        if key:
            LOGGER.debug("Loaded %s from %s", OPENAI_API_KEY_ENV, candidate)
            return key

    raise RuntimeError(
        f"OpenAI API key not found. Set {OPENAI_API_KEY_ENV}, or define it inside a local "
        ".env/.openai_api_key file."
    )
