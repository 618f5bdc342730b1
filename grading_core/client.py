"""Thin wrapper around the OpenAI Responses API used to grade offers."""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from openai import OpenAI

from .config import DEFAULT_MAX_OUTPUT_TOKENS, DEFAULT_MODEL, DEFAULT_REASONING_EFFORT
from .prompts import SYSTEM_PROMPT

LOGGER = logging.getLogger(__name__)


@dataclass
class GradingReply:
    """Literal text returned by the model plus the request identifier."""

    text: str
    response_id: Optional[str] = None


def _as_payload(response: Any) -> Mapping[str, Any]:
    if isinstance(response, Mapping):
        return response
    model_dump = getattr(response, "model_dump", None)
    if callable(model_dump):
        return model_dump()
    return {}


def collect_response_text(response: Any) -> str:
    """Concatenate every ``output_text`` segment of a Responses API reply."""

    payload = _as_payload(response)
    chunks: List[str] = []
    for item in payload.get("output") or []:
        if not isinstance(item, Mapping):
            continue
        for content in item.get("content") or []:
            if not isinstance(content, Mapping):
                continue
            text = content.get("text")
            if content.get("type") == "output_text" and isinstance(text, str):
                chunks.append(text)
    return "".join(chunks).strip()


def _response_id(response: Any) -> Optional[str]:
    value = _as_payload(response).get("id")
    return value if isinstance(value, str) else None


class GradingClient:
    """Send one offer prompt with its images to the grading model.

    The underlying :class:`openai.OpenAI` client is created on first use so the
    credential is only required once a request is actually made.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        reasoning_effort: str = DEFAULT_REASONING_EFFORT,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
        client: Any = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.reasoning_effort = reasoning_effort
        self.max_output_tokens = max_output_tokens
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key)
        return self._client

    def build_request(
        self, prompt: str, image_urls: Sequence[str], metadata: Mapping[str, str]
    ) -> Dict[str, Any]:
        content: List[Dict[str, str]] = [{"type": "input_text", "text": prompt}]
        content.extend({"type": "input_image", "image_url": url} for url in image_urls)
        return {
            "model": self.model,
            "instructions": SYSTEM_PROMPT,
            "input": [{"role": "user", "content": content}],
            "reasoning": {"effort": self.reasoning_effort},
            "max_output_tokens": self.max_output_tokens,
            "metadata": dict(metadata),
        }

    def grade(
        self, prompt: str, image_urls: Sequence[str], metadata: Mapping[str, str]
    ) -> GradingReply:
        """Run a single grading request; API errors propagate to the caller."""

        request = self.build_request(prompt, image_urls, metadata)
        LOGGER.debug(
            "Requesting grade for activity %s with %d images",
            metadata.get("activity_id", ""),
            len(request["input"][0]["content"]) - 1,
        )
        response = self.client.responses.create(**request)
        return GradingReply(text=collect_response_text(response), response_id=_response_id(response))
