"""High level orchestration for grading a directory of offers."""
from __future__ import annotations

from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
import json
import logging
from pathlib import Path
from threading import Lock
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional

from .client import GradingClient
from .config import GradingConfig, load_api_key
from .models import GradingResult, StructuredOffer, format_identifier
from .prompts import MAX_IMAGES_TO_REVIEW, build_offer_prompt, select_review_images
from .reconciler import reconcile_response
from .reporter import ACTIVITY_URL_TEMPLATE, summarise_results, write_results_csv
from .structurer import load_offers

LOGGER = logging.getLogger(__name__)

CURATED_STATUS = "CURATED"


class BatchState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"


def is_curated(offer: StructuredOffer) -> bool:
    return str(offer.status or "").upper() == CURATED_STATUS


def filter_offers_to_grade(offers: Iterable[StructuredOffer]) -> List[StructuredOffer]:
    """Drop offers that have already been curated."""

    return [offer for offer in offers if not is_curated(offer)]


def build_request_metadata(offer: StructuredOffer) -> Dict[str, str]:
    activity_id = format_identifier(offer.activity_id)
    return {
        "activity_id": activity_id,
        "activity_title": offer.title or "",
        "activity_url": ACTIVITY_URL_TEMPLATE.format(activity_id=activity_id),
        "activity_category": offer.category or "",
    }


def _failure_details(exc: Exception) -> str:
    details: Any = getattr(exc, "body", None) or str(exc) or repr(exc)
    return json.dumps(details, ensure_ascii=False, default=str)


def grade_offer(
    offer: StructuredOffer, client: GradingClient, max_images: int = MAX_IMAGES_TO_REVIEW
) -> GradingResult:
    """Grade a single offer; service failures become a failed result."""

    prompt = build_offer_prompt(offer, max_images)
    review_images = select_review_images(offer, max_images)

    try:
        reply = client.grade(
            prompt, [image.url for image in review_images], build_request_metadata(offer)
        )
    except Exception as exc:
        LOGGER.warning("Model call failed for activity %s: %s", offer.activity_id, exc)
        return GradingResult(
            activity_id=offer.activity_id,
            reason=f"Model call failed: {_failure_details(exc)}",
        )

    fields = reconcile_response(reply.text, offer.image_details)
    return GradingResult(
        activity_id=offer.activity_id,
        score=fields.score,
        reason=fields.reason,
        categories=fields.categories,
        target_audiences=fields.target_audiences,
        hero_image_index=fields.hero_image_index,
        hero_image_url=fields.hero_image_url,
        hero_image_reason=fields.hero_image_reason,
        response_id=reply.response_id,
    )


def sort_results(results: Iterable[GradingResult]) -> List[GradingResult]:
    """Order results by identifier, then reason, independent of completion order."""

    return sorted(results, key=lambda result: (result.activity_key, result.reason))


class GradingBatch:
    """Grade offers with a fixed number of workers draining a shared queue."""

    def __init__(
        self,
        client: GradingClient,
        concurrency: int = 4,
        max_images: int = MAX_IMAGES_TO_REVIEW,
    ) -> None:
        self.client = client
        self.concurrency = max(1, int(concurrency))
        self.max_images = max_images
        self.state = BatchState.IDLE
        self._queue: Deque[StructuredOffer] = deque()
        self._results: List[GradingResult] = []
        self._queue_lock = Lock()
        self._results_lock = Lock()

    def _next_offer(self) -> Optional[StructuredOffer]:
        with self._queue_lock:
            return self._queue.popleft() if self._queue else None

    def _worker(self) -> None:
        while True:
            offer = self._next_offer()
            if offer is None:
                return
            result = grade_offer(offer, self.client, self.max_images)
            LOGGER.info("Graded offer: %s", json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
            with self._results_lock:
                self._results.append(result)

    def run(self, offers: Iterable[StructuredOffer]) -> List[GradingResult]:
        if self.state is not BatchState.IDLE:
            raise RuntimeError(f"Grading batch already {self.state.value}")

        self.state = BatchState.RUNNING
        self._queue.extend(filter_offers_to_grade(offers))
        if self._queue:
            workers = min(self.concurrency, len(self._queue))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [executor.submit(self._worker) for _ in range(workers)]
                for future in futures:
                    future.result()

        self.state = BatchState.DONE
        return sort_results(self._results)


@dataclass
class GradingRunResult:
    """Result returned by :func:`run_grading_workflow`."""

    config: GradingConfig
    offers_loaded: int
    offers_queued: int
    results: List[GradingResult] = field(default_factory=list)
    summary: Dict[str, float] = field(default_factory=dict)
    output_path: Optional[Path] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "config": self.config.to_dict(),
            "offers_loaded": self.offers_loaded,
            "offers_queued": self.offers_queued,
            "summary": self.summary,
            "results": [result.to_dict() for result in self.results],
            "output_path": str(self.output_path) if self.output_path else None,
        }


def create_client(config: GradingConfig, api_key: str) -> GradingClient:
    return GradingClient(
        api_key=api_key,
        model=config.model,
        reasoning_effort=config.reasoning_effort,
        max_output_tokens=config.max_output_tokens,
    )


def run_grading_workflow(
    config: GradingConfig,
    client: Optional[GradingClient] = None,
    environ: Optional[Mapping[str, str]] = None,
    base_dir: Optional[Path] = None,
) -> GradingRunResult:
    """Load, grade and export every eligible offer in ``config.offers_dir``."""

    LOGGER.info("Loading offers from %s", config.offers_dir)
    offers = load_offers(config.offers_dir)
    LOGGER.info("Loaded %d offers.", len(offers))

    queued = filter_offers_to_grade(offers)
    LOGGER.info("Queued %d offers for grading.", len(queued))
    if not queued:
        LOGGER.info("No offers require grading.")
        return GradingRunResult(config=config, offers_loaded=len(offers), offers_queued=0)

    if client is None:
        client = create_client(config, load_api_key(environ, base_dir))

    batch = GradingBatch(client, concurrency=config.concurrency, max_images=config.max_images)
    results = batch.run(queued)
    write_results_csv(results, config.output_path)

    summary = summarise_results(results)
    LOGGER.info(
        "Graded %d offers (%d failed), average score %.2f",
        summary["count"],
        summary["failed"],
        summary["average_score"],
    )
    return GradingRunResult(
        config=config,
        offers_loaded=len(offers),
        offers_queued=len(queued),
        results=results,
        summary=summary,
        output_path=config.output_path,
    )
