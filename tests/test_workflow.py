"""Tests for the grading orchestrator and the end-to-end workflow."""
from __future__ import annotations

import json
import random
import re
import sys
import time
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from grading_core.client import GradingClient, GradingReply
from grading_core.config import GradingConfig, create_config_from_env
from grading_core.models import ImageDetail, StructuredOffer
from grading_core.reporter import render_csv, results_to_dataframe
from grading_core.workflow import (
    BatchState,
    GradingBatch,
    build_request_metadata,
    filter_offers_to_grade,
    grade_offer,
    run_grading_workflow,
    sort_results,
)


class FakeGradingClient:
    """Records calls and answers from a canned reply table."""

    def __init__(self, replies: Optional[Dict[str, object]] = None, jitter: float = 0.0) -> None:
        self.replies = replies or {}
        self.jitter = jitter
        self.calls: List[dict] = []
        self._lock = Lock()

    def grade(self, prompt, image_urls, metadata) -> GradingReply:
        with self._lock:
            self.calls.append({"prompt": prompt, "image_urls": list(image_urls), "metadata": dict(metadata)})
        if self.jitter:
            time.sleep(random.uniform(0, self.jitter))
        reply = self.replies.get(metadata["activity_id"], '{"score": 3, "reason": "default"}')
        if isinstance(reply, Exception):
            raise reply
        return GradingReply(text=str(reply), response_id=f"resp_{metadata['activity_id']}")


def _offer(activity_id, status=None, image_count=3) -> StructuredOffer:
    details = [
        ImageDetail(url=f"https://img.example/{activity_id}/{index}.jpg")
        for index in range(1, image_count + 1)
    ]
    return StructuredOffer(
        source_path=f"offers/{activity_id}.json",
        activity_id=activity_id,
        title=f"Offer {activity_id}",
        category="Museums",
        images=[detail.url for detail in details],
        image_details=details,
        status=status,
    )


def _write_offer(directory, activity_id, status=None) -> None:
    activity = {
        "activity_id": activity_id,
        "title": f"Offer {activity_id}",
        "images": [{"image_url_host": f"https://img.example/{activity_id}/1.jpg"}],
    }
    if status:
        activity["status"] = status
    (directory / f"{activity_id}.json").write_text(json.dumps({"activity": activity}), encoding="utf-8")


def test_curated_offers_are_excluded_case_insensitively() -> None:
    offers = [
        _offer(1, "curated"),
        _offer(2, "CURATED"),
        _offer(3, "Curated"),
        _offer(4, "pending"),
        _offer(5),
    ]

    assert [offer.activity_id for offer in filter_offers_to_grade(offers)] == [4, 5]


def test_empty_eligible_set_makes_no_calls() -> None:
    client = FakeGradingClient()
    batch = GradingBatch(client, concurrency=3)

    results = batch.run([_offer(1, "CURATED")])

    assert results == []
    assert client.calls == []
    assert batch.state is BatchState.DONE


def test_batch_cannot_run_twice() -> None:
    batch = GradingBatch(FakeGradingClient(), concurrency=1)
    batch.run([])

    with pytest.raises(RuntimeError):
        batch.run([])


def test_request_carries_capped_images_and_metadata() -> None:
    client = FakeGradingClient()
    offer = _offer(77, image_count=10)

    grade_offer(offer, client, max_images=8)

    call = client.calls[0]
    assert call["image_urls"] == offer.images[:8]
    assert "[8] " in call["prompt"] and "[9] " not in call["prompt"]
    assert call["metadata"] == {
        "activity_id": "77",
        "activity_title": "Offer 77",
        "activity_url": "https://www.klook.com/en-AU/activity/77",
        "activity_category": "Museums",
    }
    assert build_request_metadata(_offer(None))["activity_url"] == "https://www.klook.com/en-AU/activity/"


class _RecordingResponses:
    def __init__(self) -> None:
        self.requests: List[dict] = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        return {"id": "resp_cap", "output": []}


class _RecordingOpenAI:
    def __init__(self) -> None:
        self.responses = _RecordingResponses()


def test_numbered_images_match_attached_images_above_default_cap() -> None:
    config = create_config_from_env({"OFFER_GRADING_MAX_IMAGES": "10"}, base_dir=Path("."))
    openai_client = _RecordingOpenAI()
    client = GradingClient(client=openai_client)
    offer = _offer(12, image_count=12)

    grade_offer(offer, client, max_images=config.max_images)

    request = openai_client.responses.requests[0]
    content = request["input"][0]["content"]
    prompt = content[0]["text"]
    numbered_urls = re.findall(r"^\[\d+\] .* url=(\S+)$", prompt, re.MULTILINE)
    attached_urls = [part["image_url"] for part in content[1:]]

    assert attached_urls == numbered_urls
    assert len(attached_urls) == 8
    assert attached_urls == offer.images[:8]


def test_oversized_cap_passed_directly_stays_consistent() -> None:
    client = FakeGradingClient()
    offer = _offer(13, image_count=12)

    grade_offer(offer, client, max_images=12)

    call = client.calls[0]
    assert len(call["image_urls"]) == 8
    assert "[8] " in call["prompt"] and "[9] " not in call["prompt"]


def test_service_failure_produces_failed_result() -> None:
    client = FakeGradingClient({"5": RuntimeError("connection reset")})

    result = grade_offer(_offer(5), client)

    assert result.score is None
    assert result.reason == 'Model call failed: "connection reset"'
    assert result.categories == [] and result.target_audiences == []
    assert result.hero_image_index is None and result.hero_image_url is None
    assert result.hero_image_reason == ""
    assert result.response_id is None


def test_unparseable_reply_keeps_response_id() -> None:
    client = FakeGradingClient({"6": "Sorry, no verdict today"})

    result = grade_offer(_offer(6), client)

    assert result.score is None
    assert result.reason == "Failed to parse JSON: Sorry, no verdict today"
    assert result.response_id == "resp_6"


def test_hero_image_is_checked_against_offer_images() -> None:
    client = FakeGradingClient({"8": '{"score": 5, "reason": "great", "hero_image_url": "https://img.example/8/2.jpg"}'})

    result = grade_offer(_offer(8), client)

    assert result.hero_image_index == 2
    assert result.hero_image_url == "https://img.example/8/2.jpg"
    assert result.score == 5


def test_results_sorted_by_identifier_then_reason() -> None:
    batch = GradingBatch(
        FakeGradingClient(
            {
                "10": '{"score": 1, "reason": "b"}',
                "2": '{"score": 2, "reason": "a"}',
                "abc": '{"score": 3, "reason": "c"}',
            }
        ),
        concurrency=2,
    )

    results = batch.run([_offer("abc"), _offer(2), _offer(10)])

    assert [result.activity_key for result in results] == ["10", "2", "abc"]
    assert [result.reason for result in sort_results(reversed(results))] == ["b", "a", "c"]


def test_same_identifier_ties_broken_by_reason() -> None:
    results = sort_results(
        [
            grade_offer(_offer(1), FakeGradingClient({"1": '{"reason": "zeta"}'})),
            grade_offer(_offer(1), FakeGradingClient({"1": '{"reason": "alpha"}'})),
        ]
    )

    assert [result.reason for result in results] == ["alpha", "zeta"]


def test_output_is_independent_of_worker_count() -> None:
    offers = [_offer(index) for index in range(25)]
    replies = {str(index): json.dumps({"score": index % 6, "reason": f"r{index}"}) for index in range(25)}

    serial = GradingBatch(FakeGradingClient(replies), concurrency=1).run(offers)
    parallel = GradingBatch(FakeGradingClient(replies, jitter=0.01), concurrency=6).run(offers)

    assert serial == parallel
    assert render_csv(results_to_dataframe(serial)) == render_csv(results_to_dataframe(parallel))


def test_run_grading_workflow_exports_csv(tmp_path) -> None:
    offers_dir = tmp_path / "offers"
    offers_dir.mkdir()
    _write_offer(offers_dir, 1)
    _write_offer(offers_dir, 2, status="curated")
    _write_offer(offers_dir, 3)
    output_path = tmp_path / "graded.csv"
    output_path.write_text("stale", encoding="utf-8")

    client = FakeGradingClient({"3": '{"score": 4, "reason": "Nice, \\"scenic\\" tour", "hero_image_index": 1}'})
    config = GradingConfig(offers_dir=offers_dir, output_path=output_path, concurrency=2)

    run = run_grading_workflow(config, client=client)

    assert run.offers_loaded == 3
    assert run.offers_queued == 2
    assert run.summary["count"] == 2
    lines = output_path.read_text(encoding="utf-8").split("\n")
    assert lines[0] == (
        "activity_id,activity_url,hero_image_index,hero_image_url,hero_image_reason,"
        "categories,target_audiences,score,reason,log_url"
    )
    assert len(lines) == 3
    assert lines[2] == (
        "3,https://www.klook.com/en-AU/activity/3,1,https://img.example/3/1.jpg,,,,4,"
        '"Nice, ""scenic"" tour",https://platform.openai.com/logs/resp_3'
    )


def test_run_grading_workflow_without_eligible_offers(tmp_path) -> None:
    offers_dir = tmp_path / "offers"
    offers_dir.mkdir()
    _write_offer(offers_dir, 1, status="CURATED")
    config = GradingConfig(offers_dir=offers_dir, output_path=tmp_path / "graded.csv")

    run = run_grading_workflow(config, environ={}, base_dir=tmp_path)

    assert run.offers_queued == 0
    assert run.results == []
    assert not (tmp_path / "graded.csv").exists()
