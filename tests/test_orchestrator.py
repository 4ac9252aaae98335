from __future__ import annotations

import json

import pytest

from prism.config import ReviewConfig
from prism.llm.backend import ModelNotFoundError
from prism.review.models import FileDiff
from prism.review.models import ReviewMode
from prism.review.orchestrator import build_review_orchestrator
from prism.review.orchestrator import parse_submission
from prism.review.orchestrator import run_deep_analysis
from prism.review.orchestrator import run_multi_model_review
from prism.review.orchestrator import run_review
from prism.review.orchestrator import run_risk_analysis
from prism.review.orchestrator import summarize_submission

FILES = [
    FileDiff(
        path="src/auth/login.py",
        status="modified",
        additions=2,
        deletions=1,
        diff="\n".join(["@@ -1,2 +1,3 @@", " import os", "-check(password)", "+check(password, token)", "+log(session)"]),
    ),
    FileDiff(
        path="README.md",
        status="modified",
        additions=1,
        deletions=0,
        diff="\n".join(["@@ -3,1 +3,2 @@", " Usage", "+More docs"]),
    ),
]

REVIEW_JSON = json.dumps({"summary": "ok", "riskLevel": "medium", "suggestions": []})
FAST = ReviewConfig(dispatch_interval_s=0, max_concurrency=2)


def test_parse_submission_uses_file_paths() -> None:
    chunks = parse_submission(files=FILES)
    assert [c.chunk_id for c in chunks] == ["src/auth/login.py:1-4", "README.md:3-4"]


def test_run_risk_analysis_without_backend() -> None:
    reports = run_risk_analysis(files=FILES)
    assert [r.file_path for r in reports] == ["src/auth/login.py", "README.md"]
    assert reports[0].level == "medium"


@pytest.mark.anyio
async def test_run_review_end_to_end(make_backend) -> None:
    backend = make_backend(responses={"gpt-4o": REVIEW_JSON})
    orchestrator = build_review_orchestrator(backend=backend, config=FAST)

    review = await run_review(orchestrator=orchestrator, submission_id="12", files=FILES)

    assert review.mode == ReviewMode.GENERAL
    assert [r.chunk_id for r in review.results] == [c.chunk_id for c in review.chunks]
    assert [r.file_path for r in review.risk_reports] == ["src/auth/login.py", "README.md"]
    assert all(r.risk_level == "medium" for r in review.results)


@pytest.mark.anyio
async def test_run_review_unknown_model_raises_before_calls(make_backend) -> None:
    backend = make_backend(responses={"gpt-4o": REVIEW_JSON})
    orchestrator = build_review_orchestrator(backend=backend, config=FAST)
    with pytest.raises(ModelNotFoundError):
        await run_review(orchestrator=orchestrator, submission_id="12", files=FILES, model_id="llama-3")
    assert backend.prompts == []


@pytest.mark.anyio
async def test_run_deep_analysis_uses_configured_default_mode(make_backend) -> None:
    backend = make_backend(responses={"gpt-4o": '{"qualityGrade": "D"}'})
    orchestrator = build_review_orchestrator(
        backend=backend,
        config=ReviewConfig(default_mode=ReviewMode.ARCHITECTURE, dispatch_interval_s=0),
    )
    report = await run_deep_analysis(orchestrator=orchestrator, submission_id="12", files=FILES)
    assert report.quality_grade == "D"
    assert report.metrics.total_additions == 3
    (_, prompt) = backend.prompts[0]
    assert "Focus area: architecture" in prompt


@pytest.mark.anyio
async def test_run_multi_model_review(make_backend) -> None:
    backend = make_backend(responses={"gpt-4o": REVIEW_JSON, "o4-mini": REVIEW_JSON})
    orchestrator = build_review_orchestrator(backend=backend, config=FAST)
    entries = await run_multi_model_review(orchestrator=orchestrator, files=FILES, model_ids=["o4-mini", "gpt-4o"])
    assert [e.model_name for e in entries] == ["o4-mini", "gpt-4o"]
    assert all(len(e.results) == 2 for e in entries)


@pytest.mark.anyio
async def test_summarize_submission(make_backend) -> None:
    backend = make_backend(responses={"gpt-4o": "## Summary\nLooks good."})
    orchestrator = build_review_orchestrator(backend=backend, config=FAST)
    assert await summarize_submission(orchestrator=orchestrator, files=FILES) == "## Summary\nLooks good."


@pytest.mark.anyio
async def test_summarize_submission_backend_failure(make_backend) -> None:
    backend = make_backend(failures={"gpt-4o": RuntimeError("offline")})
    orchestrator = build_review_orchestrator(backend=backend, config=FAST)
    text = await summarize_submission(orchestrator=orchestrator, files=FILES)
    assert text == "Unable to generate summary: offline"
