from __future__ import annotations

import pytest

from prism.review.diff_parser import parse_diff
from prism.review.models import FileDiff
from prism.review.models import ReviewMode
from prism.review.models import SubmissionMetrics
from prism.review.prompts import ANALYSIS_CATEGORIES
from prism.review.prompts import MAX_CHUNK_CHARS
from prism.review.prompts import REVIEW_MODE_INSTRUCTIONS
from prism.review.prompts import TRUNCATION_MARKER
from prism.review.prompts import build_chunk_review_prompt
from prism.review.prompts import build_deep_analysis_prompt
from prism.review.prompts import build_diff_summary
from prism.review.prompts import build_submission_summary_prompt
from prism.review.prompts import truncate_text


def _chunk(path: str = "src/a.py", lines: list[str] | None = None, start: int = 10):
    body = lines or ["+x = 1"]
    diff = "\n".join([f"diff --git a/{path} b/{path}", f"@@ -{start},1 +{start},{len(body)} @@", *body])
    (chunk,) = parse_diff(diff=diff)
    return chunk


def test_every_mode_has_instructions() -> None:
    assert set(REVIEW_MODE_INSTRUCTIONS) == set(ReviewMode)


def test_truncate_text() -> None:
    assert truncate_text(text="abc", max_chars=3) == "abc"
    assert truncate_text(text="abcd", max_chars=3) == "abc" + TRUNCATION_MARKER
    with pytest.raises(ValueError):
        truncate_text(text="abc", max_chars=0)


def test_chunk_prompt_contains_location_and_schema() -> None:
    chunk = _chunk(lines=["+a = 1", "+b = 2"])
    prompt = build_chunk_review_prompt(chunk=chunk, mode=ReviewMode.SECURITY)
    assert prompt.startswith(REVIEW_MODE_INSTRUCTIONS[ReviewMode.SECURITY])
    assert "## File: src/a.py" in prompt
    assert "## Change Type: addition" in prompt
    assert "## Lines: 10-11" in prompt
    assert '"summary"' in prompt
    assert '"riskLevel"' in prompt
    assert '"suggestions"' in prompt


def test_chunk_prompt_truncates_long_hunks() -> None:
    chunk = _chunk(lines=["+" + "x" * (MAX_CHUNK_CHARS + 100)])
    prompt = build_chunk_review_prompt(chunk=chunk, mode=ReviewMode.GENERAL)
    assert TRUNCATION_MARKER in prompt
    assert "x" * (MAX_CHUNK_CHARS + 1) not in prompt


def test_diff_summary_respects_total_budget() -> None:
    chunks = [_chunk(path=f"src/f{i}.py", lines=["+" + "y" * 3000]) for i in range(10)]
    summary = build_diff_summary(chunks=chunks)
    # 每个 chunk 最多 1500 字符，预算 12000 -> 前 7 个放得下
    assert summary.count("### src/f") == 7
    assert summary.endswith("... (3 more chunks truncated)")


def test_diff_summary_without_truncation() -> None:
    chunks = [_chunk(path="src/a.py"), _chunk(path="src/b.py")]
    summary = build_diff_summary(chunks=chunks)
    assert "### src/a.py (addition, L10-10)" in summary
    assert "truncated" not in summary


def test_deep_analysis_prompt_lists_metrics_and_categories() -> None:
    metrics = SubmissionMetrics(
        total_files_changed=2,
        total_additions=10,
        total_deletions=3,
        avg_complexity_per_file=4,
        hotspot_files=["src/a.py"],
        test_coverage="partial",
    )
    prompt = build_deep_analysis_prompt(diff_summary="DIFF", metrics=metrics, mode=ReviewMode.PERFORMANCE)
    assert "Focus area: performance" in prompt
    assert "- Files changed: 2" in prompt
    assert "- Hotspot files: src/a.py" in prompt
    assert "- Test coverage: partial" in prompt
    assert '"overallSummary"' in prompt
    for name in ANALYSIS_CATEGORIES:
        assert name in prompt


def test_submission_summary_prompt_limits_files_and_length() -> None:
    files = [FileDiff(path=f"f{i}.py", diff="z" * 1000) for i in range(12)]
    prompt = build_submission_summary_prompt(files=files)
    assert "### f9.py" in prompt
    assert "### f10.py" not in prompt
    assert "z" * 801 not in prompt
