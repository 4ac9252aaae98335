from __future__ import annotations

import json

import pytest

from prism.dev.mock_openai_server import _decide_mock_response
from prism.llm.client import ChatMessage
from prism.review.diff_parser import parse_diff
from prism.review.models import ReviewMode
from prism.review.prompts import build_chunk_review_prompt


def test_chunk_review_prompt_gets_line_anchored_json() -> None:
    (chunk,) = parse_diff(diff="@@ -10,1 +12,2 @@\n ctx\n+added", path="app/views.py")
    prompt = build_chunk_review_prompt(chunk=chunk, mode=ReviewMode.GENERAL)

    payload = json.loads(_decide_mock_response(messages=[ChatMessage(role="user", content=prompt)]))

    assert payload["riskLevel"] == "medium"
    assert payload["suggestions"][0]["line"] == 12
    assert "app/views.py" in payload["summary"]


def test_deep_analysis_prompt_gets_report_json() -> None:
    prompt = 'Respond with {"overallSummary": "..."}'
    payload = json.loads(_decide_mock_response(messages=[ChatMessage(role="user", content=prompt)]))
    assert payload["qualityGrade"] == "B"
    assert len(payload["categories"]) == 8


def test_other_prompts_get_markdown() -> None:
    text = _decide_mock_response(messages=[ChatMessage(role="user", content="Summarize this")])
    assert text.startswith("## Summary")


def test_requires_user_message() -> None:
    with pytest.raises(ValueError):
        _decide_mock_response(messages=[ChatMessage(role="system", content="hi")])
