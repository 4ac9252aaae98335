from __future__ import annotations

from prism.review.models import ReviewMode
from prism.review.models import ReviewResult
from prism.review.models import ReviewSuggestion
from prism.review.models import RiskReport
from prism.review.synthesis import render_review_results
from prism.review.synthesis import render_risk_table


def _result(path: str, start: int, suggestions: list[ReviewSuggestion]) -> ReviewResult:
    return ReviewResult(
        chunk_id=f"{path}:{start}-{start + 1}",
        file_path=path,
        start_line=start,
        end_line=start + 1,
        mode=ReviewMode.GENERAL,
        suggestions=suggestions,
        summary="Looks fine",
        risk_level="low",
        model_used="gpt-4o",
    )


def test_render_risk_table_escapes_pipes() -> None:
    report = RiskReport(file_path="a.py", score=45, level="medium", reasons=["x | y", "z"])
    text = render_risk_table(submission_id="9", reports=[report])
    assert text.splitlines()[0] == "# Risk Analysis: 9"
    assert "| a.py | MEDIUM | 45/100 | x \\| y; z |" in text


def test_render_review_results_groups_by_file() -> None:
    results = [
        _result("a.py", 1, [ReviewSuggestion(line=2, severity="warning", message="Check None", patch="x = y or 0")]),
        _result("b.py", 5, []),
        _result("a.py", 10, []),
    ]
    text = render_review_results(submission_id="9", results=results)

    assert text.count("## `a.py`") == 1
    assert text.index("## `a.py`") < text.index("## `b.py`")
    assert "  - **[warning]** line 2: Check None" in text
    assert "    x = y or 0" in text
    assert "- L10-11 **[low]** Looks fine _(gpt-4o)_" in text


def test_render_review_results_empty() -> None:
    text = render_review_results(submission_id="9", results=[])
    assert text.endswith("No reviewable changes found.")
