from __future__ import annotations

"""
Synthesis（汇总输出）。

注意：
- 这里是**确定性输出**（不依赖 LLM），同样的输入永远得到同样的 Markdown
- 只负责把值对象拼成文本；怎么展示（面板、评论、文件）由调用方决定
"""

from prism.review.models import ReviewResult
from prism.review.models import RiskReport


def render_risk_table(submission_id: str, reports: list[RiskReport]) -> str:
    """风险评估表：一行一个文件，已按分数降序。"""
    lines: list[str] = []
    lines.append(f"# Risk Analysis: {submission_id}")
    lines.append("")
    lines.append("| File | Level | Score | Reasons |")
    lines.append("|------|-------|-------|---------|")
    for r in reports:
        reasons = "; ".join(reason.replace("|", "\\|") for reason in r.reasons)
        lines.append(f"| {r.file_path} | {r.level.upper()} | {r.score}/100 | {reasons} |")
    return "\n".join(lines)


def render_review_results(submission_id: str, results: list[ReviewResult]) -> str:
    """
    逐 chunk review 结果，按文件分组（文件顺序 = 首次出现顺序）。

    - 每个 chunk 一行 summary + 风险等级
    - 每条建议一行；带 patch 的建议附代码块
    """
    lines: list[str] = []
    lines.append(f"# AI Code Review: {submission_id}")
    lines.append("")

    if not results:
        lines.append("No reviewable changes found.")
        return "\n".join(lines)

    by_path: dict[str, list[ReviewResult]] = {}
    for result in results:
        by_path.setdefault(result.file_path, []).append(result)

    for path, file_results in by_path.items():
        lines.append(f"## `{path}`")
        for result in file_results:
            lines.append(
                f"- L{result.start_line}-{result.end_line} **[{result.risk_level}]** "
                f"{result.summary} _({result.model_used})_"
            )
            for s in result.suggestions:
                lines.append(f"  - **[{s.severity}]** line {s.line}: {s.message}")
                if s.patch:
                    lines.append("    ```")
                    lines.extend(f"    {patch_line}" for patch_line in s.patch.splitlines())
                    lines.append("    ```")
        lines.append("")

    return "\n".join(lines).rstrip()
