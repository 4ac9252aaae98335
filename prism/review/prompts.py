"""
Prompt Builder（纯函数）。

- 每个 `ReviewMode` 对应一段固定指令（查表，不在各处散落字符串）
- chunk 级 prompt：指令 + 文件/类型/行号 + 截断后的 hunk + JSON schema 要求
- submission 级 prompt：指标 + 有预算的 chunk 摘录 + 8 个固定分析维度 + JSON schema 要求
"""

from __future__ import annotations

from collections.abc import Sequence

from prism.review.models import ChangeUnit
from prism.review.models import FileDiff
from prism.review.models import ReviewMode
from prism.review.models import SubmissionMetrics

MAX_CHUNK_CHARS = 4000
MAX_EXCERPT_CHARS = 1500
MAX_SUMMARY_CHARS = 12000
MAX_SUMMARY_FILES = 10
MAX_SUMMARY_FILE_CHARS = 800

TRUNCATION_MARKER = "\n... [truncated]"

ANALYSIS_CATEGORIES: tuple[str, ...] = (
    "Code Quality",
    "Security",
    "Performance",
    "Error Handling",
    "Testing",
    "Documentation",
    "Architecture",
    "Dependencies",
)

REVIEW_MODE_INSTRUCTIONS: dict[ReviewMode, str] = {
    ReviewMode.SECURITY: (
        "You are a security code reviewer. Analyze this code diff for:\n"
        "- Authentication and authorization vulnerabilities\n"
        "- Injection attacks (SQL, XSS, command injection)\n"
        "- Insecure data handling or exposure of secrets\n"
        "- Cryptographic weaknesses\n"
        "- Input validation issues"
    ),
    ReviewMode.PERFORMANCE: (
        "You are a performance engineering expert. Analyze this code diff for:\n"
        "- Unnecessary database queries or N+1 problems\n"
        "- Memory leaks or excessive allocations\n"
        "- Blocking operations in async contexts\n"
        "- Missing caching opportunities\n"
        "- Algorithm complexity issues"
    ),
    ReviewMode.CLEAN_CODE: (
        "You are a clean code expert. Analyze this code diff for:\n"
        "- Code duplication and DRY violations\n"
        "- Long functions that should be decomposed\n"
        "- Poor naming of variables, functions, or classes\n"
        "- Magic numbers or strings\n"
        "- Violation of the Single Responsibility Principle"
    ),
    ReviewMode.ARCHITECTURE: (
        "You are a software architect. Analyze this code diff for:\n"
        "- Tight coupling and dependency violations\n"
        "- Missing abstraction layers\n"
        "- Violation of SOLID principles\n"
        "- Circular dependencies\n"
        "- Inappropriate use of design patterns"
    ),
    ReviewMode.TEST_COVERAGE: (
        "You are a QA engineer and testing expert. Analyze this code diff for:\n"
        "- Missing unit tests for new functions\n"
        "- Missing edge case coverage\n"
        "- Untested error paths\n"
        "- Test quality issues (brittle, non-deterministic tests)\n"
        "- Missing integration test scenarios"
    ),
    ReviewMode.GENERAL: (
        "You are an expert code reviewer. Analyze this code diff comprehensively for:\n"
        "- Bugs and logic errors\n"
        "- Security concerns\n"
        "- Performance issues\n"
        "- Code quality and maintainability\n"
        "- Missing tests or documentation"
    ),
}

_CHUNK_RESPONSE_SCHEMA = """Respond with a single raw JSON object (no markdown code fences, no extra text):
{
  "summary": "One sentence summary of the change",
  "riskLevel": "low|medium|high",
  "suggestions": [
    {
      "line": <line number>,
      "severity": "info|warning|error",
      "message": "<clear actionable message>",
      "patch": "<optional suggested replacement code>"
    }
  ]
}"""


def truncate_text(text: str, max_chars: int) -> str:
    """控制输入长度，避免超出模型上下文/预算；截断时追加标记。"""
    if max_chars <= 0:
        raise ValueError("max_chars must be > 0")
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


def build_chunk_review_prompt(chunk: ChangeUnit, mode: ReviewMode) -> str:
    content = truncate_text(text=chunk.content, max_chars=MAX_CHUNK_CHARS)
    return (
        f"{REVIEW_MODE_INSTRUCTIONS[mode]}\n\n"
        f"## File: {chunk.file_path}\n"
        f"## Change Type: {chunk.kind}\n"
        f"## Lines: {chunk.start_line}-{chunk.end_line}\n\n"
        f"```diff\n{content}\n```\n\n"
        f"{_CHUNK_RESPONSE_SCHEMA}"
    )


def build_diff_summary(chunks: Sequence[ChangeUnit]) -> str:
    """
    把 chunks 拼成有总预算的摘录。

    - 每个 chunk 最多贡献 MAX_EXCERPT_CHARS 字符
    - 累计超过 MAX_SUMMARY_CHARS 时停止，并标注剩余多少 chunk 被截断
    """
    parts: list[str] = []
    total = 0
    for index, chunk in enumerate(chunks):
        entry = (
            f"### {chunk.file_path} ({chunk.kind}, L{chunk.start_line}-{chunk.end_line})\n"
            f"```diff\n{chunk.content[:MAX_EXCERPT_CHARS]}\n```\n"
        )
        if total + len(entry) > MAX_SUMMARY_CHARS:
            parts.append(f"\n... ({len(chunks) - index} more chunks truncated)")
            break
        parts.append(entry)
        total += len(entry)
    return "\n".join(parts)


def build_deep_analysis_prompt(diff_summary: str, metrics: SubmissionMetrics, mode: ReviewMode) -> str:
    hotspots = ", ".join(metrics.hotspot_files) or "none"
    category_names = "|".join(ANALYSIS_CATEGORIES)
    return (
        "You are a senior software engineer performing an in-depth pull request analysis.\n"
        f"Focus area: {mode.value}\n\n"
        "## PR Metrics\n"
        f"- Files changed: {metrics.total_files_changed}\n"
        f"- Lines added: {metrics.total_additions}\n"
        f"- Lines deleted: {metrics.total_deletions}\n"
        f"- Average changed lines per file: {metrics.avg_complexity_per_file}\n"
        f"- Test coverage: {metrics.test_coverage}\n"
        f"- Hotspot files: {hotspots}\n\n"
        "## Changes\n"
        f"{diff_summary}\n\n"
        "Perform a deep, thorough analysis. "
        "Respond with a single raw JSON object (no markdown code fences, no extra text):\n"
        "{\n"
        '  "overallSummary": "Comprehensive 3-5 sentence summary of what this PR does and its impact",\n'
        '  "complexityScore": <0-100, where 100 is extremely complex>,\n'
        '  "qualityGrade": "A|B|C|D|F",\n'
        '  "categories": [\n'
        "    {\n"
        f'      "name": "{category_names}",\n'
        '      "score": <0-100>,\n'
        '      "findings": ["finding 1", "finding 2"],\n'
        '      "severity": "good|acceptable|needs-improvement|critical"\n'
        "    }\n"
        "  ],\n"
        '  "recommendations": [\n'
        "    {\n"
        '      "priority": "low|medium|high|critical",\n'
        '      "title": "Short title",\n'
        '      "description": "Detailed actionable recommendation",\n'
        '      "filePath": "optional/file/path.py",\n'
        '      "lineRange": {"start": 1, "end": 10}\n'
        "    }\n"
        "  ]\n"
        "}\n\n"
        f"Analyze ALL of these categories: {', '.join(ANALYSIS_CATEGORIES)}. Be thorough and actionable."
    )


def build_submission_summary_prompt(files: Sequence[FileDiff]) -> str:
    """自由文本 summary：只取前 MAX_SUMMARY_FILES 个文件、每个 diff 的前 MAX_SUMMARY_FILE_CHARS 字符。"""
    sections = [f"### {f.path}\n{f.diff[:MAX_SUMMARY_FILE_CHARS]}" for f in files[:MAX_SUMMARY_FILES]]
    changed = "\n\n".join(sections)
    return (
        "You are a senior software engineer. Generate a concise structured pull request review summary.\n\n"
        "## Changed Files\n"
        f"{changed}\n\n"
        "Provide:\n"
        "1. A 2-3 sentence summary of what this PR does\n"
        "2. Key risks or concerns\n"
        "3. Recommended review focus areas\n\n"
        "Format as markdown."
    )
