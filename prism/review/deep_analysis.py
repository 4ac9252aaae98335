"""
Deep Analysis（submission 级，一次提交只调用一次模型）。

流程：
- Step 1: 计算 SubmissionMetrics（非 AI，确定性）
- Step 2: 指标 + 有预算的 chunk 摘录 -> 单个聚合 prompt
- Step 3: 调用模型，解码为 `DeepAnalysisReport`（分数 clamp、评级校验、列表兜底）

降级：
- 模型选择/调用失败：complexity=0、grade=C、空 categories/recommendations，summary 写明原因
- 输出无法解码：summary 取原文前 500 字符，complexity=50、grade=C
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence

from prism.llm.backend import TextBackend
from prism.review.decoding import DecodeFailure
from prism.review.decoding import DeepAnalysisPayload
from prism.review.decoding import decode_deep_analysis
from prism.review.models import AnalysisCategory
from prism.review.models import ChangedFile
from prism.review.models import ChangeUnit
from prism.review.models import DeepAnalysisReport
from prism.review.models import LineRange
from prism.review.models import Recommendation
from prism.review.models import ReviewMode
from prism.review.models import SubmissionMetrics
from prism.review.models import TestCoverage
from prism.review.prompts import build_deep_analysis_prompt
from prism.review.prompts import build_diff_summary

logger = logging.getLogger(__name__)

MAX_HOTSPOT_FILES = 5
MAX_RAW_SUMMARY_CHARS = 500
UNKNOWN_MODEL = "unknown"

_TEST_PATH_RE = re.compile(
    r"(?:^|/)(?:tests?|__tests__|spec)/"
    r"|\.(?:test|spec)\.(?:ts|tsx|js|jsx|mjs|cjs)$"
    r"|(?:^|/)test_[^/]+\.py$"
    r"|_test\.(?:py|go)$"
    r"|(?:Test|Tests)\.(?:java|kt|cs)$"
)


def is_test_path(path: str) -> bool:
    return bool(_TEST_PATH_RE.search(path))


def compute_submission_metrics(chunks: Sequence[ChangeUnit], changed_files: Sequence[ChangedFile]) -> SubmissionMetrics:
    """
    计算提交级指标。

    - 增删行数来自文件元信息（不是 chunks）
    - “复杂度”= 各文件 hunk 行数之和的平均值（四舍五入）
    - hotspot = hunk 行数最多的前 5 个文件（同数保持发现顺序）
    - 测试覆盖 = 测试文件数 / 非测试文件数 的比例分档
    """
    lines_by_path: dict[str, int] = {}
    for chunk in chunks:
        lines_by_path[chunk.file_path] = lines_by_path.get(chunk.file_path, 0) + chunk.line_count

    sizes = list(lines_by_path.values())
    avg_complexity = math.floor(sum(sizes) / len(sizes) + 0.5) if sizes else 0
    hotspots = sorted(lines_by_path, key=lambda path: lines_by_path[path], reverse=True)[:MAX_HOTSPOT_FILES]

    return SubmissionMetrics(
        total_files_changed=len(changed_files),
        total_additions=sum(f.additions for f in changed_files),
        total_deletions=sum(f.deletions for f in changed_files),
        avg_complexity_per_file=avg_complexity,
        hotspot_files=hotspots,
        test_coverage=_test_coverage(paths=[f.path for f in changed_files]),
    )


def _test_coverage(paths: Sequence[str]) -> TestCoverage:
    test_count = sum(1 for p in paths if is_test_path(p))
    if test_count == 0:
        return "none"
    non_test_count = len(paths) - test_count
    ratio = test_count / non_test_count if non_test_count > 0 else 1.0
    if ratio >= 0.8:
        return "excellent"
    if ratio >= 0.5:
        return "good"
    return "partial"


async def deep_analyze(
    backend: TextBackend,
    submission_id: str,
    chunks: Sequence[ChangeUnit],
    changed_files: Sequence[ChangedFile],
    mode: ReviewMode,
    model_id: str | None = None,
) -> DeepAnalysisReport:
    """对整个提交做一次深度分析；永远返回报告，不抛错。"""
    metrics = compute_submission_metrics(chunks=chunks, changed_files=changed_files)
    prompt = build_deep_analysis_prompt(diff_summary=build_diff_summary(chunks=chunks), metrics=metrics, mode=mode)

    model_name = model_id or UNKNOWN_MODEL
    try:
        model = await backend.select_model(model_id=model_id)
        model_name = model.name
        raw = await backend.generate(prompt=prompt, model_id=model.id)
    except Exception as exc:
        logger.warning(f"Deep analysis backend failure for {submission_id}: {exc}")
        return failure_report(submission_id=submission_id, metrics=metrics, model_name=model_name, error=str(exc))

    decoded = decode_deep_analysis(raw=raw)
    if isinstance(decoded, DecodeFailure):
        return DeepAnalysisReport(
            submission_id=submission_id,
            overall_summary=raw[:MAX_RAW_SUMMARY_CHARS],
            complexity_score=50,
            quality_grade="C",
            metrics=metrics,
            model_used=model_name,
        )
    return _report_from_payload(
        submission_id=submission_id,
        payload=decoded.payload,
        metrics=metrics,
        model_name=model_name,
    )


def _report_from_payload(
    submission_id: str,
    payload: DeepAnalysisPayload,
    metrics: SubmissionMetrics,
    model_name: str,
) -> DeepAnalysisReport:
    return DeepAnalysisReport(
        submission_id=submission_id,
        overall_summary=payload.overallSummary,
        complexity_score=payload.complexityScore,
        quality_grade=payload.qualityGrade,
        categories=[
            AnalysisCategory(name=c.name, score=c.score, findings=c.findings, severity=c.severity)
            for c in payload.categories
        ],
        recommendations=[
            Recommendation(
                priority=r.priority,
                title=r.title,
                description=r.description,
                file_path=r.filePath,
                line_range=LineRange(start=r.lineRange.start, end=r.lineRange.end) if r.lineRange else None,
            )
            for r in payload.recommendations
        ],
        metrics=metrics,
        model_used=model_name,
    )


def failure_report(submission_id: str, metrics: SubmissionMetrics, model_name: str, error: str) -> DeepAnalysisReport:
    return DeepAnalysisReport(
        submission_id=submission_id,
        overall_summary=f"Unable to complete deep analysis: {error}",
        complexity_score=0,
        quality_grade="C",
        metrics=metrics,
        model_used=model_name,
    )
