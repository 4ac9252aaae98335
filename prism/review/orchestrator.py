"""
Review Orchestrator（整次提交的流程编排）。

关键思想：
- **流程由工程代码控制**：parse -> review（节流）-> risk，顺序固定
- **LLM 只负责“思考/生成结构化输出”**：每个 chunk 一次，或每个提交一次（deep analysis）

diff 的获取、结果的展示都不在这里：调用方传入 `FileDiff` 列表，拿回值对象。
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from prism.config import ReviewConfig
from prism.llm.backend import ModelNotFoundError
from prism.llm.backend import TextBackend
from prism.review.comparison import compare_chunk_reviews
from prism.review.comparison import compare_models
from prism.review.deep_analysis import deep_analyze
from prism.review.diff_parser import parse_diff
from prism.review.models import ChangeUnit
from prism.review.models import DeepAnalysisReport
from prism.review.models import FileDiff
from prism.review.models import ModelReviewEntry
from prism.review.models import ReviewMode
from prism.review.models import RiskReport
from prism.review.models import SubmissionReview
from prism.review.prompts import build_submission_summary_prompt
from prism.review.reviewer import review_chunks
from prism.review.risk import analyze_risk

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReviewOrchestrator:
    """Orchestrator 运行时依赖集合：后端能力 + 调度配置。"""

    backend: TextBackend
    config: ReviewConfig


def build_review_orchestrator(backend: TextBackend, config: ReviewConfig | None = None) -> ReviewOrchestrator:
    """创建 orchestrator（便于未来注入 cache/queue 等依赖）。"""
    return ReviewOrchestrator(backend=backend, config=config or ReviewConfig())


def parse_submission(files: Sequence[FileDiff]) -> list[ChangeUnit]:
    """逐文件解析 diff，保持“文件顺序 -> hunk 顺序”。"""
    chunks: list[ChangeUnit] = []
    for file_diff in files:
        chunks.extend(parse_diff(diff=file_diff.diff, path=file_diff.path))
    return chunks


async def ensure_model_exists(backend: TextBackend, model_id: str | None) -> None:
    """
    在任何生成调用之前确认显式指定的模型存在；找不到抛 `ModelNotFoundError`。

    后端本身不可用不在这里处理：每次调用会各自按降级策略产出结果。
    """
    if model_id is None:
        return
    try:
        await backend.select_model(model_id=model_id)
    except ModelNotFoundError:
        raise
    except Exception as exc:
        logger.warning(f"Could not verify model {model_id}: {exc}")


def run_risk_analysis(files: Sequence[FileDiff]) -> list[RiskReport]:
    """只做风险评估（不调用模型）。"""
    return analyze_risk(chunks=parse_submission(files=files))


async def run_review(
    orchestrator: ReviewOrchestrator,
    submission_id: str,
    files: Sequence[FileDiff],
    mode: ReviewMode | None = None,
    model_id: str | None = None,
) -> SubmissionReview:
    """
    跑一次完整 review。

    - Step 1: Parse（非 AI）
    - Step 2: 逐 chunk review（节流，结果按发现顺序）
    - Step 3: Risk scoring（非 AI，覆盖全部 chunks）
    """
    await ensure_model_exists(backend=orchestrator.backend, model_id=model_id)
    mode = mode or orchestrator.config.default_mode
    chunks = parse_submission(files=files)
    logger.info(f"Reviewing {submission_id}: {len(files)} file(s), {len(chunks)} chunk(s), mode={mode.value}")

    results = await review_chunks(
        backend=orchestrator.backend,
        chunks=chunks,
        mode=mode,
        model_id=model_id,
        min_interval_s=orchestrator.config.dispatch_interval_s,
        max_concurrency=orchestrator.config.max_concurrency,
    )
    return SubmissionReview(
        submission_id=submission_id,
        mode=mode,
        chunks=chunks,
        results=results,
        risk_reports=analyze_risk(chunks=chunks),
    )


async def run_deep_analysis(
    orchestrator: ReviewOrchestrator,
    submission_id: str,
    files: Sequence[FileDiff],
    mode: ReviewMode | None = None,
    model_id: str | None = None,
) -> DeepAnalysisReport:
    await ensure_model_exists(backend=orchestrator.backend, model_id=model_id)
    return await deep_analyze(
        backend=orchestrator.backend,
        submission_id=submission_id,
        chunks=parse_submission(files=files),
        changed_files=files,
        mode=mode or orchestrator.config.default_mode,
        model_id=model_id,
    )


async def run_model_comparison(
    orchestrator: ReviewOrchestrator,
    submission_id: str,
    files: Sequence[FileDiff],
    model_ids: Sequence[str],
    mode: ReviewMode | None = None,
) -> list[DeepAnalysisReport]:
    return await compare_models(
        backend=orchestrator.backend,
        submission_id=submission_id,
        chunks=parse_submission(files=files),
        changed_files=files,
        mode=mode or orchestrator.config.default_mode,
        model_ids=model_ids,
    )


async def run_multi_model_review(
    orchestrator: ReviewOrchestrator,
    files: Sequence[FileDiff],
    model_ids: Sequence[str],
    mode: ReviewMode | None = None,
) -> list[ModelReviewEntry]:
    return await compare_chunk_reviews(
        backend=orchestrator.backend,
        chunks=parse_submission(files=files),
        mode=mode or orchestrator.config.default_mode,
        model_ids=model_ids,
        min_interval_s=orchestrator.config.dispatch_interval_s,
        max_concurrency=orchestrator.config.max_concurrency,
    )


async def summarize_submission(
    orchestrator: ReviewOrchestrator,
    files: Sequence[FileDiff],
    model_id: str | None = None,
) -> str:
    """自由文本（Markdown）summary；后端失败时返回一行说明而不是抛错。"""
    await ensure_model_exists(backend=orchestrator.backend, model_id=model_id)
    prompt = build_submission_summary_prompt(files=files)
    try:
        return await orchestrator.backend.generate(prompt=prompt, model_id=model_id)
    except Exception as exc:
        logger.warning(f"Summary generation failed: {exc}")
        return f"Unable to generate summary: {exc}"
