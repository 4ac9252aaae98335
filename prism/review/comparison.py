"""
Multi-Model Comparator。

- 对每个请求的模型各跑一遍 deep analysis（或逐 chunk review）
- 模型之间没有共享状态，并发执行；单个模型失败只影响它自己的结果（按降级策略）
- 所有模型 id 在第一次生成调用之前统一解析：有任何 id 找不到就直接抛 `ModelNotFoundError`
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

import anyio

from prism.llm.backend import ModelInfo
from prism.llm.backend import ModelNotFoundError
from prism.llm.backend import TextBackend
from prism.review.deep_analysis import compute_submission_metrics
from prism.review.deep_analysis import deep_analyze
from prism.review.deep_analysis import failure_report
from prism.review.models import ChangedFile
from prism.review.models import ChangeUnit
from prism.review.models import DeepAnalysisReport
from prism.review.models import ModelReviewEntry
from prism.review.models import ReviewMode
from prism.review.reviewer import DEFAULT_DISPATCH_INTERVAL_S
from prism.review.reviewer import review_chunks

logger = logging.getLogger(__name__)


async def resolve_models(backend: TextBackend, model_ids: Sequence[str]) -> list[ModelInfo]:
    """
    把请求的 id 解析为具体模型。

    - 只有 `ModelNotFoundError`（id 写错）会抛给调用方
    - 后端本身不可用时保留原始 id，由每个模型各自产出降级结果
    """
    if not model_ids:
        raise ValueError("At least one model id is required for comparison")
    models: list[ModelInfo] = []
    for model_id in model_ids:
        try:
            models.append(await backend.select_model(model_id=model_id))
        except ModelNotFoundError:
            raise
        except Exception as exc:
            logger.warning(f"Could not resolve model {model_id}: {exc}")
            models.append(ModelInfo(id=model_id, name=model_id, family=model_id))
    return models


async def compare_models(
    backend: TextBackend,
    submission_id: str,
    chunks: Sequence[ChangeUnit],
    changed_files: Sequence[ChangedFile],
    mode: ReviewMode,
    model_ids: Sequence[str],
) -> list[DeepAnalysisReport]:
    """每个模型一份 `DeepAnalysisReport`，顺序与 `model_ids` 一致。"""
    models = await resolve_models(backend=backend, model_ids=model_ids)
    reports: list[DeepAnalysisReport | None] = [None] * len(models)

    async def run_one(index: int, model: ModelInfo) -> None:
        try:
            reports[index] = await deep_analyze(
                backend=backend,
                submission_id=submission_id,
                chunks=chunks,
                changed_files=changed_files,
                mode=mode,
                model_id=model.id,
            )
        except Exception as exc:
            # 单个模型的意外错误不能取消 task group 里的其他模型
            logger.error(f"Deep analysis with {model.name} failed unexpectedly: {exc}")
            metrics = compute_submission_metrics(chunks=chunks, changed_files=changed_files)
            reports[index] = failure_report(
                submission_id=submission_id, metrics=metrics, model_name=model.name, error=str(exc)
            )

    async with anyio.create_task_group() as tg:
        for index, model in enumerate(models):
            tg.start_soon(run_one, index, model)

    logger.info(f"Compared {len(models)} model(s) for {submission_id}")
    return [r for r in reports if r is not None]


async def compare_chunk_reviews(
    backend: TextBackend,
    chunks: Sequence[ChangeUnit],
    mode: ReviewMode,
    model_ids: Sequence[str],
    *,
    min_interval_s: float = DEFAULT_DISPATCH_INTERVAL_S,
    max_concurrency: int = 1,
) -> list[ModelReviewEntry]:
    """逐 chunk review 的多模型版本：每个模型独立节流，返回各自耗时。"""
    models = await resolve_models(backend=backend, model_ids=model_ids)
    entries: list[ModelReviewEntry | None] = [None] * len(models)

    async def run_one(index: int, model: ModelInfo) -> None:
        started = time.perf_counter()
        results = await review_chunks(
            backend=backend,
            chunks=chunks,
            mode=mode,
            model_id=model.id,
            min_interval_s=min_interval_s,
            max_concurrency=max_concurrency,
        )
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        entries[index] = ModelReviewEntry(model_name=model.name, results=results, analysis_time_ms=elapsed_ms)

    async with anyio.create_task_group() as tg:
        for index, model in enumerate(models):
            tg.start_soon(run_one, index, model)

    return [e for e in entries if e is not None]
