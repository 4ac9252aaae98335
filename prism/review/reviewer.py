"""
chunk 级 Review（prompt -> backend -> decode）。

降级策略（调用方永远拿到 `ReviewResult`，不会收到异常）：
- 模型选择/调用失败：空建议 + riskLevel=low + summary 说明后端不可用（不重试）
- 模型输出不是 JSON：把原文作为一条 info 建议挂在 chunk 起始行，不丢弃模型输出

取消（`anyio` cancel scope）不属于失败，会正常向上传播。
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import anyio

from prism.infra.rate_limit import DispatchPacer
from prism.llm.backend import TextBackend
from prism.review.decoding import DecodeFailure
from prism.review.decoding import decode_chunk_review
from prism.review.models import ChangeUnit
from prism.review.models import ReviewMode
from prism.review.models import ReviewResult
from prism.review.models import ReviewSuggestion
from prism.review.models import RiskLevel
from prism.review.prompts import build_chunk_review_prompt

logger = logging.getLogger(__name__)

DEFAULT_DISPATCH_INTERVAL_S = 0.3
UNSTRUCTURED_SUMMARY = "Review completed (unstructured response)"
UNKNOWN_MODEL = "unknown"


async def review_chunk(
    backend: TextBackend,
    chunk: ChangeUnit,
    mode: ReviewMode,
    model_id: str | None = None,
) -> ReviewResult:
    """对单个 chunk 做一次 review；失败时返回降级结果而不是抛错。"""
    prompt = build_chunk_review_prompt(chunk=chunk, mode=mode)
    model_name = model_id or UNKNOWN_MODEL
    try:
        model = await backend.select_model(model_id=model_id)
        model_name = model.name
        raw = await backend.generate(prompt=prompt, model_id=model.id)
    except Exception as exc:
        logger.warning(f"Backend unavailable for chunk {chunk.chunk_id}: {exc}")
        return _result(chunk=chunk, mode=mode, model_name=model_name, summary=f"Backend unavailable: {exc}")

    decoded = decode_chunk_review(raw=raw)
    if isinstance(decoded, DecodeFailure):
        return _result(
            chunk=chunk,
            mode=mode,
            model_name=model_name,
            summary=UNSTRUCTURED_SUMMARY,
            suggestions=[ReviewSuggestion(line=chunk.start_line, severity="info", message=raw)],
        )

    payload = decoded.payload
    suggestions = [
        ReviewSuggestion(
            line=s.line if s.line is not None else chunk.start_line,
            severity=s.severity,
            message=s.message,
            patch=s.patch,
            category=s.category,
        )
        for s in payload.suggestions
    ]
    return _result(
        chunk=chunk,
        mode=mode,
        model_name=model_name,
        summary=payload.summary,
        risk_level=payload.riskLevel,
        suggestions=suggestions,
    )


async def review_chunks(
    backend: TextBackend,
    chunks: Sequence[ChangeUnit],
    mode: ReviewMode,
    model_id: str | None = None,
    *,
    min_interval_s: float = DEFAULT_DISPATCH_INTERVAL_S,
    max_concurrency: int = 1,
) -> list[ReviewResult]:
    """
    按节流策略 review 一批 chunks。

    - 最多 `max_concurrency` 个请求同时在途，相邻派发至少间隔 `min_interval_s`
    - 返回顺序与 `chunks` 一致（parser 的发现顺序），与完成顺序无关
    """
    if max_concurrency <= 0:
        raise ValueError("max_concurrency must be > 0")

    pacer = DispatchPacer(min_interval_s=min_interval_s)
    limiter = anyio.CapacityLimiter(max_concurrency)
    results: list[ReviewResult | None] = [None] * len(chunks)

    async def run_one(index: int, chunk: ChangeUnit) -> None:
        async with limiter:
            await pacer.wait_turn()
            results[index] = await review_chunk(backend=backend, chunk=chunk, mode=mode, model_id=model_id)

    async with anyio.create_task_group() as tg:
        for index, chunk in enumerate(chunks):
            tg.start_soon(run_one, index, chunk)

    return [r for r in results if r is not None]


def _result(
    chunk: ChangeUnit,
    mode: ReviewMode,
    model_name: str,
    summary: str,
    risk_level: RiskLevel = "low",
    suggestions: list[ReviewSuggestion] | None = None,
) -> ReviewResult:
    return ReviewResult(
        chunk_id=chunk.chunk_id,
        file_path=chunk.file_path,
        start_line=chunk.start_line,
        end_line=chunk.end_line,
        mode=mode,
        suggestions=suggestions or [],
        summary=summary,
        risk_level=risk_level,
        model_used=model_name,
    )
