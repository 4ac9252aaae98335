"""
FastAPI 服务入口。

这里做三件事：
- 加载配置（严格校验环境变量）
- 组装外部依赖（HTTP Client / OpenAI-compatible backend / orchestrator）
- 装配路由（health + models + risk/review/deep-analysis/compare/summary）

注意：
- 业务流程不写在这里（由 `review/orchestrator.py` 负责）
- `httpx.AsyncClient` 会被复用（避免每个请求新建连接），应用关闭时释放
- 启动：`uvicorn prism.main:build_app --factory`
"""

from __future__ import annotations

import os
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from prism.config import ReviewConfig
from prism.config import load_config_from_env
from prism.llm.backend import ModelInfo
from prism.llm.backend import ModelNotFoundError
from prism.llm.backend import TextBackend
from prism.llm.client import OpenAICompatBackend
from prism.review.models import DeepAnalysisReport
from prism.review.models import FileDiff
from prism.review.models import ModelReviewEntry
from prism.review.models import ReviewMode
from prism.review.models import RiskReport
from prism.review.models import SubmissionReview
from prism.review.orchestrator import build_review_orchestrator
from prism.review.orchestrator import run_deep_analysis
from prism.review.orchestrator import run_model_comparison
from prism.review.orchestrator import run_multi_model_review
from prism.review.orchestrator import run_review
from prism.review.orchestrator import run_risk_analysis
from prism.review.orchestrator import summarize_submission
from prism.review.synthesis import render_review_results
from prism.review.synthesis import render_risk_table


class SubmissionRequest(BaseModel):
    submission_id: str
    files: list[FileDiff] = Field(default_factory=list)
    mode: ReviewMode | None = None
    model_id: str | None = None


class CompareRequest(BaseModel):
    submission_id: str
    files: list[FileDiff] = Field(default_factory=list)
    mode: ReviewMode | None = None
    model_ids: list[str] = Field(min_length=1)


class RiskResponse(BaseModel):
    reports: list[RiskReport]
    markdown: str


class ReviewResponse(SubmissionReview):
    markdown: str


class SummaryResponse(BaseModel):
    summary: str


def create_app(
    backend: TextBackend,
    review_config: ReviewConfig | None = None,
    lifespan: Callable[[FastAPI], AbstractAsyncContextManager[None]] | None = None,
) -> FastAPI:
    """用给定的 backend 组装 app（测试里注入 fake backend）。"""
    orchestrator = build_review_orchestrator(backend=backend, config=review_config)

    app = FastAPI(title="PRism Review", version="0.1.0", lifespan=lifespan)

    @app.exception_handler(ModelNotFoundError)
    async def model_not_found(request: Request, exc: ModelNotFoundError) -> JSONResponse:
        """模型 id 写错属于使用错误：直接 400，不做任何生成调用。"""
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.get("/health")
    async def health() -> dict[str, str]:
        """健康检查：用于 k8s / LB 探活。"""
        return {"status": "ok"}

    @app.get("/models")
    async def models() -> list[ModelInfo]:
        return await backend.list_models()

    @app.post("/risk")
    async def risk(req: SubmissionRequest) -> RiskResponse:
        reports = run_risk_analysis(files=req.files)
        return RiskResponse(reports=reports, markdown=render_risk_table(submission_id=req.submission_id, reports=reports))

    @app.post("/review")
    async def review(req: SubmissionRequest) -> ReviewResponse:
        result = await run_review(
            orchestrator=orchestrator,
            submission_id=req.submission_id,
            files=req.files,
            mode=req.mode,
            model_id=req.model_id,
        )
        markdown = render_review_results(submission_id=req.submission_id, results=result.results)
        return ReviewResponse(**result.model_dump(), markdown=markdown)

    @app.post("/deep-analysis")
    async def deep_analysis(req: SubmissionRequest) -> DeepAnalysisReport:
        return await run_deep_analysis(
            orchestrator=orchestrator,
            submission_id=req.submission_id,
            files=req.files,
            mode=req.mode,
            model_id=req.model_id,
        )

    @app.post("/compare")
    async def compare(req: CompareRequest) -> list[DeepAnalysisReport]:
        return await run_model_comparison(
            orchestrator=orchestrator,
            submission_id=req.submission_id,
            files=req.files,
            model_ids=req.model_ids,
            mode=req.mode,
        )

    @app.post("/compare/reviews")
    async def compare_reviews(req: CompareRequest) -> list[ModelReviewEntry]:
        return await run_multi_model_review(
            orchestrator=orchestrator,
            files=req.files,
            model_ids=req.model_ids,
            mode=req.mode,
        )

    @app.post("/summary")
    async def summary(req: SubmissionRequest) -> SummaryResponse:
        text = await summarize_submission(orchestrator=orchestrator, files=req.files, model_id=req.model_id)
        return SummaryResponse(summary=text)

    return app


def build_app() -> FastAPI:
    """从环境变量创建 app（uvicorn factory 入口）。"""

    # 1) 配置：缺失会直接抛错，启动失败（这是期望行为）
    config = load_config_from_env(os.environ)

    # 2) 可复用的 HTTP client：供 LLM 调用使用
    http_client = httpx.AsyncClient(timeout=httpx.Timeout(config.llm.timeout_s))

    # 3) backend：OpenAI-compatible（填 base_url/api_key/models 即可）
    backend = OpenAICompatBackend(
        api_key=config.llm.api_key,
        base_url=str(config.llm.base_url).rstrip("/"),
        http_client=http_client,
        models=config.llm.models,
        default_model=config.llm.default_model,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await http_client.aclose()

    return create_app(backend=backend, review_config=config.review, lifespan=lifespan)
