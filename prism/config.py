"""
应用配置加载。

设计目标：
- **严格**：缺少必要环境变量或取值非法就直接报错（避免“看起来跑了其实没配置好”）
- **类型安全**：使用 Pydantic 校验 URL/数值范围等，减少运行时踩坑
- **可测试**：核心加载函数接收 `environ` 显式输入，便于单元测试
"""

from __future__ import annotations

from collections.abc import Mapping

from pydantic import BaseModel, Field, HttpUrl, ValidationError

from prism.review.models import ReviewMode


class LLMConfig(BaseModel):
    """OpenAI-compatible 后端配置。`models` 为空表示从网关自动发现。"""

    base_url: HttpUrl
    api_key: str
    models: list[str] = Field(default_factory=list)
    default_model: str | None = None
    timeout_s: float = Field(default=60.0, gt=0)


class ReviewConfig(BaseModel):
    """review 调度配置：默认 mode、派发间隔、并发上限。"""

    default_mode: ReviewMode = ReviewMode.GENERAL
    dispatch_interval_s: float = Field(default=0.3, ge=0)
    max_concurrency: int = Field(default=1, ge=1)


class AppConfig(BaseModel):
    llm: LLMConfig
    review: ReviewConfig = Field(default_factory=ReviewConfig)


def load_config_from_env(environ: Mapping[str, str]) -> AppConfig:
    """
    从环境变量加载并校验配置。

    - **输入**：`environ`（例如 `os.environ`）
    - **输出**：`AppConfig`
    - **失败**：缺失/为空/非法则抛 `ValueError`
    """
    required_keys: tuple[str, ...] = ("LLM_BASE_URL", "LLM_API_KEY")
    missing: list[str] = [key for key in required_keys if not environ.get(key)]
    if missing:
        raise ValueError(f"Missing required env vars: {', '.join(missing)}")

    models = [m.strip() for m in environ.get("LLM_MODELS", "").split(",") if m.strip()]

    try:
        review = ReviewConfig(
            default_mode=environ.get("PRISM_REVIEW_MODE") or ReviewMode.GENERAL,
            dispatch_interval_s=int(environ.get("PRISM_REVIEW_DELAY_MS") or 300) / 1000,
            max_concurrency=int(environ.get("PRISM_MAX_CONCURRENCY") or 1),
        )
        # 交给 Pydantic 做类型校验（例如 URL 合法性）
        llm = LLMConfig(
            base_url=environ["LLM_BASE_URL"],
            api_key=environ["LLM_API_KEY"],
            models=models,
            default_model=environ.get("LLM_MODEL") or None,
            timeout_s=float(environ.get("PRISM_HTTP_TIMEOUT_S") or 60),
        )
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc
    except ValueError as exc:
        # int()/float() 转换失败
        raise ValueError(f"Invalid numeric configuration value: {exc}") from exc

    return AppConfig(llm=llm, review=review)
