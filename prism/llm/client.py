"""
OpenAI-compatible backend（基于 OpenAI SDK，可对接 LiteLLM Proxy 等网关）。

目标：
- **尽量薄**：只做协议适配、模型选择与错误处理
- **统一接口**：实现 `llm/backend.py` 的 `TextBackend` 协议
- **不解析 JSON**：返回纯文本，解码与兜底由 `review/decoding.py` 负责
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import httpx
from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel

from prism.llm.backend import BackendUnavailableError
from prism.llm.backend import ModelInfo
from prism.llm.backend import find_model_by_id
from prism.llm.backend import pick_preferred_model

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    """OpenAI chat message 的最小结构。"""

    role: str
    content: str


def _normalize_base_url(base_url: str) -> str:
    normalized = base_url.rstrip("/")
    if normalized.endswith("/v1"):
        return normalized
    return f"{normalized}/v1"


def model_info_from_id(model_id: str, vendor: str = "openai-compat") -> ModelInfo:
    """网关只给出 id 时的最小模型描述；family 取 `provider/` 前缀之后的部分。"""
    family = model_id.rsplit("/", 1)[-1]
    return ModelInfo(id=model_id, name=model_id, family=family, vendor=vendor)


class OpenAICompatBackend:
    """
    通过 OpenAI-compatible API 调用 LLM。

    模型来源：
    - 显式配置的 `models`（按给定顺序）
    - 未配置时，首次调用会从网关的 `/v1/models` 拉取并缓存
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        http_client: httpx.AsyncClient,
        models: Sequence[str] = (),
        default_model: str | None = None,
    ) -> None:
        """
        - api_key: LLM API key
        - base_url: OpenAI-compatible base URL（LiteLLM Proxy 的地址）
        - http_client: 复用 httpx.AsyncClient 连接池
        - models: 可选模型 id 列表；为空时自动发现
        - default_model: 调用方未指定模型时优先使用的 id
        """
        self._base_url = _normalize_base_url(base_url=base_url)
        self._configured_models = [model_info_from_id(model_id=m) for m in models]
        self._discovered_models: list[ModelInfo] | None = None
        self._default_model = default_model
        self._client = AsyncOpenAI(api_key=api_key, base_url=self._base_url, http_client=http_client)

    async def list_models(self) -> list[ModelInfo]:
        if self._configured_models:
            return list(self._configured_models)
        if self._discovered_models is None:
            self._discovered_models = await self._discover_models()
        return list(self._discovered_models)

    async def select_model(self, model_id: str | None = None) -> ModelInfo:
        models = await self.list_models()
        if not models:
            raise BackendUnavailableError(f"No models available at {self._base_url}")
        if model_id:
            return find_model_by_id(models=models, model_id=model_id)
        if self._default_model:
            return find_model_by_id(models=models, model_id=self._default_model)
        return pick_preferred_model(models=models)

    async def generate(self, prompt: str, model_id: str | None = None) -> str:
        """
        把 prompt 作为单条 user message 发给选中的模型，返回去掉首尾空白的文本。

        注意：
        - 出错直接抛异常（记录日志后），降级策略由上游决定
        - 模型返回空 content 视为后端不可用
        """
        model = await self.select_model(model_id=model_id)
        messages = [ChatMessage(role="user", content=prompt)]
        try:
            logger.info(f"LLM request: model={model.id}, prompt={len(prompt)} chars")
            response = await self._client.chat.completions.create(
                model=model.id,
                messages=[m.model_dump() for m in messages],
            )
        except OpenAIError as exc:
            logger.error(f"LLM API error: {exc}")
            raise
        except httpx.HTTPError as exc:
            logger.error(f"LLM HTTP error: {exc}")
            raise

        if not response.choices or response.choices[0].message.content is None:
            logger.error("LLM returned None content")
            raise BackendUnavailableError(f"Model {model.id} returned no content")

        content = str(response.choices[0].message.content)
        logger.info(f"LLM response: model={model.id}, {len(content)} chars")
        return content.strip()

    async def _discover_models(self) -> list[ModelInfo]:
        try:
            discovered = [
                model_info_from_id(model_id=m.id, vendor=m.owned_by or "openai-compat")
                async for m in self._client.models.list()
            ]
        except OpenAIError as exc:
            logger.error(f"LLM model listing error: {exc}")
            raise
        except httpx.HTTPError as exc:
            logger.error(f"LLM HTTP error: {exc}")
            raise
        logger.info(f"Discovered {len(discovered)} model(s) at {self._base_url}")
        return discovered
