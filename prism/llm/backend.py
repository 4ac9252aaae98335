"""
文本生成后端（backend）的边界契约。

core 只依赖这里定义的 `TextBackend` 协议：
- `generate(prompt, model_id)`：把 prompt 交给模型，拿回纯文本
- `list_models()` / `select_model(model_id)`：用于选择模型与多模型对比

错误分两类：
- `BackendError` 及其子类：后端不可用 / 调用失败；reviewer 与 deep analysis 会就地降级
- `ModelNotFoundError`：请求的模型 id 不存在，属于使用错误，必须直接报给调用方
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from pydantic import BaseModel

PREFERRED_MODEL_HINTS: tuple[str, ...] = (
    "claude-sonnet-4",
    "claude-3.7-sonnet",
    "gpt-4.1",
    "gpt-4o",
    "o4-mini",
    "o3",
    "o1",
    "claude-3.5-sonnet",
    "gemini-2.5-pro",
    "gemini-2.0-flash",
    "gemini",
)


class ModelInfo(BaseModel):
    """一个可选模型的描述。"""

    id: str
    name: str
    family: str
    vendor: str = "openai-compat"
    max_input_tokens: int = 0


class BackendError(RuntimeError):
    """后端调用失败（网络、鉴权、配额、空响应等）。"""


class BackendUnavailableError(BackendError):
    """没有任何可用模型，或后端没有返回内容。"""


class ModelNotFoundError(ValueError):
    """请求的模型 id 在可用模型中找不到（配置/选择错误）。"""

    def __init__(self, model_id: str, available: Sequence[ModelInfo]) -> None:
        names = ", ".join(m.name for m in available) or "none"
        super().__init__(f'Model "{model_id}" not found. Available: {names}')
        self.model_id = model_id


class TextBackend(Protocol):
    """core 消费的后端能力（实现见 `llm/client.py`，测试里用 fake 替换）。"""

    async def list_models(self) -> list[ModelInfo]: ...

    async def select_model(self, model_id: str | None = None) -> ModelInfo: ...

    async def generate(self, prompt: str, model_id: str | None = None) -> str: ...


def find_model_by_id(models: Sequence[ModelInfo], model_id: str) -> ModelInfo:
    """
    按 id 选模型：先精确匹配 id，再对 "id family name" 做不区分大小写的子串匹配。

    找不到抛 `ModelNotFoundError`。
    """
    for model in models:
        if model.id == model_id:
            return model
    needle = model_id.lower()
    for model in models:
        if needle in _search_text(model):
            return model
    raise ModelNotFoundError(model_id=model_id, available=models)


def pick_preferred_model(models: Sequence[ModelInfo], hints: Sequence[str] = PREFERRED_MODEL_HINTS) -> ModelInfo:
    """
    在没有指定 id 时挑一个默认模型。

    排序：命中越靠前的 hint 越优先 -> max_input_tokens 越大越优先 -> 名称字典序。
    """
    if not models:
        raise BackendUnavailableError("No text-generation models are available")

    def rank(model: ModelInfo) -> tuple[int, int, str]:
        text = _search_text(model)
        hint_rank = next((i for i, hint in enumerate(hints) if hint in text), len(hints))
        return hint_rank, -model.max_input_tokens, model.name.lower()

    return min(models, key=rank)


def _search_text(model: ModelInfo) -> str:
    return f"{model.id} {model.family} {model.name}".lower()
