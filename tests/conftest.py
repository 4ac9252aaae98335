from __future__ import annotations

from collections.abc import Callable

import pytest

from prism.llm.backend import BackendUnavailableError
from prism.llm.backend import ModelInfo
from prism.llm.backend import find_model_by_id
from prism.llm.backend import pick_preferred_model


class ScriptedBackend:
    """
    内存 fake backend：按模型 id 返回预设文本或抛预设异常，并记录每次调用。

    - responses: model_id -> 返回文本（所有调用相同）
    - failures: model_id -> 调用时抛出的异常
    """

    def __init__(
        self,
        responses: dict[str, str] | None = None,
        failures: dict[str, Exception] | None = None,
        model_ids: list[str] | None = None,
    ) -> None:
        self.responses = responses or {}
        self.failures = failures or {}
        ids = model_ids if model_ids is not None else sorted(set(self.responses) | set(self.failures))
        self.models = [ModelInfo(id=m, name=m, family=m) for m in ids]
        self.prompts: list[tuple[str, str]] = []

    async def list_models(self) -> list[ModelInfo]:
        return list(self.models)

    async def select_model(self, model_id: str | None = None) -> ModelInfo:
        if model_id:
            return find_model_by_id(models=self.models, model_id=model_id)
        if not self.models:
            raise BackendUnavailableError("No text-generation models are available")
        return pick_preferred_model(models=self.models)

    async def generate(self, prompt: str, model_id: str | None = None) -> str:
        model = await self.select_model(model_id=model_id)
        self.prompts.append((model.id, prompt))
        if model.id in self.failures:
            raise self.failures[model.id]
        return self.responses[model.id]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def make_backend() -> Callable[..., ScriptedBackend]:
    return ScriptedBackend
