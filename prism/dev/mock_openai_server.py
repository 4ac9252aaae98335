"""
本地 Mock OpenAI-compatible LLM server。

用途：
- 在没有真实 LLM 网关的情况下，本地跑通闭环（chunk review / deep analysis 的 JSON 输出）
- 同时提供 `/v1/models`，便于测试模型自动发现与多模型对比

启动：
  python -m prism.dev.mock_openai_server
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence

import uvicorn
from fastapi import FastAPI
from pydantic import BaseModel, Field

from prism.llm.client import ChatMessage
from prism.review.prompts import ANALYSIS_CATEGORIES

MOCK_MODELS: tuple[str, ...] = ("mock-gpt-4o", "mock-claude-sonnet-4")

_LINES_RE = re.compile(r"^## Lines: (\d+)-(\d+)$", re.MULTILINE)
_FILE_RE = re.compile(r"^## File: (.+)$", re.MULTILINE)


class ChatCompletionRequest(BaseModel):
    model: str
    messages: list[ChatMessage] = Field(default_factory=list)


def _build_mock_chunk_review_json(prompt: str) -> str:
    lines = _LINES_RE.search(prompt)
    start_line = int(lines.group(1)) if lines else 1
    file_match = _FILE_RE.search(prompt)
    path = file_match.group(1).strip() if file_match else "unknown"
    return json.dumps(
        {
            "summary": f"[MOCK] Reviewed change in {path}",
            "riskLevel": "medium",
            "suggestions": [
                {
                    "line": start_line,
                    "severity": "warning",
                    "message": "[MOCK] Add stricter error handling and boundary checks, and cover the new logic with unit tests.",
                }
            ],
        }
    )


def _build_mock_deep_analysis_json() -> str:
    return json.dumps(
        {
            "overallSummary": "[MOCK] This change set is moderately complex and mostly well structured.",
            "complexityScore": 42,
            "qualityGrade": "B",
            "categories": [
                {"name": name, "score": 70, "findings": [f"[MOCK] {name} looks reasonable"], "severity": "acceptable"}
                for name in ANALYSIS_CATEGORIES
            ],
            "recommendations": [
                {
                    "priority": "medium",
                    "title": "[MOCK] Add tests",
                    "description": "[MOCK] Cover the changed code paths with unit tests.",
                }
            ],
        }
    )


def _decide_mock_response(messages: Sequence[ChatMessage]) -> str:
    user_texts = [m.content for m in messages if m.role == "user"]
    if not user_texts:
        raise ValueError("Mock server expects at least one user message")
    prompt = "\n".join(user_texts)

    if '"overallSummary"' in prompt:
        return _build_mock_deep_analysis_json()

    if '"suggestions"' in prompt and "## File:" in prompt:
        return _build_mock_chunk_review_json(prompt=prompt)

    # 兜底：自由文本（submission summary 等）
    return "## Summary\n\n[MOCK] No significant issues found."


app = FastAPI(title="Mock OpenAI-compatible LLM", version="0.1.0")


@app.get("/v1/models")
async def list_models() -> dict[str, object]:
    return {
        "object": "list",
        "data": [{"id": m, "object": "model", "created": 0, "owned_by": "mock"} for m in MOCK_MODELS],
    }


@app.post("/v1/chat/completions")
async def chat_completions(req: ChatCompletionRequest) -> dict[str, object]:
    content = _decide_mock_response(messages=req.messages)
    return {
        "id": "chatcmpl-mock",
        "object": "chat.completion",
        "created": 0,
        "model": req.model,
        "choices": [{"index": 0, "finish_reason": "stop", "message": {"role": "assistant", "content": content}}],
    }


def main() -> None:
    uvicorn.run(app, host="127.0.0.1", port=9001)


if __name__ == "__main__":
    main()
