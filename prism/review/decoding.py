"""
Response Decoder：把模型返回的原始文本解码为结构化 payload。

约定：
- 模型输出不可信：必填字段可能缺失、枚举值可能非法、数值可能越界
- 字段级兜底：缺失/非法的字段用默认值替换，分数一律 clamp 到 [0, 100]
- 整体不是 JSON 对象时不抛错，返回 `DecodeFailure`（保留原文），由调用方决定降级结果

payload 字段沿用模型侧的 camelCase（和 prompt 里的 schema 一致）。
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from pydantic import BaseModel, Field, field_validator

from prism.review.models import CategorySeverity
from prism.review.models import QualityGrade
from prism.review.models import RecommendationPriority
from prism.review.models import RiskLevel
from prism.review.models import Severity

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 50

_FENCE_OPEN_RE = re.compile(r"^```[\w-]*[ \t]*\n?")
_FENCE_CLOSE_RE = re.compile(r"\n?[ \t]*```$")

PayloadT = TypeVar("PayloadT", bound=BaseModel)


@dataclass(frozen=True)
class Decoded(Generic[PayloadT]):
    payload: PayloadT


@dataclass(frozen=True)
class DecodeFailure:
    raw: str
    reason: str


DecodeResult = Union[Decoded[PayloadT], DecodeFailure]


def strip_code_fence(text: str) -> str:
    """去掉包裹整段输出的 markdown 代码块（```json ... ```），没有代码块时原样返回。"""
    cleaned = text.strip()
    if not cleaned.startswith("```"):
        return cleaned
    cleaned = _FENCE_OPEN_RE.sub("", cleaned, count=1)
    cleaned = _FENCE_CLOSE_RE.sub("", cleaned, count=1)
    return cleaned.strip()


def load_json_object(raw: str) -> dict[str, Any]:
    """
    解析模型输出中的 JSON 对象。

    先按整段解析；失败时再尝试截取第一个 `{` 到最后一个 `}` 之间的内容
    （模型偶尔会在 JSON 前后加一句说明）。仍然失败抛 `ValueError`。
    """
    cleaned = strip_code_fence(raw)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("Response does not contain a JSON object") from None
        parsed = json.loads(cleaned[start : end + 1])
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def clamp_score(value: object, default: int = DEFAULT_SCORE) -> int:
    """把任意值转换为 [0, 100] 内的整数；无法转换时返回 default。"""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return int(round(min(100.0, max(0.0, number))))


def _choice(value: object, allowed: tuple[str, ...], default: str, upper: bool = False) -> str:
    if not isinstance(value, str):
        return default
    normalized = value.strip().upper() if upper else value.strip().lower()
    return normalized if normalized in allowed else default


def _text(value: object, default: str = "") -> str:
    if value is None:
        return default
    return value if isinstance(value, str) else str(value)


def _optional_text(value: object) -> str | None:
    if value is None:
        return None
    return _text(value)


def _optional_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError, OverflowError):
        # 1e999 / Infinity 是合法的 JSON 数字，但不是合法行号
        return None


def _dict_items(value: object) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


class SuggestionPayload(BaseModel):
    line: int | None = None
    severity: Severity = "info"
    message: str = ""
    patch: str | None = None
    category: str | None = None

    @field_validator("line", mode="before")
    @classmethod
    def _line(cls, value: object) -> int | None:
        return _optional_int(value)

    @field_validator("severity", mode="before")
    @classmethod
    def _severity(cls, value: object) -> str:
        return _choice(value, ("info", "warning", "error"), "info")

    @field_validator("message", mode="before")
    @classmethod
    def _message(cls, value: object) -> str:
        return _text(value)

    @field_validator("patch", "category", mode="before")
    @classmethod
    def _optional(cls, value: object) -> str | None:
        return _optional_text(value)


class ChunkReviewPayload(BaseModel):
    """chunk 级 review 的模型输出 schema。"""

    summary: str = ""
    riskLevel: RiskLevel = "low"
    suggestions: list[SuggestionPayload] = Field(default_factory=list)

    @field_validator("summary", mode="before")
    @classmethod
    def _summary(cls, value: object) -> str:
        return _text(value)

    @field_validator("riskLevel", mode="before")
    @classmethod
    def _risk_level(cls, value: object) -> str:
        return _choice(value, ("low", "medium", "high"), "low")

    @field_validator("suggestions", mode="before")
    @classmethod
    def _suggestions(cls, value: object) -> list[dict[str, Any]]:
        return _dict_items(value)


class LineRangePayload(BaseModel):
    start: int
    end: int


class CategoryPayload(BaseModel):
    name: str = "Uncategorized"
    score: int = DEFAULT_SCORE
    findings: list[str] = Field(default_factory=list)
    severity: CategorySeverity = "acceptable"

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, value: object) -> str:
        return _text(value).strip() or "Uncategorized"

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, value: object) -> int:
        return clamp_score(value)

    @field_validator("findings", mode="before")
    @classmethod
    def _findings(cls, value: object) -> list[str]:
        if not isinstance(value, list):
            return []
        return [_text(item) for item in value if item is not None]

    @field_validator("severity", mode="before")
    @classmethod
    def _severity(cls, value: object) -> str:
        return _choice(value, ("good", "acceptable", "needs-improvement", "critical"), "acceptable")


class RecommendationPayload(BaseModel):
    priority: RecommendationPriority = "medium"
    title: str = "Recommendation"
    description: str = ""
    filePath: str | None = None
    lineRange: LineRangePayload | None = None

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value: object) -> str:
        return _choice(value, ("low", "medium", "high", "critical"), "medium")

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, value: object) -> str:
        return _text(value).strip() or "Recommendation"

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, value: object) -> str:
        return _text(value)

    @field_validator("filePath", mode="before")
    @classmethod
    def _file_path(cls, value: object) -> str | None:
        return _optional_text(value)

    @field_validator("lineRange", mode="before")
    @classmethod
    def _line_range(cls, value: object) -> dict[str, int] | None:
        if not isinstance(value, dict):
            return None
        start = _optional_int(value.get("start"))
        end = _optional_int(value.get("end"))
        if start is None or end is None:
            return None
        return {"start": min(start, end), "end": max(start, end)}


class DeepAnalysisPayload(BaseModel):
    """submission 级 deep analysis 的模型输出 schema。"""

    overallSummary: str = "Analysis completed."
    complexityScore: int = DEFAULT_SCORE
    qualityGrade: QualityGrade = "C"
    categories: list[CategoryPayload] = Field(default_factory=list)
    recommendations: list[RecommendationPayload] = Field(default_factory=list)

    @field_validator("overallSummary", mode="before")
    @classmethod
    def _summary(cls, value: object) -> str:
        return _text(value).strip() or "Analysis completed."

    @field_validator("complexityScore", mode="before")
    @classmethod
    def _complexity(cls, value: object) -> int:
        return clamp_score(value)

    @field_validator("qualityGrade", mode="before")
    @classmethod
    def _grade(cls, value: object) -> str:
        return _choice(value, ("A", "B", "C", "D", "F"), "C", upper=True)

    @field_validator("categories", "recommendations", mode="before")
    @classmethod
    def _objects(cls, value: object) -> list[dict[str, Any]]:
        return _dict_items(value)


def decode_chunk_review(raw: str) -> DecodeResult[ChunkReviewPayload]:
    return _decode(raw=raw, schema=ChunkReviewPayload)


def decode_deep_analysis(raw: str) -> DecodeResult[DeepAnalysisPayload]:
    return _decode(raw=raw, schema=DeepAnalysisPayload)


def _decode(raw: str, schema: type[PayloadT]) -> DecodeResult[PayloadT]:
    try:
        parsed = load_json_object(raw)
        payload = schema.model_validate(parsed)
    except (ValueError, RecursionError) as exc:
        # pydantic.ValidationError 也是 ValueError；嵌套过深的 JSON 会触发 RecursionError
        logger.warning(f"Could not decode {schema.__name__} from model output: {exc}")
        return DecodeFailure(raw=raw, reason=str(exc))
    return Decoded(payload=payload)
