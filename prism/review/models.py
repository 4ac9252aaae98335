"""
Review 领域模型（Pydantic）。

用途：
- 明确各阶段输入/输出的数据结构（parser -> risk -> reviewer -> deep analysis）
- 所有对象都是值对象：在一次 review/analysis 调用内创建与消费，不共享可变状态

LLM 输出的 JSON schema 不在这里（见 `review/decoding.py`），
这里只放解码、兜底之后的“干净”结果。
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ChangeKind = Literal["addition", "deletion", "modification"]
RiskLevel = Literal["low", "medium", "high"]
Severity = Literal["info", "warning", "error"]
FileStatus = Literal["added", "modified", "deleted", "renamed"]
TestCoverage = Literal["none", "partial", "good", "excellent"]
QualityGrade = Literal["A", "B", "C", "D", "F"]
CategorySeverity = Literal["good", "acceptable", "needs-improvement", "critical"]
RecommendationPriority = Literal["low", "medium", "high", "critical"]


class ReviewMode(str, Enum):
    """review 的关注方向；每个 mode 对应一段固定的 prompt 指令（见 `review/prompts.py`）。"""

    SECURITY = "security"
    PERFORMANCE = "performance"
    CLEAN_CODE = "clean-code"
    ARCHITECTURE = "architecture"
    TEST_COVERAGE = "test-coverage"
    GENERAL = "general"


class ChunkMetadata(BaseModel):
    """parser 在 hunk 文本上推断出的语义标记。"""

    model_config = ConfigDict(frozen=True)

    contains_function: bool
    contains_import_change: bool
    contains_security_keyword: bool


class ChangeUnit(BaseModel):
    """
    一个 hunk（`@@ ... @@` 开始的连续变更区域）。

    不变量：`end_line == start_line + len(content.splitlines()) - 1`（行号按新文件计）。
    """

    model_config = ConfigDict(frozen=True)

    file_path: str
    kind: ChangeKind
    start_line: int
    end_line: int
    content: str
    metadata: ChunkMetadata

    @property
    def chunk_id(self) -> str:
        return f"{self.file_path}:{self.start_line}-{self.end_line}"

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1


class ChangedFile(BaseModel):
    """单个变更文件的元信息（增删行数 + 状态），只用于 deep analysis 的指标计算。"""

    path: str
    status: FileStatus = "modified"
    additions: int = Field(default=0, ge=0)
    deletions: int = Field(default=0, ge=0)


class FileDiff(ChangedFile):
    """带 diff 文本的变更文件（HTTP 层与 session pipeline 的输入）。"""

    diff: str = ""


class RiskReport(BaseModel):
    """单个文件的风险评估（纯规则，不依赖 AI）。"""

    file_path: str
    score: int = Field(ge=0, le=100)
    level: RiskLevel
    reasons: list[str] = Field(min_length=1)


class ReviewSuggestion(BaseModel):
    """针对某个 chunk 的单条建议。"""

    line: int
    severity: Severity
    message: str
    patch: str | None = None
    category: str | None = None


class ReviewResult(BaseModel):
    """
    单个 chunk 在单个模型上的 review 结果。

    无论模型不可用还是输出无法解析，都会产出一个结果对象（见 `review/reviewer.py`）。
    """

    chunk_id: str
    file_path: str
    start_line: int
    end_line: int
    mode: ReviewMode
    suggestions: list[ReviewSuggestion] = Field(default_factory=list)
    summary: str
    risk_level: RiskLevel
    model_used: str


class SubmissionMetrics(BaseModel):
    """整个提交（PR/MR）的确定性指标。"""

    total_files_changed: int
    total_additions: int
    total_deletions: int
    avg_complexity_per_file: int
    hotspot_files: list[str] = Field(default_factory=list, max_length=5)
    test_coverage: TestCoverage


class AnalysisCategory(BaseModel):
    name: str
    score: int = Field(ge=0, le=100)
    findings: list[str] = Field(default_factory=list)
    severity: CategorySeverity


class LineRange(BaseModel):
    start: int
    end: int


class Recommendation(BaseModel):
    priority: RecommendationPriority
    title: str
    description: str
    file_path: str | None = None
    line_range: LineRange | None = None


class DeepAnalysisReport(BaseModel):
    """
    一次提交在单个模型上的深度分析报告。

    数值字段在解码阶段已经 clamp 到声明范围内；这里的 Field 约束是第二道保险。
    """

    submission_id: str
    overall_summary: str
    complexity_score: int = Field(ge=0, le=100)
    quality_grade: QualityGrade
    categories: list[AnalysisCategory] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    metrics: SubmissionMetrics
    model_used: str


class ModelReviewEntry(BaseModel):
    """多模型逐 chunk 对比中，某一个模型的全部结果。"""

    model_name: str
    results: list[ReviewResult] = Field(default_factory=list)
    analysis_time_ms: int


class SubmissionReview(BaseModel):
    """一次完整 review session 的输出：chunks（发现顺序）+ 逐 chunk 结果 + 文件风险排序。"""

    submission_id: str
    mode: ReviewMode
    chunks: list[ChangeUnit] = Field(default_factory=list)
    results: list[ReviewResult] = Field(default_factory=list)
    risk_reports: list[RiskReport] = Field(default_factory=list)
