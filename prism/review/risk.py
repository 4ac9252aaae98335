"""
Risk Scorer（非 AI）。

职责：
- 按文件聚合 chunks，用一组独立的启发式规则打分（0~100）
- 每条命中的规则贡献固定分值并附带一条可读原因
- 输出按分数降序；同分保持文件首次出现的顺序（稳定排序）

这是一个非常“工程”的步骤：不需要 LLM，且必须确定性。
"""

from __future__ import annotations

import re
from collections.abc import Callable

from prism.review.diff_parser import SECURITY_KEYWORD_RE
from prism.review.diff_parser import count_removed_lines
from prism.review.models import ChangeUnit
from prism.review.models import RiskLevel
from prism.review.models import RiskReport

NO_RISK_REASON = "No significant risk factors identified"

HIGH_RISK_THRESHOLD = 60
MEDIUM_RISK_THRESHOLD = 30

_AUTH_DIR_RE = re.compile(r"(?:^|/)(?:auth|authentication|authorization|login|oauth)/", re.IGNORECASE)
_SENSITIVE_FILE_RE = re.compile(r"\.(?:env|secret|key|pem|cert)(?:\.|$)", re.IGNORECASE)
_MIDDLEWARE_RE = re.compile(r"(?:^|/)(?:middleware|interceptor)/", re.IGNORECASE)
_DEPENDENCY_MANIFEST_RE = re.compile(
    r"(?:^|/)(?:package\.json|package-lock\.json|yarn\.lock|pnpm-lock\.yaml|requirements[^/]*\.txt"
    r"|Pipfile(?:\.lock)?|poetry\.lock|pyproject\.toml|Gemfile(?:\.lock)?|go\.mod|go\.sum|pom\.xml"
    r"|build\.gradle(?:\.kts)?|Cargo\.(?:toml|lock))$",
    re.IGNORECASE,
)
_SCHEMA_DIR_RE = re.compile(r"(?:^|/)(?:migrations?|schema|model)/", re.IGNORECASE)
_SCHEMA_EXT_RE = re.compile(r"\.(?:sql|prisma|graphql|gql)$", re.IGNORECASE)

FileRule = Callable[[str, list[ChangeUnit]], tuple[int, str] | None]


def analyze_risk(chunks: list[ChangeUnit]) -> list[RiskReport]:
    """
    对一次 review session 的所有 chunks 做文件级风险评估。

    - 输入：parser 输出的 chunks（可以跨多个文件）
    - 输出：每个文件一条 `RiskReport`，按 score 降序
    """
    by_path: dict[str, list[ChangeUnit]] = {}
    for chunk in chunks:
        by_path.setdefault(chunk.file_path, []).append(chunk)

    reports = [_score_file(file_path=path, file_chunks=file_chunks) for path, file_chunks in by_path.items()]
    # sorted 是稳定排序：同分保持分组顺序
    return sorted(reports, key=lambda r: r.score, reverse=True)


def risk_level_for_score(score: int) -> RiskLevel:
    if score >= HIGH_RISK_THRESHOLD:
        return "high"
    if score >= MEDIUM_RISK_THRESHOLD:
        return "medium"
    return "low"


def _score_file(file_path: str, file_chunks: list[ChangeUnit]) -> RiskReport:
    score = 0
    reasons: list[str] = []
    for rule in _RULES:
        hit = rule(file_path, file_chunks)
        if hit is None:
            continue
        points, reason = hit
        score += points
        reasons.append(reason)

    score = min(score, 100)
    if not reasons:
        reasons.append(NO_RISK_REASON)
    return RiskReport(file_path=file_path, score=score, level=risk_level_for_score(score), reasons=reasons)


def _auth_directory_rule(file_path: str, file_chunks: list[ChangeUnit]) -> tuple[int, str] | None:
    if _AUTH_DIR_RE.search(file_path):
        return 30, "File is in an authentication/authorization directory"
    return None


def _sensitive_file_rule(file_path: str, file_chunks: list[ChangeUnit]) -> tuple[int, str] | None:
    if _SENSITIVE_FILE_RE.search(file_path):
        return 25, "File may contain sensitive credentials or certificates"
    return None


def _middleware_rule(file_path: str, file_chunks: list[ChangeUnit]) -> tuple[int, str] | None:
    if _MIDDLEWARE_RE.search(file_path):
        return 20, "File is middleware; changes may affect the request/response pipeline"
    return None


def _dependency_manifest_rule(file_path: str, file_chunks: list[ChangeUnit]) -> tuple[int, str] | None:
    if _DEPENDENCY_MANIFEST_RE.search(file_path):
        return 20, "Dependency file changed (supply chain risk)"
    return None


def _schema_rule(file_path: str, file_chunks: list[ChangeUnit]) -> tuple[int, str] | None:
    if _SCHEMA_DIR_RE.search(file_path) or _SCHEMA_EXT_RE.search(file_path):
        return 15, "Schema or migration change detected"
    return None


def _security_keyword_rule(file_path: str, file_chunks: list[ChangeUnit]) -> tuple[int, str] | None:
    all_content = "\n".join(c.content for c in file_chunks)
    count = len(SECURITY_KEYWORD_RE.findall(all_content))
    if count > 0:
        return min(5 * count, 20), f"Contains {count} security-related keyword(s)"
    return None


def _deletion_rule(file_path: str, file_chunks: list[ChangeUnit]) -> tuple[int, str] | None:
    removed = sum(count_removed_lines(c.content) for c in file_chunks)
    if removed > 50:
        return 15, f"Large deletion: {removed} lines removed"
    if removed > 20:
        return 8, f"Notable deletion: {removed} lines removed"
    return None


def _import_churn_rule(file_path: str, file_chunks: list[ChangeUnit]) -> tuple[int, str] | None:
    count = sum(1 for c in file_chunks if c.metadata.contains_import_change)
    if count > 0:
        return min(3 * count, 10), f"{count} chunk(s) contain import/dependency changes"
    return None


def _function_churn_rule(file_path: str, file_chunks: list[ChangeUnit]) -> tuple[int, str] | None:
    count = sum(1 for c in file_chunks if c.metadata.contains_function)
    if count > 3:
        return 10, f"{count} function-level changes detected"
    return None


_RULES: tuple[FileRule, ...] = (
    _auth_directory_rule,
    _sensitive_file_rule,
    _middleware_rule,
    _dependency_manifest_rule,
    _schema_rule,
    _security_keyword_rule,
    _deletion_rule,
    _import_churn_rule,
    _function_churn_rule,
)
