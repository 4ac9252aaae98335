"""
Diff Parser（非 AI，纯函数）。

把 unified diff 文本切成有序的 `ChangeUnit` 列表：
- 按 `diff --git a/<old> b/<new>` 切文件块，取目标路径
- 每个 `@@ -a,b +c,d @@` 开启一个新 hunk，锚定在新文件起始行 c
- 第一个 hunk 之前的行（mode、index、`---`/`+++`）全部丢弃
- 没有 hunk 的文件块（二进制 diff 等）直接跳过，不报错

GitHub/GitLab API 返回的单文件 patch 没有 `diff --git` 头，
这种输入需要调用方通过 `path` 指定文件路径。
"""

from __future__ import annotations

import re
from collections.abc import Iterator

from prism.review.models import ChangeKind
from prism.review.models import ChangeUnit
from prism.review.models import ChunkMetadata

SECURITY_KEYWORDS: tuple[str, ...] = (
    "auth",
    "token",
    "password",
    "credential",
    "secret",
    "jwt",
    "oauth",
    "session",
    "login",
    "logout",
)

SECURITY_KEYWORD_RE = re.compile(r"\b(?:" + "|".join(SECURITY_KEYWORDS) + r")\b", re.IGNORECASE)

_FILE_HEADER_RE = re.compile(r"^diff --git ", re.MULTILINE)
_HEADER_PATHS_RE = re.compile(r'^"?a/(.+?)"? "?b/(.+?)"?$')
_NEW_FILE_MARKER_RE = re.compile(r"^\+\+\+ b/(.+)$")
_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,\d+)? \+(\d+)(?:,\d+)? @@")

_FUNCTION_RE = re.compile(r"\bfunction\b|\bdef\s|\bfunc\s|\bfn\s|\bclass\s|\blambda\b|=>")
_IMPORT_RE = re.compile(r"^[+-]\s*(?:import|from|require|include|using|#\s*include)\b", re.MULTILINE)


def parse_diff(diff: str, path: str | None = None) -> list[ChangeUnit]:
    """
    解析 unified diff。

    - 输入：完整的多文件 diff；或单文件 patch（此时必须传 `path`）
    - 输出：按“文件顺序 -> hunk 顺序”排列的 chunks
    - 空输入/纯空白输入返回空列表
    """
    if not diff or not diff.strip():
        return []

    chunks: list[ChangeUnit] = []
    for file_path, lines in _iter_file_blocks(diff=diff, path=path):
        for start_line, hunk_lines in _iter_hunks(lines=lines):
            chunks.append(_build_chunk(file_path=file_path, start_line=start_line, lines=hunk_lines))
    return chunks


def is_added_line(line: str) -> bool:
    return line.startswith("+") and not line.startswith("+++")


def is_removed_line(line: str) -> bool:
    return line.startswith("-") and not line.startswith("---")


def count_removed_lines(content: str) -> int:
    return sum(1 for line in content.splitlines() if is_removed_line(line))


def _iter_file_blocks(diff: str, path: str | None) -> Iterator[tuple[str, list[str]]]:
    if not _FILE_HEADER_RE.search(diff):
        # 单文件 patch：没有文件头，只能依赖调用方给出的路径
        if path:
            yield path, diff.splitlines()
        return

    # split 后第一个元素是首个文件头之前的内容（通常为空或 commit 信息），丢弃
    for block in _FILE_HEADER_RE.split(diff)[1:]:
        lines = block.splitlines()
        if not lines:
            continue
        file_path = _extract_destination_path(lines=lines)
        if file_path is None:
            continue
        yield file_path, lines[1:]


def _extract_destination_path(lines: list[str]) -> str | None:
    """从 `a/<old> b/<new>` 头里取目标路径；头解析不了时退回到 `+++ b/<path>` 行。"""
    match = _HEADER_PATHS_RE.match(lines[0].strip())
    if match:
        return match.group(2).strip()
    for line in lines[1:]:
        if line.startswith("@@"):
            break
        marker = _NEW_FILE_MARKER_RE.match(line)
        if marker:
            return marker.group(1).strip()
    return None


def _iter_hunks(lines: list[str]) -> Iterator[tuple[int, list[str]]]:
    start_line: int | None = None
    current: list[str] = []
    for line in lines:
        header = _HUNK_HEADER_RE.match(line)
        if header:
            if start_line is not None:
                yield from _closed_hunk(start_line=start_line, lines=current)
            start_line = int(header.group(2))
            current = []
            continue
        if start_line is not None:
            current.append(line)
    if start_line is not None:
        yield from _closed_hunk(start_line=start_line, lines=current)


def _closed_hunk(start_line: int, lines: list[str]) -> Iterator[tuple[int, list[str]]]:
    # 文件块之间的空行不属于 hunk
    while lines and not lines[-1]:
        lines = lines[:-1]
    if lines:
        yield start_line, lines


def _build_chunk(file_path: str, start_line: int, lines: list[str]) -> ChangeUnit:
    content = "\n".join(lines)
    return ChangeUnit(
        file_path=file_path,
        kind=_classify(lines=lines),
        start_line=start_line,
        end_line=start_line + len(lines) - 1,
        content=content,
        metadata=ChunkMetadata(
            contains_function=bool(_FUNCTION_RE.search(content)),
            contains_import_change=bool(_IMPORT_RE.search(content)),
            contains_security_keyword=bool(SECURITY_KEYWORD_RE.search(content)),
        ),
    )


def _classify(lines: list[str]) -> ChangeKind:
    has_additions = any(is_added_line(line) for line in lines)
    has_deletions = any(is_removed_line(line) for line in lines)
    if has_additions and has_deletions:
        return "modification"
    if has_additions:
        return "addition"
    return "deletion"
