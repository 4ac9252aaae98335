from __future__ import annotations

from prism.review.diff_parser import parse_diff

MULTI_FILE_DIFF = "\n".join(
    [
        "diff --git a/src/app.py b/src/app.py",
        "index 1111111..2222222 100644",
        "--- a/src/app.py",
        "+++ b/src/app.py",
        "@@ -1,3 +1,4 @@",
        " import os",
        "-import sys",
        "+import json",
        "+import logging",
        " ",
        "@@ -20,2 +21,3 @@ def main():",
        "     run()",
        "+    def helper(x):",
        "+        return x",
        "diff --git a/README.md b/README.md",
        "index 3333333..4444444 100644",
        "--- a/README.md",
        "+++ b/README.md",
        "@@ -5,3 +5,2 @@",
        " Intro",
        "-Old paragraph",
        " Outro",
        "",
    ]
)


def test_parse_empty_and_whitespace_input() -> None:
    assert parse_diff(diff="") == []
    assert parse_diff(diff="   ") == []
    assert parse_diff(diff="\n\n") == []


def test_parse_multi_file_diff_in_discovery_order() -> None:
    chunks = parse_diff(diff=MULTI_FILE_DIFF)
    assert [(c.file_path, c.start_line, c.end_line) for c in chunks] == [
        ("src/app.py", 1, 5),
        ("src/app.py", 21, 23),
        ("README.md", 5, 7),
    ]
    assert [c.kind for c in chunks] == ["modification", "addition", "deletion"]


def test_line_range_matches_stored_text() -> None:
    for chunk in parse_diff(diff=MULTI_FILE_DIFF):
        assert chunk.end_line - chunk.start_line + 1 == len(chunk.content.splitlines())


def test_file_markers_are_not_part_of_hunks() -> None:
    chunks = parse_diff(diff=MULTI_FILE_DIFF)
    for chunk in chunks:
        assert "+++ b/" not in chunk.content
        assert "--- a/" not in chunk.content
        assert not chunk.content.startswith("index ")


def test_metadata_flags() -> None:
    first, second, third = parse_diff(diff=MULTI_FILE_DIFF)
    assert first.metadata.contains_import_change is True
    assert first.metadata.contains_function is False
    assert second.metadata.contains_function is True
    assert second.metadata.contains_import_change is False
    assert third.metadata.contains_security_keyword is False


def test_security_keyword_flag_is_case_insensitive() -> None:
    diff = "\n".join(
        [
            "diff --git a/src/session.ts b/src/session.ts",
            "@@ -1,1 +1,2 @@",
            " const a = 1;",
            "+const header = getJWT(Token);",
        ]
    )
    (chunk,) = parse_diff(diff=diff)
    assert chunk.metadata.contains_security_keyword is True


def test_binary_diff_is_skipped() -> None:
    diff = "\n".join(
        [
            "diff --git a/logo.png b/logo.png",
            "index 5555555..6666666 100644",
            "Binary files a/logo.png and b/logo.png differ",
            "diff --git a/src/a.py b/src/a.py",
            "@@ -1 +1 @@",
            "-x = 1",
            "+x = 2",
        ]
    )
    chunks = parse_diff(diff=diff)
    assert [c.file_path for c in chunks] == ["src/a.py"]
    assert chunks[0].start_line == 1
    assert chunks[0].end_line == 2


def test_destination_path_is_used_for_renames() -> None:
    diff = "\n".join(
        [
            "diff --git a/old/name.py b/new/name.py",
            "similarity index 90%",
            "rename from old/name.py",
            "rename to new/name.py",
            "@@ -3,1 +3,1 @@",
            "-a = 1",
            "+a = 2",
        ]
    )
    (chunk,) = parse_diff(diff=diff)
    assert chunk.file_path == "new/name.py"


def test_header_less_patch_requires_path() -> None:
    patch = "\n".join(["@@ -1,2 +1,3 @@", " a", "+b", " c"])
    assert parse_diff(diff=patch) == []
    (chunk,) = parse_diff(diff=patch, path="lib/util.py")
    assert chunk.file_path == "lib/util.py"
    assert chunk.kind == "addition"
    assert chunk.chunk_id == "lib/util.py:1-3"


def test_deleted_file_hunk_starting_at_zero() -> None:
    diff = "\n".join(
        [
            "diff --git a/gone.py b/gone.py",
            "deleted file mode 100644",
            "--- a/gone.py",
            "+++ /dev/null",
            "@@ -1,2 +0,0 @@",
            "-a = 1",
            "-b = 2",
        ]
    )
    (chunk,) = parse_diff(diff=diff)
    assert chunk.kind == "deletion"
    assert chunk.start_line == 0
    assert chunk.end_line == 1
