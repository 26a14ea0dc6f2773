from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from file_lister import file_manipulation, output_construction
from file_lister.config import Classification, ExclusionSet
from file_lister.exceptions import FileProcessingError
from file_lister.output_construction import (
    assemble_document,
    build_document,
    build_tree_lines,
    format_block,
    parse_blocks,
)

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


@pytest.mark.unit
def test_format_block_labels_with_relative_path(tmp_path: Path) -> None:
    py_file = tmp_path / "src" / "app.py"
    py_file.parent.mkdir()
    py_file.write_text("print('ok')\r\n", encoding="utf-8")

    block = format_block(py_file, tmp_path)

    assert block.rel == "src/app.py"
    assert block.language == "python"
    assert block.content == "print('ok')\r\n"


@pytest.mark.unit
def test_format_block_rejects_invalid_utf8(tmp_path: Path) -> None:
    latin = tmp_path / "latin1.txt"
    latin.write_bytes("café".encode("latin-1"))

    with pytest.raises(FileProcessingError, match="not valid UTF-8"):
        format_block(latin, tmp_path)


@pytest.mark.unit
def test_format_block_reports_vanished_file(tmp_path: Path) -> None:
    with pytest.raises(FileProcessingError, match="gone.txt"):
        format_block(tmp_path / "gone.txt", tmp_path)


@pytest.mark.unit
def test_build_tree_lines_lists_files_before_directories() -> None:
    lines = build_tree_lines("project", ["src/app.py", "a.txt", "src/lib/util.py", "b.json"])

    assert lines == [
        "project",
        "├── a.txt",
        "├── b.json",
        "└── src/",
        "    ├── app.py",
        "    └── lib/",
        "        └── util.py",
    ]


@pytest.mark.unit
def test_build_document_scenario_with_exclusion(sample_tree: Path) -> None:
    text = build_document(sample_tree, ExclusionSet.parse("skip"))

    assert parse_blocks(text) == [("a.txt", "hello"), ("b.json", '{"k":1}')]
    assert "secret" not in text
    assert "skip" not in text
    assert "```json\n" in text
    assert "### Prompt:" not in text


@pytest.mark.unit
def test_build_document_tree_lists_binary_but_not_excluded(sample_tree: Path) -> None:
    text = build_document(sample_tree, ExclusionSet.parse("skip"))

    tree = text.split("### Files:")[0]
    assert tree == "### File Tree:\nproject\n├── a.txt\n├── b.json\n└── c.bin\n\n"


@pytest.mark.unit
def test_assemble_document_records_skipped_entries(
    sample_tree: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    doc = assemble_document(sample_tree, ExclusionSet.parse("skip"))

    assert [b.rel for b in doc.blocks] == ["a.txt", "b.json"]
    assert [(s.rel, s.classification) for s in doc.skipped] == [("c.bin", Classification.BINARY)]
    assert "c.bin is not plaintext" in caplog.text


@pytest.mark.unit
def test_prompt_is_appended_once_after_all_blocks(sample_tree: Path) -> None:
    text = build_document(sample_tree, ExclusionSet(), "Summarize this.")

    assert text.count("### Prompt:") == 1
    assert text.endswith("\n### Prompt:\nSummarize this.\n")
    prompt_at = text.index("### Prompt:")
    for label, _content in parse_blocks(text):
        assert text.index(f"- {label}:") < prompt_at


@pytest.mark.unit
def test_empty_prompt_is_ignored(sample_tree: Path) -> None:
    assert "### Prompt:" not in build_document(sample_tree, ExclusionSet(), "")


@pytest.mark.unit
def test_build_document_without_tree(sample_tree: Path) -> None:
    text = build_document(sample_tree, ExclusionSet.parse("skip"), include_tree=False)

    assert text.startswith("### Files:\n- a.txt:\n")
    assert "### File Tree:" not in text


@pytest.mark.unit
def test_build_document_is_idempotent(sample_tree: Path) -> None:
    first = build_document(sample_tree, ExclusionSet.parse("skip"), "p")
    second = build_document(sample_tree, ExclusionSet.parse("skip"), "p")

    assert first == second


@pytest.mark.unit
def test_file_unreadable_after_classification_is_skipped(
    sample_tree: Path,
    mocker: MockerFixture,
    caplog: pytest.LogCaptureFixture,
) -> None:
    real_read_text = output_construction.read_text

    def revoked(path: Path) -> str:
        if path.name == "b.json":
            raise PermissionError(13, "Permission denied", str(path))
        return real_read_text(path)

    mocker.patch.object(output_construction, "read_text", side_effect=revoked)

    doc = assemble_document(sample_tree, ExclusionSet.parse("skip"))

    assert [b.rel for b in doc.blocks] == ["a.txt"]
    assert ("b.json", Classification.UNREADABLE) in [(s.rel, s.classification) for s in doc.skipped]
    assert "Skipping b.json: Permission denied" in caplog.text
    assert '{"k":1}' not in doc.render()


@pytest.mark.unit
def test_round_trip_labels_resolve_to_verbatim_content(tmp_path: Path) -> None:
    files = {
        "README.md": "# Title\n\n```python\nprint('nested fence')\n```\n",
        "empty.txt": "",
        "trailing.txt": "line\n\n",
        "ticks.txt": "``",
        "docs/notes.txt": "- fake.txt:\n```\nnot a block\n```\n",
        "docs/heading.txt": "### Prompt:\nnot the prompt\n",
    }
    for rel, content in files.items():
        p = tmp_path / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8", newline="")

    text = build_document(tmp_path, ExclusionSet(), "Final prompt")
    blocks = parse_blocks(text)

    assert sorted(label for label, _ in blocks) == sorted(files)
    for label, content in blocks:
        assert (tmp_path / label).read_bytes().decode("utf-8") == content


@pytest.mark.unit
def test_parse_blocks_without_files_section() -> None:
    assert parse_blocks("nothing to see") == []


@pytest.mark.unit
def test_directory_named_like_a_tree_key_is_listed(tmp_path: Path) -> None:
    (tmp_path / "__files__").mkdir()
    (tmp_path / "__files__" / "y.txt").write_text("inner", encoding="utf-8")
    (tmp_path / "x.txt").write_text("outer", encoding="utf-8")

    text = build_document(tmp_path, ExclusionSet())

    assert build_tree_lines("root", ["x.txt", "__files__/y.txt"]) == [
        "root",
        "├── x.txt",
        "└── __files__/",
        "    └── y.txt",
    ]
    assert parse_blocks(text) == [("x.txt", "outer"), ("__files__/y.txt", "inner")]


@pytest.mark.unit
def test_parse_blocks_ignores_section_header_inside_tree(tmp_path: Path) -> None:
    (tmp_path / "### Files:").write_text("x", encoding="utf-8")
    (tmp_path / "a.txt").write_text("hello", encoding="utf-8")

    text = build_document(tmp_path, ExclusionSet())

    assert "├── ### Files:\n" in text
    assert parse_blocks(text) == [("### Files:", "x"), ("a.txt", "hello")]


@pytest.mark.unit
def test_unreadable_file_reason_is_recorded(
    sample_tree: Path,
    mocker: MockerFixture,
    caplog: pytest.LogCaptureFixture,
) -> None:
    mocker.patch.object(
        file_manipulation,
        "read_prefix",
        side_effect=PermissionError(13, "Permission denied"),
    )

    doc = assemble_document(sample_tree, ExclusionSet.parse("skip"))

    assert [(s.rel, s.classification, s.reason) for s in doc.skipped] == [
        ("c.bin", Classification.UNREADABLE, "Permission denied"),
    ]
    assert "c.bin is not plaintext, skipping (unreadable: Permission denied)" in caplog.text
