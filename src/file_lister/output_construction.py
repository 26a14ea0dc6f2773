from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from file_lister.config import (
    Classification,
    ExclusionSet,
    FormattedBlock,
    OutputDocument,
    SkippedEntry,
    guess_language,
)
from file_lister.exceptions import FileProcessingError
from file_lister.file_manipulation import classify_with_reason, relpath, sniff_mime, walk_files
from file_lister.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from file_lister.file_manipulation import Sniffer

_LABEL_LINE = re.compile(r"^- (?P<label>.*):$")
_FENCE_LINE = re.compile(r"^(?P<fence>`{3,})(?P<lang>[^`]*)$")


def read_text(path: Path) -> str:
    """Read a whole file as strict UTF-8, keeping line endings untouched."""
    with path.open("r", encoding="utf-8", newline="") as f:
        return f.read()


def format_block(path: Path, root: Path) -> FormattedBlock:
    """Read a classified file and wrap it in a block labelled with its relative path.

    Args:
        path (Path): the file to read; already classified as plaintext-like.
        root (Path): the root directory the label is relative to.

    Raises:
        FileProcessingError: if the file can no longer be read or is not valid UTF-8.

    Returns:
        FormattedBlock: the block, content kept verbatim.
    """
    rel = relpath(path, root)
    try:
        content = read_text(path)
    except UnicodeDecodeError as e:
        raise FileProcessingError(path=path, reason=f"not valid UTF-8 ({e.reason})") from e
    except OSError as e:
        raise FileProcessingError(path=path, reason=e.strerror or str(e)) from e
    return FormattedBlock(rel=rel, language=guess_language(path.name), content=content)


@dataclass
class _TreeNode:
    dirs: dict[str, _TreeNode] = field(default_factory=dict)
    files: set[str] = field(default_factory=set)


def build_tree_lines(root_name: str, rel_paths: Sequence[str]) -> list[str]:
    """Build a visual tree representation of file paths.

    Args:
        root_name (str): the name to use for the root of the tree
        rel_paths (Sequence[str]): file paths relative to the root, POSIX separators (e.g. "src/main.py")

    Returns:
        list[str]: a list of strings representing the tree structure, suitable for printing
    """
    tree = _TreeNode()
    for rp in rel_paths:
        rp = rp.strip("/")  # noqa: PLW2901
        if not rp:
            continue
        cur = tree
        parts = rp.split("/")
        for part in parts[:-1]:
            cur = cur.dirs.setdefault(part, _TreeNode())
        cur.files.add(parts[-1])

    lines: list[str] = [root_name]

    def key(name: str) -> tuple[str, str]:
        return (name.lower(), name)

    def walk(node: _TreeNode, prefix: str) -> None:
        entries: list[tuple[str, _TreeNode | None]] = []
        entries.extend((f, None) for f in sorted(node.files, key=key))
        entries.extend((d, node.dirs[d]) for d in sorted(node.dirs, key=key))
        for idx, (name, child) in enumerate(entries):
            last = idx == len(entries) - 1
            branch = "└── " if last else "├── "
            lines.append(prefix + branch + name + ("/" if child is not None else ""))
            if child is not None:
                ext = "    " if last else "│   "
                walk(child, prefix + ext)

    walk(tree, "")
    return lines


def assemble_document(
    root: Path,
    exclusions: ExclusionSet,
    prompt: str | None = None,
    *,
    sniff: Sniffer = sniff_mime,
    include_tree: bool = True,
) -> OutputDocument:
    """Walk `root`, keep the plaintext-like files and assemble them in walk order.

    Per-file problems (binary content, unreadable or vanished files, decoding
    errors) are logged and recorded as skipped entries; they never abort the run.

    Args:
        root (Path): the resolved root directory
        exclusions (ExclusionSet): patterns pruned during the walk
        prompt (str | None): optional prompt appended once at the very end
        sniff (Sniffer): content sniffer used for files without a known extension
        include_tree (bool): render the file tree section

    Returns:
        OutputDocument: blocks in traversal order, tree, prompt and skipped entries
    """
    blocks: list[FormattedBlock] = []
    skipped: list[SkippedEntry] = []
    seen: list[str] = []

    for path in walk_files(root, exclusions):
        rel = relpath(path, root)
        classification, reason = classify_with_reason(path, exclusions, root=root, sniff=sniff)
        if classification is Classification.EXCLUDED:
            continue
        seen.append(rel)
        if not classification.is_plaintext:
            if reason:
                logger.warning("%s is not plaintext, skipping (%s: %s)", rel, classification, reason)
            else:
                logger.warning("%s is not plaintext, skipping (%s)", rel, classification)
            skipped.append(SkippedEntry(rel=rel, classification=classification, reason=reason))
            continue
        try:
            block = format_block(path, root)
        except FileProcessingError as e:
            logger.warning("Skipping %s: %s", rel, e.reason)
            skipped.append(
                SkippedEntry(rel=rel, classification=Classification.UNREADABLE, reason=e.reason),
            )
            continue
        blocks.append(block)

    return OutputDocument(
        tree_lines=build_tree_lines(root.name or str(root), seen) if include_tree else [],
        blocks=blocks,
        prompt=prompt or None,
        skipped=skipped,
        include_tree=include_tree,
    )


def build_document(
    root: Path,
    exclusions: ExclusionSet,
    prompt: str | None = None,
    *,
    sniff: Sniffer = sniff_mime,
    include_tree: bool = True,
) -> str:
    """Build the LLM-friendly document for `root` as a single string."""
    return assemble_document(
        root,
        exclusions,
        prompt,
        sniff=sniff,
        include_tree=include_tree,
    ).render()


def parse_blocks(text: str) -> list[tuple[str, str]]:
    """Extract `(label, content)` pairs back out of a rendered document.

    Only the `### Files:` section is read; blocks are consumed one after the
    other, so content that looks like a label or a heading is never
    mistaken for one.

    Args:
        text (str): a document produced by `build_document`.

    Returns:
        list[tuple[str, str]]: labels and verbatim contents, in document order.
    """
    marker = "### Files:\n"
    if text.startswith(marker):
        pos = len(marker)
    else:
        # the section always follows the blank line closing the tree section
        start = text.find(f"\n\n{marker}")
        if start == -1:
            return []
        pos = start + 2 + len(marker)
    out: list[tuple[str, str]] = []
    while pos < len(text):
        label_end = text.find("\n", pos)
        if label_end == -1:
            break
        label_match = _LABEL_LINE.match(text[pos:label_end])
        fence_end = text.find("\n", label_end + 1)
        if not label_match or fence_end == -1:
            break
        fence_match = _FENCE_LINE.match(text[label_end + 1 : fence_end])
        if not fence_match:
            break
        fence = fence_match.group("fence")
        body_start = fence_end + 1
        # exactly one newline separates the content from the closing fence
        closing = text.find(f"\n{fence}\n", body_start)
        if closing == -1:
            break
        out.append((label_match.group("label"), text[body_start:closing]))
        pos = closing + len(fence) + 2
        if text.startswith("\n- ", pos):
            pos += 1
        else:
            break
    return out
