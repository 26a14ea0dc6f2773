from __future__ import annotations

import fnmatch
import re
from enum import StrEnum, auto
from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from file_lister.exceptions import MalformedExclusionPatternError

SNIFF_BYTES = 4096


class Classification(StrEnum):
    """Outcome of classifying a candidate path.

    Only the first three members let a file contribute to the output document.
    `BINARY` and `UNREADABLE` are both skipped; they are kept apart so the
    logs can tell a binary file from one that could not be opened.
    """

    PLAINTEXT_EXTENSION = auto()
    JSON_FILE = auto()
    MIME_TEXT_PLAIN = auto()
    EXCLUDED = auto()
    BINARY = auto()
    UNREADABLE = auto()

    @property
    def is_plaintext(self) -> bool:
        return self in {
            Classification.PLAINTEXT_EXTENSION,
            Classification.JSON_FILE,
            Classification.MIME_TEXT_PLAIN,
        }


# extension -> code fence language; an empty language still means "plaintext"
EXT2LANG: dict[str, str] = {
    # web development
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".json": "json",
    ".html": "html",
    ".htm": "html",
    ".css": "css",
    ".scss": "scss",
    ".sass": "scss",
    # template files
    ".twig": "twig",
    ".ejs": "ejs",
    ".hbs": "handlebars",
    ".vue": "vue",
    ".svelte": "svelte",
    # config files
    ".yml": "yaml",
    ".yaml": "yaml",
    ".toml": "toml",
    ".ini": "ini",
    ".env": "dotenv",
    # documentation
    ".md": "markdown",
    ".markdown": "markdown",
    ".txt": "",
    ".rst": "restructuredtext",
    # other programming languages
    ".py": "python",
    ".rb": "ruby",
    ".php": "php",
    ".java": "java",
    ".go": "go",
    ".rs": "rust",
    ".c": "c",
    ".cpp": "cpp",
    ".h": "cpp",
    ".hpp": "cpp",
    ".sh": "bash",
    ".bash": "bash",
}

PLAIN_TEXT_EXTENSIONS = frozenset(EXT2LANG)

COMPOUND_PLAIN_TEXT_SUFFIXES = (".html.twig",)

TEXTLIKE_MIME_TYPES = frozenset({"application/json"})

DEFAULT_EXCLUDES = (
    ".git",
    ".hg",
    ".svn",
    ".venv",
    "venv",
    "__pycache__",
    ".mypy_cache",
    ".ruff_cache",
    ".pytest_cache",
    ".ipynb_checkpoints",
    "node_modules",
    "target",
    ".DS_Store",
    ".idea",
    ".vscode",
)

_GLOB_CHARS = re.compile(r"[*?\[]")


def guess_language(name: str) -> str:
    """Get the suggested code fence language for a file name.

    Args:
        name (str): the file name (or relative path) to look up.

    Returns:
        str: the language tag, or an empty string if the extension is unknown.
    """
    return EXT2LANG.get(PurePosixPath(name).suffix.lower(), "")


def normalize_pattern(raw: str) -> str:
    """Normalize one exclusion pattern and check that it is a usable glob.

    Backslashes become forward slashes, a leading `./` and trailing slashes are
    dropped. A leading `/` is kept: it anchors the pattern at the root.

    Args:
        raw (str): the pattern as supplied by the caller.

    Raises:
        MalformedExclusionPatternError: for an unterminated character class,
            a `**` that is not a whole path segment, or a pattern that is empty
            once normalized.

    Returns:
        str: the normalized pattern.
    """
    pattern = raw.strip().replace("\\", "/")
    while pattern.startswith("./"):
        pattern = pattern[2:]
    anchored = pattern.startswith("/")
    body = pattern.strip("/")
    if not body or body == ".":
        raise MalformedExclusionPatternError(pattern=raw, reason="pattern matches nothing")

    for segment in body.split("/"):
        if "**" in segment and segment != "**":
            raise MalformedExclusionPatternError(
                pattern=raw,
                reason="'**' must be a complete path segment",
            )
    _check_brackets(raw, body)
    return f"/{body}" if anchored else body


def _check_brackets(raw: str, body: str) -> None:
    i = 0
    while i < len(body):
        if body[i] == "[":
            # a `]` right after `[` or `[!` is a literal member of the class
            j = i + 1
            if j < len(body) and body[j] == "!":
                j += 1
            if j < len(body) and body[j] == "]":
                j += 1
            close = body.find("]", j)
            if close == -1:
                raise MalformedExclusionPatternError(
                    pattern=raw,
                    reason="unterminated character class",
                )
            if "/" in body[i:close]:
                raise MalformedExclusionPatternError(
                    pattern=raw,
                    reason="character class cannot span a path separator",
                )
            i = close
        i += 1


class ExclusionSet(BaseModel):
    """Immutable set of exclusion patterns consulted during traversal.

    A pattern without `/` is matched against every single segment of a
    relative path, so `node_modules` or `*.log` prune at any depth. A pattern
    containing `/`, or starting with `/`, is anchored at the root and matched
    against the relative path and each of its ancestor prefixes, so
    `src/generated` also excludes everything below it. A leading `**/` makes
    the pattern float again.
    """

    model_config = ConfigDict(frozen=True)

    patterns: tuple[str, ...] = Field(default=(), description="Normalized exclusion patterns")

    @field_validator("patterns", mode="before")
    @classmethod
    def _normalize(cls, value: object) -> tuple[str, ...]:
        if isinstance(value, str):
            value = value.split(",")
        items = [str(v) for v in (value or ())]
        out: list[str] = []
        for item in items:
            if not item.strip():
                continue
            pattern = normalize_pattern(item)
            if pattern not in out:
                out.append(pattern)
        return tuple(out)

    @classmethod
    def parse(cls, text: str | None, *, extra: tuple[str, ...] = ()) -> ExclusionSet:
        """Build an exclusion set from a comma-separated list of patterns.

        Raises:
            MalformedExclusionPatternError: if one of the patterns is invalid.
        """
        items = [*(text or "").split(","), *extra]
        return cls(patterns=tuple(items))

    def __bool__(self) -> bool:
        return bool(self.patterns)

    def matches(self, rel: str) -> bool:
        """Check if a path relative to the root is excluded.

        Args:
            rel (str): the relative path, POSIX separators.

        Returns:
            bool: True if any pattern matches the path or one of its ancestors.
        """
        parts = [p for p in rel.replace("\\", "/").split("/") if p and p != "."]
        if not parts:
            return False
        prefixes = ["/".join(parts[: i + 1]) for i in range(len(parts))]
        return any(_pattern_matches(pattern, parts, prefixes) for pattern in self.patterns)


def _pattern_matches(pattern: str, parts: list[str], prefixes: list[str]) -> bool:
    if pattern.startswith("/"):
        return any(_match(prefix, pattern[1:]) for prefix in prefixes)
    if pattern.startswith("**/"):
        rest = pattern[3:]
        if rest == "**":
            return True
        if "/" not in rest:
            return any(_match(part, rest) for part in parts)
        return any(
            _match("/".join(parts[start : end + 1]), rest)
            for start in range(len(parts))
            for end in range(start, len(parts))
        )
    if "/" in pattern:
        return any(_match(prefix, pattern) for prefix in prefixes)
    return any(_match(part, pattern) for part in parts)


def _match(path: str, pattern: str) -> bool:
    if not _GLOB_CHARS.search(pattern):
        return path == pattern
    return fnmatch.fnmatchcase(path, pattern)


class FormattedBlock(BaseModel):
    """One accepted file: its label and its verbatim text content.

    Attributes:
        rel: Path relative to the root directory, POSIX separators.
        language: Code fence language (may be empty).
        content: The file content, exactly as decoded from disk.
    """

    model_config = ConfigDict(frozen=True)

    rel: str = Field(..., description="File path relative to the root directory")
    language: str = Field("", description="Fenced code block language name")
    content: str = Field(..., description="Verbatim file content")

    @computed_field
    @property
    def fence(self) -> str:
        """Backtick fence one longer than the longest backtick run in the content."""
        longest = max((len(run) for run in re.findall(r"`+", self.content)), default=0)
        return "`" * max(3, longest + 1)

    def render(self) -> str:
        """Render the block; the closing fence never occurs inside the content."""
        return f"- {self.rel}:\n{self.fence}{self.language}\n{self.content}\n{self.fence}\n"


class SkippedEntry(BaseModel):
    """A candidate path that did not make it into the document."""

    model_config = ConfigDict(frozen=True)

    rel: str
    classification: Classification
    reason: str = ""


class OutputDocument(BaseModel):
    """The assembled document: tree, blocks in traversal order, optional prompt."""

    tree_lines: list[str] = Field(default_factory=list)
    blocks: list[FormattedBlock] = Field(default_factory=list)
    prompt: str | None = None
    skipped: list[SkippedEntry] = Field(default_factory=list)
    include_tree: bool = True

    def render(self) -> str:
        """Render the document as a single text value.

        Sections are separated by one blank line, the same separation used
        between file blocks, and the prompt section comes last.
        """
        sections: list[str] = []
        if self.include_tree:
            sections.append("### File Tree:\n" + "\n".join(self.tree_lines) + "\n")
        files = "### Files:\n"
        if self.blocks:
            files += "\n".join(block.render() for block in self.blocks)
        sections.append(files)
        if self.prompt:
            sections.append(f"### Prompt:\n{self.prompt}\n")
        return "\n".join(sections)
