from __future__ import annotations

import codecs
import mimetypes
import os
import stat
from pathlib import Path
from typing import TYPE_CHECKING

from file_lister.config import (
    COMPOUND_PLAIN_TEXT_SUFFIXES,
    PLAIN_TEXT_EXTENSIONS,
    SNIFF_BYTES,
    TEXTLIKE_MIME_TYPES,
    Classification,
    ExclusionSet,
)
from file_lister.exceptions import FatalRootError
from file_lister.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    Sniffer = Callable[[bytes], str]

OCTET_STREAM = "application/octet-stream"


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


def read_prefix(path: Path, nbytes: int = SNIFF_BYTES) -> bytes:
    """Read at most `nbytes` bytes from the start of a file."""
    with path.open("rb") as f:
        return f.read(nbytes)


def sniff_mime(prefix: bytes) -> str:
    """Content-based MIME detection on a bounded byte prefix.

    A prefix is plain text when it holds no NUL byte and decodes as UTF-8.
    The prefix may end in the middle of a multi-byte sequence, so decoding is
    incremental and a truncated tail is not an error.

    Args:
        prefix (bytes): the first bytes of the file.

    Returns:
        str: "text/plain" or "application/octet-stream".
    """
    if b"\x00" in prefix:
        return OCTET_STREAM
    try:
        codecs.getincrementaldecoder("utf-8")().decode(prefix, final=False)
    except UnicodeDecodeError:
        return OCTET_STREAM
    return "text/plain"


def has_plaintext_extension(name: str) -> bool:
    """Check the extension allowlist, then the extension-based MIME guess.

    Args:
        name (str): the file name.

    Returns:
        bool: True for an allowlisted extension or a `text/*` / JSON MIME guess.
    """
    lower = name.lower()
    if Path(lower).suffix in PLAIN_TEXT_EXTENSIONS:
        return True
    guessed, _encoding = mimetypes.guess_type(lower, strict=False)
    if guessed is None:
        return False
    return guessed.startswith("text/") or guessed in TEXTLIKE_MIME_TYPES


def classify(
    path: Path,
    exclusions: ExclusionSet,
    *,
    root: Path,
    sniff: Sniffer = sniff_mime,
) -> Classification:
    """Decide whether a path contributes to the output document.

    Checks run in order and the first conclusive one wins:

    1) exclusion patterns (wins over everything, including the allowlist),
    2) regular, stat-able file,
    3) `.html.twig`, then `.json`, then the extension allowlist,
    4) MIME sniff of the first `SNIFF_BYTES` bytes.

    Args:
        path (Path): the candidate path.
        exclusions (ExclusionSet): patterns relative to `root`.
        root (Path): the root directory the exclusions are relative to.
        sniff (Sniffer): content sniffer, `bytes -> MIME type`.

    Returns:
        Classification: the outcome; never raises for per-file problems.
    """
    return classify_with_reason(path, exclusions, root=root, sniff=sniff)[0]


def classify_with_reason(
    path: Path,
    exclusions: ExclusionSet,
    *,
    root: Path,
    sniff: Sniffer = sniff_mime,
) -> tuple[Classification, str]:
    """Same as `classify`, also returning why an `UNREADABLE` path could not be read.

    The reason is empty for every other classification.
    """
    if exclusions.matches(relpath(path, root)):
        return Classification.EXCLUDED, ""
    try:
        st = path.stat()
    except OSError as e:
        return Classification.UNREADABLE, e.strerror or str(e)
    if not stat.S_ISREG(st.st_mode):
        return Classification.UNREADABLE, "not a regular file"

    name = path.name.lower()
    if name.endswith(COMPOUND_PLAIN_TEXT_SUFFIXES):
        return Classification.PLAINTEXT_EXTENSION, ""
    if path.suffix.lower() == ".json":
        return Classification.JSON_FILE, ""
    if has_plaintext_extension(name):
        return Classification.PLAINTEXT_EXTENSION, ""

    try:
        prefix = read_prefix(path)
    except OSError as e:
        return Classification.UNREADABLE, e.strerror or str(e)
    if sniff(prefix).startswith("text/"):
        return Classification.MIME_TEXT_PLAIN, ""
    return Classification.BINARY, ""


def ensure_root(root: Path) -> Path:
    """Check that the root directory exists and can be listed.

    Args:
        root (Path): the directory given by the caller.

    Raises:
        FatalRootError: if the root is missing, not a directory, or unreadable.

    Returns:
        Path: the resolved root directory.
    """
    try:
        resolved = root.resolve(strict=True)
    except OSError as e:
        raise FatalRootError(root=root, reason="does not exist") from e
    if not resolved.is_dir():
        raise FatalRootError(root=root, reason="not a directory")
    try:
        with os.scandir(resolved) as it:
            next(it, None)
    except OSError as e:
        raise FatalRootError(root=root, reason=e.strerror or str(e)) from e
    return resolved


def _sort_key(name: str) -> tuple[str, str]:
    return (name.lower(), name)


def walk_files(root: Path, exclusions: ExclusionSet) -> Iterator[Path]:
    """Lazily walk the directory tree rooted at `root`.

    Depth-first: in each directory the files are yielded first, sorted by
    name, then the sub-directories are visited in the same order. Excluded
    directories are pruned before descent and excluded files are not
    yielded. Symbolic links to directories are not followed; links to files
    are yielded. Unreadable sub-directories are skipped with a warning.

    Args:
        root (Path): the root directory to walk
        exclusions (ExclusionSet): patterns relative to `root`

    Yields:
        Iterator[Path]: candidate file paths, in deterministic order
    """

    def on_error(err: OSError) -> None:
        target = Path(err.filename) if err.filename else root
        logger.warning("Skipping unreadable directory %s: %s", relpath(target, root), err.strerror or err)

    for current, dirs, files in os.walk(root, onerror=on_error):
        base = Path(current)
        kept: list[str] = []
        for d in sorted(dirs, key=_sort_key):
            rel = relpath(base / d, root)
            if exclusions.matches(rel):
                logger.debug("Excluding directory %s", rel)
                continue
            kept.append(d)
        dirs[:] = kept
        for f in sorted(files, key=_sort_key):
            p = base / f
            if exclusions.matches(relpath(p, root)):
                logger.debug("Excluding file %s", relpath(p, root))
                continue
            yield p
