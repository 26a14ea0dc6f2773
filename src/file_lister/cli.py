"""
file_lister — Create LLM friendly text from the plaintext files of a directory.

Overview
--------
The tool walks a directory tree depth-first, keeps the files that look like
plaintext (extension allowlist, `.json`, or a content sniff of the first
4 KiB) and writes a single document made of:

   - a `### File Tree:` section listing the walked files,
   - a `### Files:` section with one fenced block per plaintext file,
     labelled with its path relative to the root,
   - an optional `### Prompt:` section holding the prompt given with `-p`.

Exclusion patterns (`-e`, comma separated) are literal names or globs;
matching directories are pruned before anything inside them is read.
Unreadable or binary files are skipped with a warning on stderr, so a run
with some skipped files still succeeds.

Usage
-----
Run `python -m file_lister.cli --help` for full options. Common examples:
    - Whole directory to stdout:
        file-lister -d ./my-project

    - Skip dependencies and build output, add a prompt:
        file-lister -d . -e "node_modules,target,*.lock" -p "Review this code."

    - Write to a file and keep logs apart:
        file-lister -d . -o context.md --log-file file-lister.log
"""

from __future__ import annotations

import argparse
import glob
import io
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from file_lister import __version__
from file_lister.config import ExclusionSet
from file_lister.exceptions import (
    ConfigFileError,
    FatalRootError,
    MalformedExclusionPatternError,
)
from file_lister.file_manipulation import ensure_root
from file_lister.logging import setup_logging
from file_lister.output_construction import assemble_document
from file_lister.settings import Settings, resolve_settings

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = setup_logging()

EXIT_OK = 0
EXIT_FATAL_ROOT = 1
EXIT_BAD_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="file-lister",
        description="Creates LLM friendly text from plaintext files in a directory with an optional prompt.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("-d", "--directory", type=str, required=True, help="Directory to process.")
    p.add_argument("-p", "--prompt", type=str, default=None, help="Prompt appended at the end of the output.")
    p.add_argument(
        "-e",
        "--exclude",
        type=str,
        default=None,
        help="Comma-separated list of directories/patterns to exclude (supports glob patterns).",
    )
    p.add_argument("-o", "--output", type=str, default=None, help="Output file (default: stdout).")
    p.add_argument(
        "--no-tree",
        action="store_true",
        default=None,
        help="Do not print the file tree section.",
    )
    p.add_argument(
        "--default-excludes",
        action="store_true",
        default=None,
        help="Also exclude VCS and tool directories (.git, node_modules, __pycache__, ...).",
    )
    p.add_argument("--config", type=str, default=None, help="YAML configuration file.")
    p.add_argument("--log-file", type=str, default=None, help="Log file path.")
    p.add_argument("-q", "--quiet", action="store_true", default=None, help="Only log errors.")
    return p


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    """Parse the command line and merge it with the config file and `.env` defaults.

    Raises:
        ConfigFileError: if `--config` points to an invalid file.
    """
    args = build_parser().parse_args(argv)
    return resolve_settings(vars(args))


def write_output(content: str, output: Path | None) -> None:
    if output is None:
        # the tree section is not representable in every console code page
        if isinstance(sys.stdout, io.TextIOWrapper) and sys.stdout.encoding.lower() != "utf-8":
            sys.stdout.reconfigure(encoding="utf-8")
        sys.stdout.write(content)
        sys.stdout.flush()
        return
    with output.open("w", encoding="utf-8", newline="") as f:
        f.write(content)


def exclude_output(exclusions: ExclusionSet, output: Path | None, root: Path) -> ExclusionSet:
    """Add the output file to the exclusions when it lives under the root.

    Otherwise a second run would embed the document written by the first one.
    """
    if output is None:
        return exclusions
    try:
        rel = output.resolve().relative_to(root)
    except ValueError:
        return exclusions
    if rel == Path():
        return exclusions
    return ExclusionSet(patterns=(*exclusions.patterns, "/" + glob.escape(rel.as_posix())))


def main(argv: Sequence[str] | None = None) -> int:
    try:
        settings = parse_args(argv)
    except ConfigFileError as e:
        logger.error(str(e))
        return EXIT_BAD_CONFIG

    log = setup_logging(settings.log_file or None, quiet=settings.quiet)

    try:
        exclusions = settings.exclusion_set()
    except MalformedExclusionPatternError as e:
        log.error(str(e))
        return EXIT_BAD_CONFIG

    try:
        root = ensure_root(Path(settings.directory))
    except FatalRootError as e:
        log.error(str(e))
        return EXIT_FATAL_ROOT

    document = assemble_document(
        root,
        exclude_output(exclusions, settings.output, root),
        settings.prompt or None,
        include_tree=not settings.no_tree,
    )
    write_output(document.render(), settings.output)
    log.info(
        "Wrote %s files=%d skipped=%d",
        settings.output or "<stdout>",
        len(document.blocks),
        len(document.skipped),
    )
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
