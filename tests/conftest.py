from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from file_lister.logging import setup_logging

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    yield
    setup_logging()


@pytest.fixture
def sample_tree(tmp_path: Path) -> Path:
    """Root with `a.txt`, `b.json`, a binary `c.bin` and `skip/d.txt`."""
    root = tmp_path / "project"
    (root / "skip").mkdir(parents=True)
    (root / "a.txt").write_text("hello", encoding="utf-8")
    (root / "b.json").write_text('{"k":1}', encoding="utf-8")
    (root / "c.bin").write_bytes(b"\x00\x01\x02\xff\xfe")
    (root / "skip" / "d.txt").write_text("secret", encoding="utf-8")
    return root
