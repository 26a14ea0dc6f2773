from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class FileListerError(Exception):
    """Base exception for errors in the file_lister module."""

    def __str__(self) -> str:
        return getattr(self, "message", "") or self.__class__.__name__


@dataclass(frozen=True)
class FatalRootError(FileListerError):
    """Raised when the root directory is missing or cannot be listed at all."""

    root: Path
    reason: str = "not readable"

    @property
    def message(self) -> str:
        return f"Cannot process root directory {self.root}: {self.reason}"


@dataclass(frozen=True)
class MalformedExclusionPatternError(FileListerError):
    """Raised when an exclusion pattern cannot be parsed as a glob or literal."""

    pattern: str
    reason: str

    @property
    def message(self) -> str:
        return f"Invalid exclusion pattern {self.pattern!r}: {self.reason}"


@dataclass(frozen=True)
class ConfigFileError(FileListerError):
    """Raised when a YAML configuration file cannot be loaded."""

    path: Path
    reason: str

    @property
    def message(self) -> str:
        return f"Cannot load configuration file {self.path}: {self.reason}"


@dataclass(frozen=True)
class FileProcessingError(FileListerError):
    """Raised when a classified file cannot be read as text."""

    path: Path
    reason: str

    @property
    def message(self) -> str:
        return f"Cannot read {self.path}: {self.reason}"
