"""Exceptions raised by the parser, the config loader and the file sync."""

from __future__ import annotations

from pathlib import Path


class ModelsyncError(Exception):
    """Base class for every error that aborts a generation run."""


class ParseError(ModelsyncError, ValueError):
    def __init__(self, table: str | None, reason: str) -> None:
        self.table = table
        self.reason = reason
        if table:
            super().__init__(f"table `{table}`: {reason}")
        else:
            super().__init__(reason)


class FilesystemError(ModelsyncError):
    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{reason}: '{self.path}'")


class ConfigError(ModelsyncError, ValueError):
    pass


class FileEncodingError(FilesystemError):
    """A file exists but is not valid UTF-8."""
