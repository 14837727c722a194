"""Line-level editing of files that mix generated and hand-written content."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from modelsync.errors import FileEncodingError, FilesystemError

logger = logging.getLogger(__name__)

FILE_SIGNATURE = "/* @generated and managed by modelsync */"

# The signature only counts when it appears among the first lines of a file.
SIGNATURE_SCAN_LINES = 5

MOD_LINE_RE = re.compile(r"^\s*(?:pub(?:\([^)]*\))?\s+)?mod\s+(?:r#)?([A-Za-z_]\w*)\s*;\s*(?://.*)?$")
USE_LINE_RE = re.compile(
    r"^\s*(?:pub(?:\([^)]*\))?\s+)?use\s+(?:self::)?(?:r#)?([A-Za-z_]\w*)::\*\s*;\s*(?://.*)?$"
)


def module_line_name(line: str) -> str | None:
    m = MOD_LINE_RE.match(line.rstrip("\r\n"))
    return m.group(1) if m else None


def reexport_line_name(line: str) -> str | None:
    m = USE_LINE_RE.match(line.rstrip("\r\n"))
    return m.group(1) if m else None


def line_ending(line: str, lines: list[str]) -> str:
    """Ending of `line`, else of the first terminated line in `lines`, else "\\n"."""
    for candidate in [line, *lines]:
        for ending in ("\r\n", "\n", "\r"):
            if candidate.endswith(ending):
                return ending
    return "\n"


class MarkedFile:
    """A file's text, read lazily on first access and written only on `write()`."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._contents: str | None = None

    @property
    def contents(self) -> str:
        if self._contents is None:
            self._contents = self._read()
        return self._contents

    @contents.setter
    def contents(self, value: str) -> None:
        self._contents = value

    @property
    def loaded(self) -> bool:
        return self._contents is not None

    def _read(self) -> str:
        if not self.path.exists():
            return ""
        if not self.path.is_file():
            raise FilesystemError(self.path, "Expected a file")
        try:
            with self.path.open(encoding="utf-8", newline="") as fh:
                return fh.read()
        except UnicodeDecodeError as exc:
            raise FileEncodingError(self.path, "Could not decode file as UTF-8") from exc
        except OSError as exc:
            raise FilesystemError(self.path, f"Could not read file ({exc.strerror or exc})") from exc

    def lines(self) -> list[str]:
        return self.contents.splitlines(keepends=True)

    # signature

    def has_signature(self) -> bool:
        head = self.lines()[:SIGNATURE_SCAN_LINES]
        return any(FILE_SIGNATURE in line for line in head)

    def ensure_signature(self) -> None:
        if self.has_signature():
            return
        self.contents = f"{FILE_SIGNATURE}\n{self.contents}"

    # module / re-export lines

    def has_module_line(self, name: str) -> bool:
        return any(module_line_name(line) == name for line in self.lines())

    def has_reexport_line(self, name: str) -> bool:
        return any(reexport_line_name(line) == name for line in self.lines())

    def ensure_module_line(self, name: str) -> None:
        if self.has_module_line(name):
            return
        self._insert_after(f"pub mod {name};", [module_line_name])

    def ensure_reexport_line(self, name: str) -> None:
        if self.has_reexport_line(name):
            return
        self._insert_after(f"pub use {name}::*;", [reexport_line_name, module_line_name])

    def remove_module_line(self, name: str) -> None:
        self._remove_matching(module_line_name, name)

    def remove_reexport_line(self, name: str) -> None:
        self._remove_matching(reexport_line_name, name)

    def _insert_after(self, new_line: str, anchors) -> None:
        """Insert after the last line recognized by the first anchor that matches anything, else append."""
        lines = self.lines()
        position = len(lines)
        for anchor in anchors:
            matches = [idx for idx, line in enumerate(lines) if anchor(line) is not None]
            if matches:
                position = matches[-1] + 1
                break
        ending = line_ending(lines[position - 1] if position > 0 else "", lines)
        if position > 0 and not lines[position - 1].endswith(("\n", "\r")):
            lines[position - 1] += ending
        lines.insert(position, new_line + ending)
        self.contents = "".join(lines)

    def _remove_matching(self, recognize, name: str) -> None:
        lines = self.lines()
        kept = [line for line in lines if recognize(line) != name]
        if len(kept) != len(lines):
            self.contents = "".join(kept)

    # persistence

    def write(self) -> None:
        try:
            with self.path.open("w", encoding="utf-8", newline="") as fh:
                fh.write(self.contents)
        except OSError as exc:
            raise FilesystemError(self.path, f"Could not write file ({exc.strerror or exc})") from exc
        logger.debug("wrote %s", self.path)

    def delete(self) -> None:
        if not self.path.exists():
            return
        try:
            self.path.unlink()
        except OSError as exc:
            raise FilesystemError(self.path, f"Could not delete file ({exc.strerror or exc})") from exc
        logger.debug("deleted %s", self.path)
