# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Source context for stack frames.

Attaches the lines surrounding each frame of a traceback so the collector
can show the failing code without access to the deployed sources.
"""

import threading
import traceback
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Any

DEFAULT_CONTEXT_LINES = 3


@dataclass(frozen=True)
class FrameWithContext:
    """A single traceback frame plus the source lines around it."""

    function: str
    filename: str
    lineno: int
    lines_before: str = ""
    line_content: str = ""
    lines_after: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire representation."""
        return {
            "function": self.function,
            "fileName": self.filename,
            "lineNumber": self.lineno,
            "linesBefore": self.lines_before,
            "lineContent": self.line_content,
            "linesAfter": self.lines_after,
        }


class SourceReader:
    """Thread-safe reader that caches source files split into lines.

    A file that cannot be read is cached as missing so it is not retried
    on every frame.
    """

    def __init__(self, context_lines: int = DEFAULT_CONTEXT_LINES):
        """Initialize source reader.

        Args:
            context_lines: Number of lines to include before and after a frame
        """
        self.context_lines = context_lines
        self._lock = threading.Lock()
        self._cache: dict[str, list[str] | None] = {}

    def read_context_lines(self, filename: str, line: int, context: int) -> tuple[list[str], int]:
        """Read the lines around ``line`` in ``filename``.

        Args:
            filename: Source file path
            line: 1-indexed line number of the frame
            context: Number of lines to return on each side

        Returns:
            Tuple of (lines, index of the frame line within lines). Empty list
            when the file is unreadable or the line is out of range.
        """
        with self._lock:
            if filename not in self._cache:
                try:
                    text = Path(filename).read_text(encoding="utf-8", errors="replace")
                except OSError:
                    self._cache[filename] = None
                else:
                    self._cache[filename] = text.split("\n")
            lines = self._cache[filename]

        return self.calculate_context_lines(lines, line, context)

    @staticmethod
    def calculate_context_lines(lines: list[str] | None, line: int, context: int) -> tuple[list[str], int]:
        """Slice ``lines`` around a 1-indexed ``line``."""
        line -= 1
        if lines is None or line < 0 or line >= len(lines):
            return [], 0

        if context < 0:
            context = 0
        context_line = context

        start = line - context
        if start < 0:
            context_line += start
            start = 0
        end = min(line + context + 1, len(lines))

        return lines[start:end], context_line

    def frame_with_context(self, frame: traceback.FrameSummary) -> FrameWithContext:
        """Build a FrameWithContext for a traceback frame summary."""
        lineno = frame.lineno or 0
        lines, context_line = self.read_context_lines(frame.filename, lineno, self.context_lines)

        before: list[str] = []
        content = ""
        after: list[str] = []
        for i, text in enumerate(lines):
            if i < context_line:
                before.append(text)
            elif i == context_line:
                content = text
            else:
                after.append(text)

        return FrameWithContext(
            function=frame.name,
            filename=frame.filename,
            lineno=lineno,
            lines_before="\n".join(before),
            line_content=content,
            lines_after="\n".join(after),
        )

    def clear(self) -> None:
        """Drop all cached files."""
        with self._lock:
            self._cache.clear()


def format_frame(frame: traceback.FrameSummary) -> str:
    """Serialize a frame as ``"<function> <filename>:<lineno>"``."""
    return f"{frame.name} {frame.filename}:{frame.lineno}"


def extract_frames(tb: TracebackType | None) -> list[traceback.FrameSummary]:
    """Return the frames of a traceback, outermost first."""
    if tb is None:
        return []
    return list(traceback.extract_tb(tb))
