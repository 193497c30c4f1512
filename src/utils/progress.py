"""
Progress Marks

One character per fetch window:
  "."  nothing had to be fetched (all stored or linked)
  ":"  part of the window was fetched
  "*"  the whole window was fetched

Marks are grouped in fours with 56 marks per indented line.
"""

from __future__ import annotations

import sys

MARK_SKIPPED = "."
MARK_PARTIAL = ":"
MARK_FULL = "*"

GROUP_SIZE = 4
LINE_SIZE = 56


def mark_for_window(pending: int, window: int) -> str:
    """Chooses the progress mark for a window of `window` positions of which `pending` need a body fetch."""
    if pending <= 0:
        return MARK_SKIPPED
    if pending < window:
        return MARK_PARTIAL
    return MARK_FULL


class ProgressMarks:
    def __init__(self, stream=None):
        self._stream = stream
        self.column = 0

    @property
    def stream(self):
        # Resolved lazily so pytest's capsys sees the output
        return self._stream if self._stream is not None else sys.stdout

    def reset(self) -> None:
        self.column = 0

    def mark(self, char: str) -> None:
        if self.column % LINE_SIZE == 0:
            self.stream.write("\n  ")
        elif self.column % GROUP_SIZE == 0:
            self.stream.write(" ")
        self.stream.write(char)
        self.stream.flush()
        self.column += 1

    def finish(self) -> None:
        """Terminates the current line of marks, if any were written."""
        if self.column:
            self.stream.write("\n")
            self.stream.flush()
        self.column = 0
