from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class EditTracker:
    """Remember the original state of the file a tool is writing.

    ``write_to_file`` writes its content before asking for approval so the
    user can inspect the result; a rejection or an aborted turn reverts the
    file to what it was before (deleting it if it did not exist).
    """

    def __init__(self) -> None:
        self._path: Optional[Path] = None
        self._original: Optional[str] = None
        self.is_editing = False

    def open(self, path: Path) -> None:
        self._path = path
        self._original = path.read_text(encoding="utf-8") if path.is_file() else None
        self.is_editing = True

    def write(self, content: str) -> int:
        if self._path is None:
            raise RuntimeError("write() called without open()")
        self._path.parent.mkdir(parents=True, exist_ok=True)
        return self._path.write_text(content, encoding="utf-8")

    def revert_changes(self) -> None:
        if not self.is_editing or self._path is None:
            return
        if self._original is None:
            self._path.unlink(missing_ok=True)
            logger.info(f"Reverted new file: {self._path}")
        else:
            self._path.write_text(self._original, encoding="utf-8")
            logger.info(f"Reverted changes to: {self._path}")
        self.reset()

    def reset(self) -> None:
        self._path = None
        self._original = None
        self.is_editing = False
