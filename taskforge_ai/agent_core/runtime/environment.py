"""Environment details appended to every outbound user turn."""

from __future__ import annotations

import os
from datetime import datetime
from typing import List

from ..modes import get_mode_spec

IGNORED_DIRECTORIES = frozenset(
    {".git", "node_modules", "__pycache__", ".venv", "venv", ".mypy_cache", ".pytest_cache", "dist", "build"}
)


def list_files(root: str, max_files: int) -> List[str]:
    """Return at most ``max_files`` workspace-relative file paths, sorted per directory."""
    files: List[str] = []
    if max_files <= 0:
        return files
    for current, dirs, names in os.walk(root):
        dirs[:] = sorted(d for d in dirs if d not in IGNORED_DIRECTORIES and not d.startswith("."))
        for name in sorted(names):
            files.append(os.path.relpath(os.path.join(current, name), root))
            if len(files) >= max_files:
                return files
    return files


def build_environment_details(cwd: str, mode: str, include_file_details: bool, max_files: int = 200) -> str:
    """Render the ``<environment_details>`` block.

    Args:
        cwd: Workspace directory of the task.
        mode: Current mode slug of the task.
        include_file_details: Whether to include the workspace file listing.
        max_files: Upper bound of the file listing.
    """
    spec = get_mode_spec(mode)
    now = datetime.now().astimezone()
    details = [
        "<environment_details>",
        "# Current Time",
        now.strftime("%Y-%m-%d %H:%M:%S %Z (UTC%z)"),
        "",
        "# Current Workspace Directory",
        cwd,
        "",
        "# Current Mode",
        f"<slug>{spec.slug.value}</slug>",
        f"<name>{spec.name}</name>",
    ]
    if include_file_details:
        details += ["", f"# Current Workspace Directory ({cwd}) Files"]
        if os.path.isdir(cwd):
            files = list_files(cwd, max_files)
            details += files or ["(No files found.)"]
            if len(files) >= max_files > 0:
                details.append("(File list truncated. Use read_file on specific paths to explore further.)")
        else:
            details.append("(Workspace directory not found.)")
    details.append("</environment_details>")
    return "\n".join(details)
