"""System prompt assembly."""

from __future__ import annotations

from ..modes import get_mode_spec
from ..tools.definitions import TOOL_DEFINITIONS
from .responses import TOOL_USE_INSTRUCTIONS_REMINDER

RULES = """====

RULES

- You may use exactly one tool per message, placed at the end of the message. Wait for the tool result before continuing.
- Do not ask for more information than necessary. Use the tools provided to accomplish the user's request efficiently.
- Once you've completed the user's task, you must use the attempt_completion tool to present the result of the task to the user.
- Use new_task to delegate a self-contained piece of work to another mode; this task waits until the subtask finishes.
- You may wrap your private reasoning in <thinking></thinking> tags."""


def build_system_prompt(mode: str, cwd: str) -> str:
    """Build the system prompt of a task running in ``mode``.

    Only the tools allowed in the mode are described.
    """
    spec = get_mode_spec(mode)
    tools = "\n\n".join(
        definition.to_prompt() for name, definition in TOOL_DEFINITIONS.items() if name in spec.allowed_tools
    )
    return (
        f"{spec.role_definition}\n\n"
        "====\n\n"
        "TOOL USE\n\n"
        "You have access to a set of tools that are executed upon the user's approval. "
        "Each tool use returns its result in the user's next message.\n\n"
        f"{TOOL_USE_INSTRUCTIONS_REMINDER}\n\n"
        "# Tools\n\n"
        f"{tools}\n\n"
        f"{RULES}\n\n"
        "====\n\n"
        "SYSTEM INFORMATION\n\n"
        f"Current Workspace Directory: {cwd}\n"
        f"Current Mode: {spec.slug.value}"
    )
