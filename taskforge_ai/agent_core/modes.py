"""
Mode specifications and utilities.

A mode is a named behavioural profile of a task: it determines the role
definition placed at the top of the system prompt and the set of tools the
model may invoke. A paused parent remembers its mode so it can be restored
when its child finishes.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet

from pydantic import Field

from .errors import ModeNotFoundError
from .schemas.base import BaseSchema


class Mode(str, Enum):
    orchestrator = "orchestrator"
    architect = "architect"
    code = "code"
    ask = "ask"
    debug = "debug"


ALL_TOOLS: FrozenSet[str] = frozenset(
    {
        "read_file",
        "write_to_file",
        "execute_command",
        "ask_followup_question",
        "attempt_completion",
        "new_task",
    }
)


class ModeSpec(BaseSchema):
    """
    Runtime specification for a mode.

    Attributes:
        slug: The mode identifier.
        name: Human readable name.
        role_definition: First paragraph of the system prompt.
        allowed_tools: Names of the tools the model may invoke in this mode.
    """

    slug: Mode
    name: str
    role_definition: str
    allowed_tools: FrozenSet[str] = Field(default_factory=frozenset)


MODE_SPECS: Dict[Mode, ModeSpec] = {
    Mode.orchestrator: ModeSpec(
        slug=Mode.orchestrator,
        name="Orchestrator",
        role_definition=(
            "You are a strategic workflow orchestrator who coordinates complex tasks by delegating "
            "them to appropriate specialized modes."
        ),
        allowed_tools=frozenset({"new_task", "ask_followup_question", "read_file", "attempt_completion"}),
    ),
    Mode.architect: ModeSpec(
        slug=Mode.architect,
        name="Architect",
        role_definition=(
            "You are an experienced technical leader who is inquisitive and an excellent planner. "
            "Your goal is to gather information and create a detailed plan for accomplishing the task."
        ),
        allowed_tools=ALL_TOOLS,
    ),
    Mode.code: ModeSpec(
        slug=Mode.code,
        name="Code",
        role_definition=(
            "You are a highly skilled software engineer with extensive knowledge in many programming "
            "languages, frameworks, design patterns, and best practices."
        ),
        allowed_tools=ALL_TOOLS,
    ),
    Mode.ask: ModeSpec(
        slug=Mode.ask,
        name="Ask",
        role_definition=(
            "You are a knowledgeable technical assistant focused on answering questions and providing "
            "information about software development, technology, and related topics."
        ),
        allowed_tools=frozenset({"read_file", "ask_followup_question", "attempt_completion"}),
    ),
    Mode.debug: ModeSpec(
        slug=Mode.debug,
        name="Debug",
        role_definition=(
            "You are an expert software debugger specializing in systematic problem diagnosis and resolution."
        ),
        allowed_tools=ALL_TOOLS,
    ),
}


def coerce_mode(mode: Mode | str) -> Mode:
    """Helper to ensure a mode is a Mode enum member."""
    if isinstance(mode, Mode):
        return mode
    try:
        return Mode(str(mode))
    except ValueError as e:
        raise ModeNotFoundError(str(mode)) from e


def get_mode_spec(mode: Mode | str) -> ModeSpec:
    """Retrieve the ModeSpec for a given mode identifier."""
    return MODE_SPECS[coerce_mode(mode)]
