"""Tool definitions for the agent.

This module defines the tools the model may invoke, their input schemas and
the prompt text describing them. The model invokes a tool by writing an XML
element named after the tool whose children are the parameters::

    <execute_command>
    <command>ls -la</command>
    </execute_command>
"""

from typing import Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field


class ReadFileInput(BaseModel):
    """Input schema for the read_file tool."""

    path: str = Field(..., description="Path of the file to read (relative to the workspace directory)")


class WriteToFileInput(BaseModel):
    """Input schema for the write_to_file tool."""

    path: str = Field(..., description="Path of the file to write (relative to the workspace directory)")
    content: str = Field(..., description="The complete intended content of the file")


class ExecuteCommandInput(BaseModel):
    """Input schema for the execute_command tool."""

    command: str = Field(..., description="Shell command to execute")
    cwd: Optional[str] = Field(None, description="Working directory for the command (default: workspace directory)")


class AskFollowupQuestionInput(BaseModel):
    question: str = Field(..., description="A clear, specific question for the user")


class AttemptCompletionInput(BaseModel):
    result: str = Field(..., description="The final result of the task, phrased without questions")


class NewTaskInput(BaseModel):
    mode: str = Field(..., description="Slug of the mode the new task starts in (e.g. code, ask, debug)")
    message: str = Field(..., description="Initial instructions of the new task")


class ToolDefinition(BaseModel):
    """Pydantic model for tool definitions.

    Attributes:
        name: Unique identifier of the tool; also the XML element name.
        description: Human-readable description placed in the system prompt.
        input_schema: Pydantic model validating the tool parameters.
        read_only: True when the tool cannot modify the workspace.
    """

    name: str = Field(..., description="Unique identifier for the tool")
    description: str = Field(..., description="Human-readable description of what the tool does")
    input_schema: Type[BaseModel] = Field(..., description="Pydantic model class for input validation")
    read_only: bool = Field(default=False, description="Whether the tool leaves the workspace untouched")

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @property
    def param_names(self) -> List[str]:
        return list(self.input_schema.model_fields)

    @property
    def required_params(self) -> List[str]:
        return [name for name, field in self.input_schema.model_fields.items() if field.is_required()]

    def to_prompt(self) -> str:
        """Render the tool description for the system prompt."""
        lines = [f"## {self.name}", f"Description: {self.description}", "Parameters:"]
        for name, field in self.input_schema.model_fields.items():
            required = "required" if field.is_required() else "optional"
            lines.append(f"- {name}: ({required}) {field.description or ''}")
        lines.append("Usage:")
        lines.append(f"<{self.name}>")
        for name in self.param_names:
            lines.append(f"<{name}>{name} here</{name}>")
        lines.append(f"</{self.name}>")
        return "\n".join(lines)


TOOL_DEFINITIONS: Dict[str, ToolDefinition] = {
    d.name: d
    for d in (
        ToolDefinition(
            name="read_file",
            description="Read the contents of a file.",
            input_schema=ReadFileInput,
            read_only=True,
        ),
        ToolDefinition(
            name="write_to_file",
            description=(
                "Write the full content to a file. The file is created if it does not exist and overwritten "
                "if it does. Always provide the complete file content."
            ),
            input_schema=WriteToFileInput,
        ),
        ToolDefinition(
            name="execute_command",
            description="Execute a shell command and return its output.",
            input_schema=ExecuteCommandInput,
        ),
        ToolDefinition(
            name="ask_followup_question",
            description="Ask the user a question to gather information needed to complete the task.",
            input_schema=AskFollowupQuestionInput,
            read_only=True,
        ),
        ToolDefinition(
            name="attempt_completion",
            description="Present the result of the task to the user once the task is complete.",
            input_schema=AttemptCompletionInput,
            read_only=True,
        ),
        ToolDefinition(
            name="new_task",
            description="Create a new subtask in the given mode. The current task is paused until it finishes.",
            input_schema=NewTaskInput,
        ),
    )
}

TOOL_PARAM_NAMES: Dict[str, List[str]] = {name: d.param_names for name, d in TOOL_DEFINITIONS.items()}
