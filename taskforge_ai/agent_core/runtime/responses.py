"""Fixed texts fed back to the model or shown to the user."""

from __future__ import annotations

from typing import List, Optional, Sequence

from ..schemas.content import ToolUse
from ..schemas.domain import ImagePart, MessagePart, TextPart

MISTAKE_LIMIT_GUIDANCE = (
    "This may indicate a failure in the model's thought process or inability to use a tool properly, "
    "which can be mitigated with some user guidance (e.g. \"Try breaking down the task into smaller steps\")."
)

NO_RESPONSE_ERROR = (
    "Unexpected API Response: The language model did not provide any assistant messages. "
    "This may indicate an issue with the API or the model's output."
)

NO_RESPONSE_FAILURE = "Failure: I did not provide a response."

INTERRUPTED_BY_USER = "Response interrupted by user"
INTERRUPTED_BY_API_ERROR = "Response interrupted by API Error"
INTERRUPTED_BY_FEEDBACK = "\n\n[Response interrupted by user feedback]"
INTERRUPTED_BY_TOOL_USE = (
    "\n\n[Response interrupted by a tool use result. Only one tool may be used at a time and should be "
    "placed at the end of the message.]"
)

TOOL_USE_INSTRUCTIONS_REMINDER = """# Reminder: Instructions for Tool Use

Tool uses are formatted using XML-style tags. The tool name itself becomes the XML tag name. Each parameter is enclosed within its own set of tags. Here's the structure:

<actual_tool_name>
<parameter1_name>value1</parameter1_name>
<parameter2_name>value2</parameter2_name>
...
</actual_tool_name>

For example, to use the attempt_completion tool:

<attempt_completion>
<result>
I have completed the task...
</result>
</attempt_completion>

Always use the actual tool name as the XML tag name for proper parsing and execution."""


def no_tools_used() -> str:
    return f"""[ERROR] You did not use a tool in your previous response! Please retry with a tool use.

{TOOL_USE_INSTRUCTIONS_REMINDER}

# Next Steps

If you have completed the user's task, use the attempt_completion tool.
If you require additional information from the user, use the ask_followup_question tool.
Otherwise, if you have not completed the task and do not need additional information, then proceed with the next step of the task.
(This is an automated message, so do not respond to it conversationally.)"""


def too_many_mistakes(feedback: Optional[str]) -> str:
    return (
        "You seem to be having trouble proceeding. The user has provided the following feedback to help "
        f"guide you:\n<feedback>\n{feedback or ''}\n</feedback>"
    )


def tool_denied(feedback: Optional[str] = None) -> str:
    if not feedback:
        return "The user denied this operation."
    return f"The user denied this operation and provided the following feedback:\n<feedback>\n{feedback}\n</feedback>"


def tool_error(error: str) -> str:
    return f"The tool execution failed with the following error:\n<error>\n{error}\n</error>"


def missing_tool_parameter_error(param_name: str) -> str:
    return (
        f"Missing value for required parameter '{param_name}'. Please retry with complete response.\n\n"
        f"{TOOL_USE_INSTRUCTIONS_REMINDER}"
    )


def completion_feedback(feedback: Optional[str]) -> str:
    return (
        "The user has provided feedback on the results. Consider their input to continue the task, and then "
        f"attempt completion again.\n<feedback>\n{feedback or ''}\n</feedback>"
    )


def subtask_completed(result: str) -> str:
    return f"[new_task completed] Result: {result}"


def tool_description(block: ToolUse) -> str:
    """Short label of a tool call used in result headers."""
    if block.name == "execute_command":
        return f"[{block.name} for '{block.params.get('command', '')}']"
    if block.name in ("read_file", "write_to_file"):
        return f"[{block.name} for '{block.params.get('path', '')}']"
    if block.name == "ask_followup_question":
        return f"[{block.name} for '{block.params.get('question', '')}']"
    if block.name == "new_task":
        return f"[{block.name} in {block.params.get('mode', '')} mode: '{block.params.get('message', '')}']"
    return f"[{block.name}]"


def tool_skipped_after_rejection(block: ToolUse) -> str:
    if block.partial:
        return f"Tool {tool_description(block)} was interrupted and not executed due to user rejecting a previous tool."
    return f"Skipping tool {tool_description(block)} due to user rejecting a previous tool."


def tool_skipped_after_tool_use(block: ToolUse) -> str:
    return (
        f"Tool [{block.name}] was not executed because a tool has already been used in this message. Only one "
        "tool may be used per message. You must assess the first tool's result before proceeding to use the "
        "next tool."
    )


def task_resumption(ago: str, cwd: str, feedback: Optional[str] = None) -> str:
    text = (
        f"[TASK RESUMPTION] This task was interrupted {ago}. It may or may not be complete, so please reassess "
        "the task context. Be aware that the project state may have changed since then. The current working "
        f"directory is now '{cwd}'. If the task has not been completed, retry the last step before interruption "
        "and proceed with completing the task.\n\nNote: If you previously attempted a tool use that the user did "
        "not provide a result for, you should assume the tool use was not successful and assess whether you "
        "should retry."
    )
    if feedback:
        text += f"\n\nNew instructions for task continuation:\n<user_message>\n{feedback}\n</user_message>"
    return text


def image_parts(images: Optional[Sequence[str]]) -> List[MessagePart]:
    """Wrap base64 images (optionally ``data:`` URLs) as message parts."""
    parts: List[MessagePart] = []
    for image in images or []:
        media_type = "image/png"
        data = image
        if image.startswith("data:") and "," in image:
            header, data = image.split(",", 1)
            media_type = header[len("data:") :].split(";", 1)[0] or media_type
        parts.append(ImagePart(media_type=media_type, data=data))
    return parts


def format_request(content: Sequence[MessagePart]) -> str:
    """Render outbound content as the text stored in a request record."""
    rendered = []
    for part in content:
        if isinstance(part, TextPart):
            rendered.append(part.text)
        else:
            rendered.append("[Image]")
    return "\n\n".join(rendered)
