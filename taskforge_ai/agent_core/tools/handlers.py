"""Tool handlers for the agent.

This module implements the handlers behind the tool definitions using an
abstraction-based, object-oriented approach: every handler validates nothing
itself (the registry checks required parameters and mode permissions), asks
for approval when the tool is not read-only, performs the operation and
returns a ``ToolOutcome`` whose ``content`` is fed back to the model.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field

from ..errors import ModeNotFoundError
from ..modes import get_mode_spec
from ..runtime import responses
from ..schemas.content import ToolUse
from ..schemas.domain import AskKind, AskResponse, SayKind
from .definitions import TOOL_DEFINITIONS, ToolDefinition

if TYPE_CHECKING:
    from ..task import Task

logger = logging.getLogger(__name__)


class ToolOutcome(BaseModel):
    """Output of a tool execution."""

    content: str = Field(default="", description="Result text returned to the model")
    is_error: bool = Field(default=False, description="Whether the tool failed")
    rejected: bool = Field(default=False, description="Whether the user denied the operation")
    completed: bool = Field(default=False, description="Whether the tool completed the task")


class ToolHandler(ABC):
    """Abstract base class for tool handlers.

    Provides a common interface for all tool handlers with approval handling.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the tool handler name."""

    @property
    def definition(self) -> ToolDefinition:
        return TOOL_DEFINITIONS[self.name]

    @abstractmethod
    async def execute(self, task: Task, block: ToolUse) -> ToolOutcome:
        """Execute the tool operation.

        Args:
            task: The task the model is working on
            block: The complete tool invocation

        Returns:
            The outcome reported back to the model
        """

    async def __call__(self, task: Task, block: ToolUse) -> ToolOutcome:
        return await self.execute(task, block)

    async def ask_approval(self, task: Task, kind: AskKind, text: str) -> Optional[ToolOutcome]:
        """Ask the user to approve the operation.

        Returns:
            None when the operation may proceed, otherwise the rejection outcome.
        """
        if self.definition.read_only and task.deps.settings.auto_approve_read_only:
            return None
        answer = await task.ask(kind, text)
        if answer.response == AskResponse.yes_button:
            return None
        if answer.text:
            await task.say(SayKind.user_feedback, answer.text, answer.images)
        logger.info(f"User denied {self.name} for task {task.task_id}")
        return ToolOutcome(content=responses.tool_denied(answer.text), rejected=True)


class ReadFileHandler(ToolHandler):
    """Handler for file read operations."""

    @property
    def name(self) -> str:
        return "read_file"

    async def execute(self, task: Task, block: ToolUse) -> ToolOutcome:
        rel_path = block.params["path"]
        rejection = await self.ask_approval(task, AskKind.tool, json.dumps({"tool": "readFile", "path": rel_path}))
        if rejection is not None:
            return rejection

        file_path = task.resolve_path(rel_path)
        if not file_path.exists():
            return ToolOutcome(content=responses.tool_error(f"File not found: {rel_path}"), is_error=True)
        if not file_path.is_file():
            return ToolOutcome(content=responses.tool_error(f"Path is not a file: {rel_path}"), is_error=True)

        try:
            content = file_path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            error_msg = f"Encoding error reading {rel_path}: {str(e)}"
            logger.error(error_msg)
            return ToolOutcome(content=responses.tool_error(error_msg), is_error=True)
        except OSError as e:
            error_msg = f"Error reading file {rel_path}: {str(e)}"
            logger.error(error_msg)
            return ToolOutcome(content=responses.tool_error(error_msg), is_error=True)

        logger.info(f"Successfully read file: {file_path} ({len(content)} chars)")
        numbered = "\n".join(f"{i} | {line}" for i, line in enumerate(content.splitlines(), start=1))
        return ToolOutcome(content=f"<file><path>{rel_path}</path>\n<content>\n{numbered}\n</content>\n</file>")


class WriteToFileHandler(ToolHandler):
    """Handler for file write operations.

    The file is written before approval is requested; a rejection reverts it.
    """

    @property
    def name(self) -> str:
        return "write_to_file"

    async def execute(self, task: Task, block: ToolUse) -> ToolOutcome:
        rel_path = block.params["path"]
        content = block.params["content"]
        file_path = task.resolve_path(rel_path)
        existed = file_path.is_file()

        try:
            task.edit_tracker.open(file_path)
            task.edit_tracker.write(content if content.endswith("\n") else content + "\n")
        except OSError as e:
            task.edit_tracker.reset()
            error_msg = f"Error writing file {rel_path}: {str(e)}"
            logger.error(error_msg)
            return ToolOutcome(content=responses.tool_error(error_msg), is_error=True)

        tool = "editedExistingFile" if existed else "newFileCreated"
        rejection = await self.ask_approval(
            task, AskKind.tool, json.dumps({"tool": tool, "path": rel_path, "content": content})
        )
        if rejection is not None:
            task.edit_tracker.revert_changes()
            return rejection

        task.edit_tracker.reset()
        logger.info(f"Successfully wrote file: {file_path}")
        return ToolOutcome(content=f"The content was successfully saved to {rel_path}.")


class ExecuteCommandHandler(ToolHandler):
    """Handler for shell command execution."""

    @property
    def name(self) -> str:
        return "execute_command"

    async def execute(self, task: Task, block: ToolUse) -> ToolOutcome:
        command = block.params["command"]
        cwd = str(task.resolve_path(block.params["cwd"])) if block.params.get("cwd") else task.cwd

        rejection = await self.ask_approval(task, AskKind.command, command)
        if rejection is not None:
            return rejection

        if not os.path.isdir(cwd):
            return ToolOutcome(content=responses.tool_error(f"Working directory not found: {cwd}"), is_error=True)

        timeout = task.deps.settings.command_timeout_seconds
        start_time = time.time()
        logger.info(f"Executing command: {command} (cwd={cwd})")

        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=cwd,
        )
        try:
            stdout_bytes, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            error_msg = f"Command timed out after {timeout} seconds: {command}"
            logger.error(error_msg)
            return ToolOutcome(content=responses.tool_error(error_msg), is_error=True)

        output = stdout_bytes.decode("utf-8", errors="replace") if stdout_bytes else ""
        exit_code = process.returncode
        duration = time.time() - start_time
        logger.info(f"Command completed with exit code {exit_code} (duration: {duration:.2f}s, output: {len(output)} chars)")

        await task.say(SayKind.command_output, output)
        return ToolOutcome(
            content=(
                f"Command executed in terminal within working directory '{cwd}'. Exit code: {exit_code}\n"
                f"Output:\n{output}"
            ),
            is_error=exit_code != 0,
        )


class AskFollowupQuestionHandler(ToolHandler):
    @property
    def name(self) -> str:
        return "ask_followup_question"

    async def execute(self, task: Task, block: ToolUse) -> ToolOutcome:
        answer = await task.ask(AskKind.followup, block.params["question"])
        await task.say(SayKind.user_feedback, answer.text or "", answer.images)
        return ToolOutcome(content=f"<answer>\n{answer.text or ''}\n</answer>")


class AttemptCompletionHandler(ToolHandler):
    """Present the final result.

    A subtask hands its result to the host, which resumes the parent. A root
    task asks the user to accept the result; any answer other than approval
    is returned to the model as feedback.
    """

    @property
    def name(self) -> str:
        return "attempt_completion"

    async def execute(self, task: Task, block: ToolUse) -> ToolOutcome:
        result = block.params["result"]
        await task.say(SayKind.completion_result, result)

        if task.is_subtask:
            task.did_complete_task = True
            await task.host.finish_subtask(result)
            return ToolOutcome(completed=True)

        answer = await task.ask(AskKind.completion_result, "")
        if answer.response == AskResponse.yes_button:
            task.did_complete_task = True
            return ToolOutcome(completed=True)

        await task.say(SayKind.user_feedback, answer.text or "", answer.images)
        return ToolOutcome(content=responses.completion_feedback(answer.text))


class NewTaskHandler(ToolHandler):
    """Delegate work to a subtask; the current task is paused until it finishes."""

    @property
    def name(self) -> str:
        return "new_task"

    async def execute(self, task: Task, block: ToolUse) -> ToolOutcome:
        message = block.params["message"]
        try:
            spec = get_mode_spec(block.params["mode"])
        except ModeNotFoundError as e:
            return ToolOutcome(content=responses.tool_error(str(e)), is_error=True)

        rejection = await self.ask_approval(
            task, AskKind.tool, json.dumps({"tool": "newTask", "mode": spec.name, "content": message})
        )
        if rejection is not None:
            return rejection

        await task.host.create_subtask(task, spec.slug.value, message)
        return ToolOutcome(content=f"Successfully created new task in {spec.name} mode with message: {message}")
