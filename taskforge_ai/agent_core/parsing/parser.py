"""Incremental parser for assistant responses.

``parse_assistant_message`` is called with the full accumulated response text
each time a new text unit arrives, so it must be cheap, pure and deterministic:
the same input always yields the same block list, and re-parsing a longer
prefix only ever extends or finalizes the previous result.
"""

from __future__ import annotations

from typing import List, Mapping, Optional, Sequence

from ..schemas.content import ContentBlock, ReasoningContent, TextContent, ToolUse
from ..tools.definitions import TOOL_PARAM_NAMES

THINKING_OPEN = "<thinking>"
THINKING_CLOSE = "</thinking>"

# Parameters whose value may itself contain XML; matched against the last
# closing tag before the tool's closing tag.
GREEDY_PARAMS = {("write_to_file", "content")}


def _ends_with(message: str, tag: str, i: int) -> bool:
    start = i + 1 - len(tag)
    return start >= 0 and message.startswith(tag, start)


def parse_assistant_message(
    message: str,
    tool_params: Optional[Mapping[str, Sequence[str]]] = None,
) -> List[ContentBlock]:
    """Split a (possibly incomplete) assistant response into content blocks.

    Args:
        message: The raw response text accumulated so far.
        tool_params: Tool names mapped to their parameter names. Defaults to the
            registered tool definitions.

    Returns:
        Ordered content blocks. A block still open at the end of ``message`` is
        returned with ``partial=True``; empty text blocks are dropped.
    """
    params_by_tool = tool_params if tool_params is not None else TOOL_PARAM_NAMES
    open_tags = {f"<{name}>": name for name in params_by_tool}

    blocks: List[ContentBlock] = []
    text_start = 0
    reasoning_start: Optional[int] = None
    tool: Optional[ToolUse] = None
    param: Optional[str] = None
    param_start = 0

    def close_text(end: int) -> None:
        text = message[text_start:end].strip()
        if text:
            blocks.append(TextContent(content=text, partial=False))

    for i in range(len(message)):
        if reasoning_start is not None:
            if _ends_with(message, THINKING_CLOSE, i):
                content = message[reasoning_start : i + 1 - len(THINKING_CLOSE)]
                blocks.append(ReasoningContent(content=content.strip(), partial=False))
                reasoning_start = None
                text_start = i + 1
            continue

        if tool is not None:
            tool_close = f"</{tool.name}>"
            if param is not None:
                if (tool.name, param) in GREEDY_PARAMS:
                    if not _ends_with(message, tool_close, i):
                        continue
                    segment = message[param_start : i + 1 - len(tool_close)]
                    last = segment.rfind(f"</{param}>")
                    if last == -1:
                        continue
                    tool.params[param] = segment[:last].strip()
                    param = None
                else:
                    param_close = f"</{param}>"
                    if _ends_with(message, param_close, i):
                        tool.params[param] = message[param_start : i + 1 - len(param_close)].strip()
                        param = None
                    continue

            if _ends_with(message, tool_close, i):
                tool.partial = False
                blocks.append(tool)
                tool = None
                text_start = i + 1
                continue

            for name in params_by_tool[tool.name]:
                if _ends_with(message, f"<{name}>", i):
                    param = name
                    param_start = i + 1
                    break
            continue

        for tag, name in open_tags.items():
            if _ends_with(message, tag, i):
                close_text(i + 1 - len(tag))
                tool = ToolUse(name=name, partial=True)
                break
        else:
            if _ends_with(message, THINKING_OPEN, i):
                close_text(i + 1 - len(THINKING_OPEN))
                reasoning_start = i + 1

    if reasoning_start is not None:
        blocks.append(ReasoningContent(content=message[reasoning_start:].strip(), partial=True))
    elif tool is not None:
        if param is not None:
            tool.params[param] = message[param_start:].strip()
        blocks.append(tool)
    else:
        text = message[text_start:].strip()
        if text:
            blocks.append(TextContent(content=text, partial=True))

    return blocks
