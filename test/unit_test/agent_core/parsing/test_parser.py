from __future__ import annotations

import pytest

from taskforge_ai.agent_core.parsing import parse_assistant_message
from taskforge_ai.agent_core.schemas.content import ReasoningContent, TextContent, ToolUse


def test_plain_text_is_one_partial_block() -> None:
    blocks = parse_assistant_message("Hello there")
    assert blocks == [TextContent(content="Hello there", partial=True)]


def test_empty_and_whitespace_messages_yield_nothing() -> None:
    assert parse_assistant_message("") == []
    assert parse_assistant_message("  \n ") == []


def test_text_before_tool_is_finalized_and_tool_completes() -> None:
    message = "I will run it<read_file>\n<path>src/app.py</path>\n</read_file>"
    blocks = parse_assistant_message(message)

    assert blocks[0] == TextContent(content="I will run it", partial=False)
    assert isinstance(blocks[1], ToolUse)
    assert blocks[1].name == "read_file"
    assert blocks[1].params == {"path": "src/app.py"}
    assert blocks[1].partial is False
    assert len(blocks) == 2


def test_text_after_a_complete_tool_is_a_new_partial_block() -> None:
    blocks = parse_assistant_message("<read_file><path>a</path></read_file> trailing")
    assert [type(b) for b in blocks] == [ToolUse, TextContent]
    assert blocks[1].content == "trailing"
    assert blocks[1].partial is True


def test_incomplete_tool_keeps_partial_parameter_value() -> None:
    blocks = parse_assistant_message("<execute_command>\n<command>ls -l")
    assert len(blocks) == 1
    tool = blocks[0]
    assert isinstance(tool, ToolUse)
    assert tool.partial is True
    assert tool.params == {"command": "ls -l"}


def test_thinking_becomes_reasoning_block() -> None:
    blocks = parse_assistant_message("<thinking>plan first</thinking>Now acting")
    assert blocks[0] == ReasoningContent(content="plan first", partial=False)
    assert blocks[1] == TextContent(content="Now acting", partial=True)


def test_open_thinking_is_partial_reasoning() -> None:
    blocks = parse_assistant_message("Sure. <thinking>still going")
    assert blocks == [
        TextContent(content="Sure.", partial=False),
        ReasoningContent(content="still going", partial=True),
    ]


def test_write_to_file_content_may_contain_its_own_closing_tag() -> None:
    content = "<p>see </content> inside</p>"
    message = (
        "<write_to_file><path>index.html</path>"
        f"<content>\n{content}\n</content></write_to_file>"
    )
    blocks = parse_assistant_message(message)
    assert len(blocks) == 1
    assert blocks[0].params["content"] == content
    assert blocks[0].partial is False


def test_unknown_tags_stay_text() -> None:
    blocks = parse_assistant_message("Use <b>bold</b> text")
    assert blocks == [TextContent(content="Use <b>bold</b> text", partial=True)]


def test_custom_tool_params_restrict_recognized_tools() -> None:
    blocks = parse_assistant_message("<ping><host>x</host></ping>", tool_params={"ping": ["host"]})
    assert blocks[0].name == "ping"
    assert blocks[0].params == {"host": "x"}


@pytest.mark.parametrize(
    "prefix_len",
    [5, 20, 35, 50],
)
def test_reparsing_a_longer_prefix_only_extends_the_result(prefix_len: int) -> None:
    message = "Checking.<read_file><path>a.txt</path></read_file>"
    shorter = parse_assistant_message(message[:prefix_len])
    longer = parse_assistant_message(message)
    for before, after in zip(shorter, longer):
        assert type(before) is type(after)
        if not before.partial:
            assert before == after


def test_parse_is_deterministic() -> None:
    message = "a<thinking>b</thinking><new_task><mode>ask</mode><message>m</message></new_task>"
    assert parse_assistant_message(message) == parse_assistant_message(message)
