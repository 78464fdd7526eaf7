from __future__ import annotations

import asyncio

import pytest

from conftest import HANG, FakeTerminalManager, RecordingChannel
from toolgate.engine.models import (
    AskResponse,
    AskResult,
    EarlyExitState,
    ProcessEvent,
    ProcessEventKind,
    SayKind,
    ToolInvocation,
    ToolKind,
)
from toolgate.engine.tools import ExecuteCommandTool
from toolgate.engine.tools.execute_command import (
    MISSING_COMMAND_NOTICE,
    MISSING_COMMAND_RESULT,
)


def _line(text: str) -> ProcessEvent:
    return ProcessEvent(ProcessEventKind.LINE, text=text)


def _done(code: int = 0) -> ProcessEvent:
    return ProcessEvent(ProcessEventKind.COMPLETED, exit_code=code)


def _tool(channel, config, manager, command="echo hi", **kw) -> ExecuteCommandTool:
    invocation = ToolInvocation.create(
        ToolKind.EXECUTE_COMMAND, {"command": command}, **kw,
    )
    return ExecuteCommandTool(
        invocation, channel=channel, config=config, terminal_manager=manager,
    )


@pytest.mark.asyncio
async def test_completed_command_returns_output(channel, fast_config):
    manager = FakeTerminalManager([_line("hi"), _done()])
    tool = _tool(channel, fast_config, manager)

    result = await tool.execute()

    assert result.startswith("Command execution completed successfully.")
    assert "Output:\n<output>\nhi\n</output>" in result
    assert channel.asks[0]["approvalState"] == "pending"
    assert channel.asks[0]["command"] == "echo hi"
    assert channel.states[0] == "loading"
    assert channel.states[-1] == "approved"
    assert channel.updates[-1]["earlyExit"] == "approved"
    assert channel.updates[-1]["output"] == "hi"
    assert tool.early_exit == EarlyExitState.APPROVED
    assert manager.terminals[0].shown
    assert manager.processes[0].detached


@pytest.mark.asyncio
async def test_streamed_lines_are_broadcast_while_loading(channel, fast_config):
    manager = FakeTerminalManager([_line("one"), _line(""), _line("two"), _done()])
    tool = _tool(channel, fast_config, manager)

    await tool.execute()

    outputs = [u.get("output") for u in channel.updates if u["approvalState"] == "loading"]
    assert "one" in outputs
    assert "one\ntwo" in outputs
    # Empty lines are not buffered.
    assert tool.output == "one\ntwo"


@pytest.mark.asyncio
async def test_timeout_returns_partial_output_and_leaves_process(channel, fast_config):
    manager = FakeTerminalManager([_line("booting"), HANG])
    tool = _tool(channel, fast_config, manager, command="npm run dev")

    result = await tool.execute()

    assert "partial output available" in result
    assert "<output>\nbooting\n</output>" in result
    assert channel.states[-1] == "approved"
    assert channel.updates[-1]["earlyExit"] == "pending"
    assert not tool.completed
    process = manager.processes[0]
    assert process.detached
    assert not process.terminated


@pytest.mark.asyncio
async def test_plain_rejection(fast_config):
    channel = RecordingChannel([AskResult(response=AskResponse.NO)])
    manager = FakeTerminalManager([_done()])
    tool = _tool(channel, fast_config, manager, command="rm -rf build")

    result = await tool.execute()

    assert result == "The user denied this operation."
    assert channel.states == ["rejected"]
    assert manager.commands == []


@pytest.mark.asyncio
async def test_rejection_with_feedback(fast_config):
    channel = RecordingChannel([
        AskResult(response=AskResponse.MESSAGE, text="use npm instead"),
    ])
    manager = FakeTerminalManager([_done()])
    tool = _tool(channel, fast_config, manager, command="yarn install")

    result = await tool.execute()

    assert result == (
        "The user denied this operation and provided the following feedback:\n"
        "<feedback>\nuse npm instead\n</feedback>"
    )
    assert channel.states == ["rejected", "rejected"]
    assert channel.updates[-1]["userFeedback"] == "use npm instead"
    assert channel.says == [(SayKind.USER_FEEDBACK, "use npm instead", None)]
    assert manager.commands == []


@pytest.mark.asyncio
async def test_rejection_feedback_with_images_returns_blocks(fast_config):
    image = "data:image/png;base64,iVBORw0KGgo="
    channel = RecordingChannel([
        AskResult(response=AskResponse.MESSAGE, text="see screenshot", images=[image]),
    ])
    tool = _tool(channel, fast_config, FakeTerminalManager([_done()]))

    result = await tool.execute()

    assert isinstance(result, list)
    assert result[0]["type"] == "text"
    assert "see screenshot" in result[0]["text"]
    assert result[1]["source"] == {
        "type": "base64", "media_type": "image/png", "data": "iVBORw0KGgo=",
    }


@pytest.mark.asyncio
async def test_feedback_suppressed_in_write_only_auto_approve_mode(fast_config):
    channel = RecordingChannel([
        AskResult(response=AskResponse.MESSAGE, text="nope"),
    ])
    config = fast_config.with_overrides(always_allow_write_only=True)
    tool = _tool(channel, config, FakeTerminalManager([_done()]))

    result = await tool.execute()

    assert result == "The user denied this operation."
    assert channel.says == []


@pytest.mark.asyncio
@pytest.mark.parametrize("command", ["", "   "])
async def test_missing_command_never_asks(channel, fast_config, command):
    manager = FakeTerminalManager([_done()])
    tool = _tool(channel, fast_config, manager, command=command)

    result = await tool.execute()

    assert result == MISSING_COMMAND_RESULT
    assert channel.asks == []
    assert channel.says == [(SayKind.ERROR, MISSING_COMMAND_NOTICE, None)]
    assert manager.commands == []


@pytest.mark.asyncio
async def test_no_shell_integration_is_an_error(channel, fast_config):
    manager = FakeTerminalManager([
        ProcessEvent(ProcessEventKind.NO_SHELL_INTEGRATION),
    ])
    tool = _tool(channel, fast_config, manager)

    result = await tool.execute()

    assert result.startswith("The tool execution failed with the following error:")
    assert "No shell integration" in result
    assert (SayKind.SHELL_INTEGRATION_WARNING, None, None) in channel.says
    assert channel.states[-1] == "error"


@pytest.mark.asyncio
async def test_process_error_is_an_error(channel, fast_config):
    manager = FakeTerminalManager([
        _line("starting"),
        ProcessEvent(ProcessEventKind.ERROR, error=RuntimeError("spawn failed")),
    ])
    tool = _tool(channel, fast_config, manager)

    result = await tool.execute()

    assert "Error executing command:" in result
    assert "spawn failed" in result
    assert channel.states[-1] == "error"
    assert "spawn failed" in channel.updates[-1]["output"]


@pytest.mark.asyncio
async def test_terminal_failure_is_an_error(channel, fast_config):
    manager = FakeTerminalManager([_done()])

    async def broken(cwd):
        raise OSError("cannot open terminal")

    manager.get_or_create_terminal = broken
    tool = _tool(channel, fast_config, manager)

    result = await tool.execute()

    assert "cannot open terminal" in result
    assert channel.states == ["loading", "error"]


@pytest.mark.asyncio
async def test_user_feedback_is_appended_before_output(channel, fast_config):
    manager = FakeTerminalManager([_line("ok"), _done()])
    tool = _tool(channel, fast_config, manager)
    tool.add_user_feedback("looks good")

    result = await tool.execute()

    assert result == (
        "Command execution completed successfully."
        "\n\nUser feedback:\n<feedback>\nlooks good\n</feedback>"
        "\n\nOutput:\n<output>\nok\n</output>"
    )
    assert channel.states[-2:] == ["approved", "approved"]
    assert channel.updates[-1]["userFeedback"] == "looks good"


@pytest.mark.asyncio
async def test_return_empty_on_success(channel, fast_config):
    manager = FakeTerminalManager([_line("noise"), _done()])
    tool = _tool(channel, fast_config, manager, return_empty_on_success=True)

    assert await tool.execute() == ""
    assert channel.states[-1] == "approved"


@pytest.mark.asyncio
async def test_no_output_placeholder(channel, fast_config):
    tool = _tool(channel, fast_config, FakeTerminalManager([_done()]), command="true")

    result = await tool.execute()

    assert "<output>\nNo output\n</output>" in result


@pytest.mark.asyncio
async def test_broadcast_failures_do_not_abort_command(channel, fast_config):
    channel.fail_updates = True
    tool = _tool(channel, fast_config, FakeTerminalManager([_line("hi"), _done()]))

    result = await tool.execute()

    assert result.startswith("Command execution completed successfully.")


@pytest.mark.asyncio
async def test_auto_close_is_passed_to_terminal_manager(channel, fast_config):
    manager = FakeTerminalManager([_done()])
    config = fast_config.with_overrides(auto_close_terminal=True)

    await _tool(channel, config, manager, command="ls").execute()

    assert manager.commands == [("ls", True)]


@pytest.mark.asyncio
async def test_sub_message_flag_is_broadcast(channel, fast_config):
    tool = _tool(
        channel, fast_config, FakeTerminalManager([_done()]), is_sub_msg=True,
    )

    await tool.execute()

    assert channel.asks[0]["isSubMsg"] is True
    assert all(u["isSubMsg"] is True for u in channel.updates)


@pytest.mark.asyncio
async def test_cancellation_propagates(channel, fast_config):
    manager = FakeTerminalManager([HANG])
    config = fast_config.with_overrides(command_timeout_seconds=30.0)
    tool = _tool(channel, config, manager)

    task = asyncio.create_task(tool.execute())
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert manager.processes[0].detached
