"""Tests for the Gemini message conversion and the prompt builder."""

from cursor_bot.models.task import Task
from cursor_bot.services.llm.base import AssistantTurn, StepRecord, ToolCall, ToolResult, ToolTurn, UserTurn, chat_turn_adapter
from cursor_bot.services.llm.gemini import _to_content
from cursor_bot.services.prompt import build_system_prompt


def test_user_turn_to_content():
    content = _to_content(UserTurn(content="hi"))
    assert content.role == "user"
    assert content.parts[0].text == "hi"


def test_assistant_turn_with_calls_to_content():
    content = _to_content(AssistantTurn(
        text="Starting", tool_calls=[ToolCall(id="c1", name="cursor_task_start", arguments={"repo_url": "r"})],
    ))
    assert content.role == "model"
    assert content.parts[0].text == "Starting"
    assert content.parts[1].function_call.name == "cursor_task_start"
    assert content.parts[1].function_call.args == {"repo_url": "r"}


def test_tool_turn_to_content():
    content = _to_content(ToolTurn(results=[
        ToolResult(call_id="c1", name="cursor_models_list", result={"models": ["a"]}),
    ]))
    assert content.role == "user"
    assert content.parts[0].function_response.name == "cursor_models_list"
    assert content.parts[0].function_response.response == {"models": ["a"]}


def test_turns_parse_by_role():
    turn = chat_turn_adapter.validate_python({"role": "tool", "results": []})
    assert isinstance(turn, ToolTurn)


def test_step_record_to_dict():
    step = StepRecord(
        text="", tool_calls=[ToolCall(id="c1", name="x")], tool_results=[], finish_reason="STOP", usage={},
    )
    data = step.to_dict()
    assert data["tool_calls"] == [{"id": "c1", "name": "x", "arguments": {}}]
    assert "timestamp" in data


def test_system_prompt_without_allow_list():
    prompt = build_system_prompt(allowed_repos=[], active_tasks=[], tool_names=["cursor_task_start"])
    assert "all (no allow-list configured)" in prompt
    assert "Active tasks for this user: 0" in prompt


def test_system_prompt_lists_tasks():
    task = Task(user_id=1, chat_id=1, composer_id="bc-1", repo_url="r", task_description="fix it", status="RUNNING")
    prompt = build_system_prompt(allowed_repos=["r"], active_tasks=[task], tool_names=[])
    assert '- bc-1 | r | RUNNING | "fix it"' in prompt
