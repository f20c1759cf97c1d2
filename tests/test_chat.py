# tests/test_chat.py

from __future__ import annotations

import pytest

from taskmaster.cli.commands import registry
from taskmaster.core.chat import CHAT_SYSTEM_PROMPT, ask, build_system_prompt, stream_reply
from taskmaster.llm.offline import OfflineLLMClient


def test_stream_reply_sends_single_user_message(state) -> None:
    state.llm.next_text = "Hi there"

    chunks = list(stream_reply(state, "  hello?  "))

    assert chunks == ["Hi there"]
    messages, system_prompt = state.llm.calls[0]
    assert messages == [{"role": "user", "content": "hello?"}]
    assert system_prompt.startswith(CHAT_SYSTEM_PROMPT)


def test_blank_question_does_not_call_the_model(state) -> None:
    assert list(stream_reply(state, "   ")) == []
    assert state.llm.calls == []


def test_system_prompt_lists_open_tasks_only(state, service) -> None:
    open_task = service.create_task("Write report", "q3 numbers")
    gone = service.create_task("Old idea", "drop it")
    service.cancel_task(gone.id, "no longer needed")

    prompt = build_system_prompt(state)

    assert f"[scheduled] {open_task.title} (priority medium)" in prompt
    assert gone.title not in prompt


def test_ask_command_returns_model_answer(state) -> None:
    state.llm.next_text = "  Start with the report.  "
    notes: list[str] = []

    out = registry.handle(state, "/ask what should I do first?", emit=notes.append)

    assert out == "Start with the report."
    assert notes == ["[LLM] Thinking..."]
    assert state.llm.calls[0][0] == [{"role": "user", "content": "what should I do first?"}]


def test_ask_without_question_shows_usage(state) -> None:
    assert registry.handle(state, "/ask") == "Usage: /ask <question>"
    assert state.llm.calls == []


def test_ask_propagates_llm_runtime_errors(state) -> None:
    state.llm.error = RuntimeError("model down")
    with pytest.raises(RuntimeError):
        registry.handle(state, "/ask anything")


def test_offline_client_answers_chat(state) -> None:
    state.llm = OfflineLLMClient()

    answer = ask(state, "how long will this take?")

    assert answer.startswith("Offline mode")
    assert "how long will this take?" in answer
