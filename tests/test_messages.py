from __future__ import annotations

from routerchat.llm.client import build_messages
from routerchat.llm.types import HistoryTurn, Message, MessageContext
from tests.utils import FakeUpstream, make_client


def test_system_history_user_order() -> None:
    context = MessageContext(
        system="S",
        history=[{"role": "user", "content": "A"}, {"role": "assistant", "content": "B"}],
        user="C",
    )
    assert build_messages(context) == [
        Message(role="system", content="S"),
        Message(role="user", content="A"),
        Message(role="assistant", content="B"),
        Message(role="user", content="C"),
    ]


def test_user_only() -> None:
    assert build_messages(MessageContext(user="hello")) == [Message(role="user", content="hello")]


def test_history_turn_objects_and_empty_system() -> None:
    context = MessageContext(
        user="next",
        system="",
        history=[HistoryTurn(role="assistant", content="earlier")],
    )
    assert [(message.role, message.content) for message in build_messages(context)] == [
        ("assistant", "earlier"),
        ("user", "next"),
    ]


def test_client_helper_matches_module_function() -> None:
    client = make_client(FakeUpstream())
    context = MessageContext(system="S", user="U")
    assert client.build_messages(context) == build_messages(context)
