"""Tests for mirror/session.py."""

from mirror.models import ConversationMessage
from mirror.session import Session


def test_records_turns_in_order():
    session = Session()
    session.add_user("q1")
    session.add_assistant("a1")
    assert session.history() == [ConversationMessage("user", "q1"), ConversationMessage("assistant", "a1")]
    assert len(session) == 2


def test_history_is_a_copy():
    session = Session()
    session.add_user("q1")
    view = session.history()
    view.append(ConversationMessage("user", "injected"))
    assert len(session) == 1


def test_window_evicts_oldest_pair():
    session = Session(max_history=4)
    for i in range(3):
        session.add_user(f"q{i}")
        session.add_assistant(f"a{i}")

    history = session.history()
    assert len(history) == 4
    assert history[0] == ConversationMessage("user", "q1")
    assert history[0].role == "user"


def test_clear():
    session = Session()
    session.add_user("q")
    session.clear()
    assert session.history() == []
