import pytest

from chat_core.domain.conversation import DEFAULT_TITLE, Conversation, ConversationStore
from chat_core.domain.models import ContextEntry, Message


def test_new_store_has_generated_id_and_default_title():
    a, b = ConversationStore(), ConversationStore()
    assert a.id.startswith("c-")
    assert a.id != b.id
    assert a.title == DEFAULT_TITLE
    assert a.snapshot().is_blank


def test_mutations_notify_with_index():
    store = ConversationStore()
    events = []
    store.subscribe(lambda e: events.append((e.kind, e.index)))
    idx = store.append_message("user", "hi")
    store.set_message_content(idx, "hey")
    store.set_message_auxiliary(idx, "嘿")
    store.set_title("t")
    assert events == [("append", 0), ("content", 0), ("auxiliary", 0), ("title", None)]


def test_reads_return_copies():
    store = ConversationStore()
    store.append_message("assistant", "x")
    msg = store.message(0)
    msg.content = "mutated"
    assert store.message(0).content == "x"
    snap = store.snapshot()
    snap.transcript.append(Message(role="user", content="y"))
    assert len(store) == 1


def test_context_drops_auxiliary():
    store = ConversationStore(Conversation(id="c1", title="t", transcript=[Message("user", "a", auxiliary="b")]))
    assert store.context() == [ContextEntry(role="user", content="a")]


def test_out_of_range_index_raises():
    store = ConversationStore()
    with pytest.raises(IndexError):
        store.set_message_content(0, "x")
    with pytest.raises(IndexError):
        store.message(-1)
