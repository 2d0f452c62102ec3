import queue

from chat_core.domain.conversation import ConversationStore
from chat_core.engine.aggregator import Aggregation, MessageContentTarget
from chat_core.engine.runner import ThreadedStreamRunner, run_inline


def drain(posted: "queue.Queue", agg: Aggregation, timeout: float = 2.0) -> None:
    while not agg.done:
        posted.get(timeout=timeout)()


def test_run_inline_returns_text():
    store = ConversationStore()
    idx = store.append_message("assistant", "")
    assert run_inline(iter(["a", "b"]), Aggregation(MessageContentTarget(store, idx))) == "ab"


def test_threaded_runner_mutates_only_through_posted_callbacks():
    store = ConversationStore()
    idx = store.append_message("assistant", "")
    posted: "queue.Queue" = queue.Queue()
    runner = ThreadedStreamRunner(posted.put)
    agg = Aggregation(MessageContentTarget(store, idx))

    worker = runner(iter(["x", "y", "z"]), agg)
    worker.join(timeout=2.0)

    # 工作线程结束后，状态仍未改变，直到所属线程执行投递的回调
    assert store.message(idx).content == ""
    drain(posted, agg)
    assert store.message(idx).content == "xyz"


def test_threaded_runner_closes_cancelled_stream():
    store = ConversationStore()
    idx = store.append_message("assistant", "")
    posted: "queue.Queue" = queue.Queue()
    agg = Aggregation(MessageContentTarget(store, idx))
    closed = []

    def source():
        try:
            yield "first"
            agg.cancel()
            yield "second"
            yield "third"
        finally:
            closed.append(True)

    worker = ThreadedStreamRunner(posted.put)(source(), agg)
    worker.join(timeout=2.0)
    drain(posted, agg)

    assert closed == [True]
    assert store.message(idx).content == ""
