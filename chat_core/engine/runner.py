"""聚合的驱动方式。

- run_inline: 在当前线程里一次跑完，用于测试和命令行。
- ThreadedStreamRunner: 后台线程只负责拉取网络片段，每个片段通过 post
  投递回所属线程（例如 Tk 的 ``root.after``）再执行 feed/finish，
  因此会话状态始终只在一个线程里被修改。
"""

import threading
from functools import partial
from typing import Callable, Iterable, Protocol

from chat_core.domain.exceptions import BusinessError
from chat_core.engine.aggregator import Aggregation
from chat_core.infrastructure.logging.logger import logger


class StreamRunner(Protocol):
    def __call__(self, fragments: Iterable[str], aggregation: Aggregation) -> object:
        ...


def run_inline(fragments: Iterable[str], aggregation: Aggregation) -> str:
    return aggregation.run(fragments)


class ThreadedStreamRunner:
    def __init__(self, post: Callable[[Callable[[], None]], None]):
        self._post = post

    def __call__(self, fragments: Iterable[str], aggregation: Aggregation) -> threading.Thread:
        aggregation.begin()
        worker = threading.Thread(target=self._pump, args=(fragments, aggregation), daemon=True)
        worker.start()
        return worker

    def _pump(self, fragments: Iterable[str], aggregation: Aggregation) -> None:
        iterator = iter(fragments)
        try:
            for fragment in iterator:
                if aggregation.cancelled:
                    break
                self._post(partial(aggregation.feed, fragment))
        except BusinessError as e:
            self._post(partial(aggregation.fail, e))
        except Exception:
            logger.exception("Stream worker crashed")
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()
            self._post(aggregation.finish)
