from __future__ import annotations

"""pool.py — N воркеров тянут задачи из общей очереди.

Порядок результатов между воркерами не гарантирован; внутри одной задачи всё
строго последовательно (fn сама решает, когда идти на следующий уровень).
"""

import threading
from collections import deque
from typing import Callable, Iterable, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def run_bounded(items: Iterable[T], fn: Callable[[T], R], *, concurrency: int = 5) -> list[R]:
    pending: deque[T] = deque(items)
    if not pending:
        return []

    results: list[R] = []
    lock = threading.Lock()
    failure: list[BaseException] = []

    def worker() -> None:
        while True:
            with lock:
                if failure or not pending:
                    return
                item = pending.popleft()
            try:
                r = fn(item)
            except BaseException as e:
                with lock:
                    failure.append(e)
                return
            with lock:
                results.append(r)

    n = max(1, min(int(concurrency), len(pending)))
    threads = [threading.Thread(target=worker, name=f"web-exec-worker-{i}", daemon=True) for i in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    if failure:
        raise failure[0]
    return results
