from __future__ import annotations

import threading
import time
from typing import Callable, Iterable, List, Optional, Tuple, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def run_with_deadline(
    items: Iterable[T],
    fn: Callable[[T], R],
    *,
    timeout: float,
    stop: threading.Event,
    name: str = "tomato-worker",
) -> Tuple[List[Optional[R]], List[int]]:
    """Run fn over items on one daemon thread each until all finish or `timeout` elapses.

    Returns (results, pending_indexes). `stop` is set once the call returns so
    workers can leave their poll loops. Workers stuck in blocking I/O are left
    behind; being daemon threads they never keep the interpreter alive.
    An exception from a finished worker propagates to the caller.
    """
    items = list(items)
    if not items:
        return [], []

    results: List[Optional[R]] = [None] * len(items)
    errors: List[Optional[Exception]] = [None] * len(items)
    finished = [threading.Event() for _ in items]

    def _target(idx: int, item: T) -> None:
        try:
            results[idx] = fn(item)
        except Exception as e:
            errors[idx] = e
        finally:
            finished[idx].set()

    for idx, item in enumerate(items):
        threading.Thread(target=_target, args=(idx, item), name=f"{name}-{idx}", daemon=True).start()

    deadline = time.monotonic() + max(0.0, timeout)
    try:
        for ev in finished:
            ev.wait(max(0.0, deadline - time.monotonic()))
    finally:
        stop.set()

    pending = [idx for idx, ev in enumerate(finished) if not ev.is_set()]
    for idx, err in enumerate(errors):
        if err is not None and idx not in pending:
            raise err
    return results, pending
