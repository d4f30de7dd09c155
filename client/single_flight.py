from __future__ import annotations

import threading
from concurrent.futures import Future, InvalidStateError
from typing import Any, Callable, Dict, Hashable, Optional


class SingleFlight:
    """
    Collapses concurrent calls that share a key into one execution.

    The first caller for a key runs the function; callers arriving while it
    is in flight wait on the same Future and get its result or exception.
    Share one instance between consumers by passing it to them explicitly.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._calls: Dict[Hashable, Future] = {}

    def do(self, key: Hashable, fn: Callable[[], Any], timeout: Optional[float] = None) -> Any:
        with self._lock:
            future = self._calls.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._calls[key] = future

        if leader:
            try:
                result = fn()
            except Exception as exc:
                self._settle(future, exc=exc)
            else:
                self._settle(future, result=result)
            finally:
                with self._lock:
                    if self._calls.get(key) is future:
                        del self._calls[key]

        return future.result(timeout=timeout)

    def in_flight(self, key: Hashable) -> Optional[Future]:
        with self._lock:
            return self._calls.get(key)

    def cancel(self, key: Hashable) -> bool:
        """Release every waiter on key with CancelledError; the running call is not interrupted."""
        with self._lock:
            future = self._calls.pop(key, None)
        return future.cancel() if future is not None else False

    @staticmethod
    def _settle(future: Future, result: Any = None, exc: Optional[BaseException] = None) -> None:
        try:
            if exc is not None:
                future.set_exception(exc)
            else:
                future.set_result(result)
        except InvalidStateError:
            # cancelled while running
            pass
