"""
Per-sample timeout protection for parse execution.

Each operation runs on its own daemon thread and the caller waits at most
the sample's budget for it. Python threads cannot be killed, so on timeout
the operation's cancel event is set and the thread is abandoned; engines
poll the event and wind down on their own. A daemon thread never keeps the
process alive.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable
from typing import Generic, TypeVar

from ..core.errors import ErrorContext, SampleTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 5.0

_thread_ids = itertools.count(1)


class _Outcome(Generic[T]):
    def __init__(self) -> None:
        self.value: T | None = None
        self.error: BaseException | None = None
        self.done = False


class ParseTimeoutManager:
    """
    Runs operations with a time budget.

    Args:
        default_timeout: Budget in seconds used when a call names none
    """

    def __init__(self, default_timeout: float = DEFAULT_TIMEOUT_SECONDS):
        if default_timeout <= 0:
            raise ValueError(f"default_timeout must be positive, got {default_timeout!r}")
        self.default_timeout = default_timeout

    def execute_with_timeout(
        self,
        operation: Callable[[threading.Event], T],
        timeout: float | None = None,
        sample_index: int | None = None,
    ) -> T:
        """
        Run ``operation(cancel)`` and return its result.

        Exceptions raised by the operation propagate unchanged.

        Raises:
            SampleTimeoutError: If the operation has not finished in time
        """
        budget = timeout if timeout is not None else self.default_timeout
        cancel = threading.Event()
        outcome: _Outcome[T] = _Outcome()

        def run() -> None:
            try:
                outcome.value = operation(cancel)
            except BaseException as e:  # re-raised on the caller's thread
                outcome.error = e
            finally:
                outcome.done = True

        thread = threading.Thread(target=run, name=f"parse-timeout-{next(_thread_ids)}", daemon=True)
        logger.debug("Executing operation with timeout of %s seconds", budget)
        thread.start()
        thread.join(budget)

        if thread.is_alive() or not outcome.done:
            cancel.set()
            message = (
                f"Parsing exceeded timeout of {budget:g} seconds. "
                "This may indicate a pathological grammar or very large input."
            )
            logger.warning("Sample %s: %s", sample_index if sample_index is not None else "-", message)
            raise SampleTimeoutError(message, ErrorContext(sample_index=sample_index))

        if outcome.error is not None:
            raise outcome.error
        return outcome.value  # type: ignore[return-value]
