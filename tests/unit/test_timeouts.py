"""Tests for per-sample timeout protection."""

import threading

import pytest

from grammarlens.core.errors import SampleTimeoutError
from grammarlens.runtime import ParseTimeoutManager


class TestParseTimeoutManager:
    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError):
            ParseTimeoutManager(0)

    def test_returns_result(self):
        manager = ParseTimeoutManager(1.0)
        assert manager.execute_with_timeout(lambda cancel: 42) == 42

    def test_operation_error_propagates(self):
        def fail(cancel):
            raise KeyError("boom")

        with pytest.raises(KeyError):
            ParseTimeoutManager(1.0).execute_with_timeout(fail)

    def test_timeout_sets_cancel_event(self):
        events: list[threading.Event] = []

        def slow(cancel):
            events.append(cancel)
            cancel.wait(5)
            return "late"

        manager = ParseTimeoutManager(5.0)
        with pytest.raises(SampleTimeoutError) as exc_info:
            manager.execute_with_timeout(slow, timeout=0.05, sample_index=7)

        assert events[0].is_set()
        assert exc_info.value.context.sample_index == 7
        assert "exceeded timeout of 0.05 seconds" in exc_info.value.message
