"""Tests for http_oneshot.timeouts.

Tests cover:
- Defaults (1.0s connect, no default request timeout)
- Setter/getter round trip, including unvalidated zero and negative values
- Module-level functions act on the process-wide controller
- Concurrent setters and getters
"""

import threading

import pytest

from http_oneshot import timeouts
from http_oneshot.timeouts import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_CONTROLLER,
    TimeoutController,
    get_connect_timeout,
    set_connect_timeout,
)


class TestTimeoutController:
    def test_defaults(self):
        controller = TimeoutController()
        assert controller.get_connect_timeout() == 1.0
        assert controller.get_default_request_timeout() is None

    def test_set_connect_timeout(self):
        controller = TimeoutController()
        controller.set_connect_timeout(0.1)
        assert controller.get_connect_timeout() == 0.1

    @pytest.mark.parametrize("seconds", [0, -1.0])
    def test_values_not_validated(self, seconds):
        controller = TimeoutController()
        controller.set_connect_timeout(seconds)
        assert controller.get_connect_timeout() == seconds

    def test_default_request_timeout(self):
        controller = TimeoutController(default_request_timeout=5.0)
        assert controller.get_default_request_timeout() == 5.0
        controller.set_default_request_timeout(None)
        assert controller.get_default_request_timeout() is None

    def test_reset(self):
        controller = TimeoutController(connect_timeout=0.2, default_request_timeout=3.0)
        controller.reset()
        assert controller.get_connect_timeout() == DEFAULT_CONNECT_TIMEOUT
        assert controller.get_default_request_timeout() is None

    def test_instances_are_independent(self):
        first = TimeoutController()
        second = TimeoutController()
        first.set_connect_timeout(0.3)
        assert second.get_connect_timeout() == 1.0

    def test_concurrent_access(self):
        controller = TimeoutController()
        values = [0.1, 0.2, 0.3, 0.4]
        seen: list[float] = []
        lock = threading.Lock()

        def writer(value: float) -> None:
            for _ in range(200):
                controller.set_connect_timeout(value)

        def reader() -> None:
            for _ in range(200):
                value = controller.get_connect_timeout()
                with lock:
                    seen.append(value)

        threads = [threading.Thread(target=writer, args=(v,)) for v in values]
        threads += [threading.Thread(target=reader) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert controller.get_connect_timeout() in values
        assert set(seen) <= set(values) | {1.0}


class TestProcessWideController:
    def test_module_functions_use_default_controller(self):
        set_connect_timeout(0.1)
        assert get_connect_timeout() == 0.1
        assert DEFAULT_CONTROLLER.get_connect_timeout() == 0.1

    def test_default_restored_between_tests(self):
        """The autouse reset fixture restores the 1.0s default."""
        assert timeouts.get_connect_timeout() == 1.0
