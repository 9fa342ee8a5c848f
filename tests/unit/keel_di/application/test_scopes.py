"""Unit tests for ThreadScope."""

import threading

from keel_di.application.scopes import ThreadScope


class TestThreadScope:
    """Test cases for the per-thread scope."""

    def test_one_instance_per_thread(self):
        """Test that each thread gets its own instance."""
        scope = ThreadScope()
        main = scope.get("session", object)
        other = []

        thread = threading.Thread(target=lambda: other.append(scope.get("session", object)))
        thread.start()
        thread.join()

        assert scope.get("session", object) is main
        assert other[0] is not main

    def test_remove(self):
        """Test that removing returns the object and forgets the callback."""
        scope = ThreadScope()
        calls = []
        instance = scope.get("session", object)
        scope.register_destruction_callback("session", lambda: calls.append("session"))

        assert scope.remove("session") is instance
        scope.clear()

        assert calls == []
        assert scope.remove("session") is None

    def test_clear_runs_callbacks_in_reverse(self):
        """Test that clear destroys the newest objects first."""
        scope = ThreadScope()
        calls = []
        for name in ("a", "b"):
            scope.get(name, object)
            scope.register_destruction_callback(name, lambda name=name: calls.append(name))

        scope.clear()

        assert calls == ["b", "a"]

    def test_failing_callback_does_not_stop_clear(self, caplog):
        """Test that a failing callback is logged and the rest still run."""
        scope = ThreadScope()
        calls = []

        def fail():
            raise RuntimeError("boom")

        scope.register_destruction_callback("a", lambda: calls.append("a"))
        scope.register_destruction_callback("b", fail)

        scope.clear()

        assert calls == ["a"]
        assert "thread-scoped component 'b' failed" in caplog.text
