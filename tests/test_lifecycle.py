# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""Tests for the shared lifecycle controller."""

import pytest

from pyrmq.lifecycle import ClientState, LifecycleController


class TestCompareAndSet:
    """Tests for guarded transitions."""

    def test_forward_transition(self) -> None:
        """Test a matching expected state moves forward."""
        lifecycle = LifecycleController()
        assert lifecycle.compare_and_set(ClientState.INITIAL, ClientState.STARTING)
        assert lifecycle.state == ClientState.STARTING

    def test_mismatch_does_nothing(self) -> None:
        """Test a stale expected state is rejected."""
        lifecycle = LifecycleController()
        assert not lifecycle.compare_and_set(ClientState.STARTED, ClientState.STOPPING)
        assert lifecycle.state == ClientState.INITIAL

    @pytest.mark.parametrize(
        "expected,new",
        [
            (ClientState.STARTED, ClientState.STARTING),
            (ClientState.STOPPED, ClientState.INITIAL),
            (ClientState.STARTED, ClientState.STARTED),
        ],
    )
    def test_backward_transition_rejected(self, expected: ClientState, new: ClientState) -> None:
        """Test transitions never go backwards."""
        with pytest.raises(ValueError, match="Illegal transition"):
            LifecycleController().compare_and_set(expected, new)


class TestSequences:
    """Tests for start and shutdown sequences."""

    def test_hooks_run_in_order(self) -> None:
        """Test start hooks run in order and shutdown hooks in reverse."""
        order: list[str] = []
        lifecycle = LifecycleController("test")
        lifecycle.on_start(lambda: order.append("start-a"))
        lifecycle.on_start(lambda: order.append("start-b"))
        lifecycle.on_shutdown(lambda: order.append("stop-a"))
        lifecycle.on_shutdown(lambda: order.append("stop-b"))

        assert lifecycle.start()
        assert lifecycle.running
        lifecycle.shutdown()

        assert order == ["start-a", "start-b", "stop-b", "stop-a"]
        assert lifecycle.state == ClientState.STOPPING

    def test_start_only_once(self) -> None:
        """Test a second start is refused."""
        calls: list[int] = []
        lifecycle = LifecycleController()
        lifecycle.on_start(lambda: calls.append(1))
        assert lifecycle.start()
        assert not lifecycle.start()
        assert calls == [1]

    def test_failing_shutdown_hook_does_not_stop_others(self) -> None:
        """Test every shutdown hook runs even if one fails."""
        ran: list[str] = []

        def broken() -> None:
            raise RuntimeError("close failed")

        lifecycle = LifecycleController()
        lifecycle.on_shutdown(lambda: ran.append("first"))
        lifecycle.on_shutdown(broken)
        lifecycle.start()
        lifecycle.shutdown()

        assert ran == ["first"]
        assert lifecycle.state == ClientState.STOPPING

    def test_shutdown_without_start(self) -> None:
        """Test shutdown before start leaves INITIAL untouched."""
        lifecycle = LifecycleController()
        lifecycle.shutdown()
        assert lifecycle.state == ClientState.INITIAL
