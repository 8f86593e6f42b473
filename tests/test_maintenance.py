"""
Tests for the background maintenance timer.
"""

import threading
import time

import pytest

from venue_retrieval.maintenance import PeriodicWorker


def test_runs_periodically_and_stops():
    ran = threading.Event()
    calls = []

    def action():
        calls.append(1)
        if len(calls) >= 2:
            ran.set()

    worker = PeriodicWorker("test-worker", 0.01, action)
    worker.start()
    assert ran.wait(2.0)
    worker.stop()

    assert not worker.running
    stopped_at = len(calls)
    time.sleep(0.05)
    assert len(calls) == stopped_at


def test_failures_do_not_stop_the_schedule():
    recovered = threading.Event()
    calls = []

    def action():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")
        recovered.set()

    worker = PeriodicWorker("flaky-worker", 0.01, action)
    worker.start()
    try:
        assert recovered.wait(2.0)
    finally:
        worker.stop()


def test_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        PeriodicWorker("bad", 0, lambda: None)
