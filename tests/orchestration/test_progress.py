"""Tests for ProgressReporter."""

from dhis2_dq.orchestration.progress import ProgressReporter


def test_no_callback_is_noop():
    ProgressReporter()("step", 50)


def test_clamps_percent():
    calls = []
    progress = ProgressReporter(lambda step, pct: calls.append(pct))
    progress("low", -10)
    progress("high", 250)
    assert calls == [0.0, 100.0]


def test_scaled_maps_into_parent_range():
    calls = []
    parent = ProgressReporter(lambda step, pct: calls.append((step, pct)))
    child = parent.scaled(50, 100, prefix="Period 2/2: ")

    child("Fetching", 0)
    child("Done", 100)
    child.scaled(0, 50)("Half of child", 100)

    assert calls == [
        ("Period 2/2: Fetching", 50.0),
        ("Period 2/2: Done", 100.0),
        ("Period 2/2: Half of child", 75.0),
    ]


def test_raising_callback_is_logged(caplog):
    def broken(step, pct):
        raise ValueError("closed")

    ProgressReporter(broken)("step", 10)
    assert "Progress callback failed at 'step': closed" in caplog.text
