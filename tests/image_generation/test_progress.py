"""Tests for the progress event contract."""
from tryon.services.image_generation import ProgressEvent, ProgressReporter, Stage


def test_listener_receives_events_in_order():
    received: list[ProgressEvent] = []
    reporter = ProgressReporter(received.append)

    reporter.emit(Stage.STARTING, 0)
    reporter.emit(Stage.REQUESTING, 25)
    reporter.emit(Stage.SUCCEEDED, 100)

    assert received == [
        ProgressEvent(Stage.STARTING, 0),
        ProgressEvent(Stage.REQUESTING, 25),
        ProgressEvent(Stage.SUCCEEDED, 100),
    ]
    assert reporter.events == received


def test_percentage_never_decreases():
    reporter = ProgressReporter()
    reporter.emit(Stage.PENDING, 10)
    reporter.emit(Stage.RUNNING, 40)
    reporter.emit(Stage.RUNNING, 20)
    reporter.emit(Stage.RUNNING, None)
    reporter.emit(Stage.RUNNING, "55")

    assert [e.progress for e in reporter.events] == [10, 40, 40, None, 55]


def test_percentage_is_clamped():
    reporter = ProgressReporter()
    reporter.emit(Stage.RUNNING, 250)
    assert reporter.events[-1].progress == 100
    assert ProgressReporter().emit(Stage.RUNNING, -5).progress == 0


def test_new_job_starts_its_own_sequence():
    first = ProgressReporter()
    first.emit(Stage.RUNNING, 90)
    second = ProgressReporter()
    assert second.emit(Stage.STARTING, 0).progress == 0


def test_single_terminal_event():
    reporter = ProgressReporter()
    reporter.emit(Stage.STARTING, 0)
    assert reporter.fail() == ProgressEvent(Stage.FAILED, None)
    assert reporter.fail() is None
    assert reporter.emit(Stage.SUCCEEDED, 100) is None
    assert [e.stage for e in reporter.events] == [Stage.STARTING, Stage.FAILED]
    assert reporter.terminal


def test_failed_has_no_percentage():
    reporter = ProgressReporter()
    reporter.emit(Stage.RUNNING, 50)
    assert reporter.emit(Stage.FAILED, 80).progress is None


def test_stage_cannot_move_backwards():
    reporter = ProgressReporter()
    reporter.emit(Stage.RUNNING, 50)
    assert reporter.emit(Stage.REQUESTING, 60) is None
    assert reporter.stage == Stage.RUNNING


def test_unsubscribe():
    received: list[ProgressEvent] = []
    reporter = ProgressReporter()
    unsubscribe = reporter.subscribe(received.append)
    reporter.emit(Stage.STARTING, 0)
    unsubscribe()
    reporter.emit(Stage.REQUESTING, 5)
    assert len(received) == 1
