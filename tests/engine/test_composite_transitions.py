from __future__ import annotations

import pytest

from storyboard.core.config import configure
from storyboard.core.exceptions import (
    HandlerFailedError,
    ReentrantTransitionError,
    TransitionCancelledError,
    UnknownSceneError,
)
from storyboard.core.storyboard import Storyboard

from helpers.recording import Recorder


def _idle_running(rec: Recorder, *, running_enter=None, idle_exit=None) -> Storyboard:
    return Storyboard(
        initial="idle",
        scenes={
            "idle": {
                "enter": rec.handler("idle.enter"),
                "exit": idle_exit or rec.handler("idle.exit"),
            },
            "running": {
                "enter": running_enter or rec.handler("running.enter"),
                "exit": rec.handler("running.exit"),
            },
        },
    )


def _record_events(board: Storyboard, rec: Recorder, names) -> None:
    for name in names:
        board.subscribe(name, rec.listener(name))


@pytest.mark.fast
def test_start_then_transition_succeeds() -> None:
    rec = Recorder()
    board = _idle_running(rec)

    assert board.start().succeeded
    outcome = board.transition_to("running")

    assert outcome.succeeded
    assert board.current_state_name() == "running"
    assert board.is_currently("running")
    assert rec.calls == ["idle.enter", "idle.exit", "running.enter"]


@pytest.mark.fast
def test_failed_enter_rolls_back_and_publishes_fail() -> None:
    rec = Recorder()
    board = _idle_running(rec, running_enter=rec.handler("running.enter", result=False))
    board.start()
    _record_events(board, rec, ["fail", "end"])
    rec.calls.clear()

    outcome = board.transition_to("running")

    assert outcome.failed
    assert isinstance(outcome.reason, HandlerFailedError)
    assert board.current_state_name() == "idle"
    assert not board.is_transitioning()
    assert rec.calls == ["idle.exit", "running.enter", "fail"]


@pytest.mark.fast
def test_failed_exit_skips_enter() -> None:
    rec = Recorder()
    board = _idle_running(rec, idle_exit=rec.handler("idle.exit", result=False))
    board.start()
    _record_events(board, rec, ["exit", "fail"])
    rec.calls.clear()

    outcome = board.transition_to("running")

    assert outcome.failed
    assert rec.calls == ["idle.exit", "fail"]
    assert board.current_state_name() == "idle"


@pytest.mark.fast
def test_unknown_scene_raises_without_side_effects() -> None:
    rec = Recorder()
    board = _idle_running(rec)
    board.start()
    _record_events(board, rec, ["start", "fail"])
    rec.calls.clear()

    with pytest.raises(UnknownSceneError) as excinfo:
        board.transition_to("missing")

    assert isinstance(excinfo.value, KeyError)
    assert excinfo.value.context["scene"] == "missing"
    assert board.current_state_name() == "idle"
    assert not board.is_transitioning()
    assert rec.calls == []


@pytest.mark.fast
def test_start_is_idempotent() -> None:
    rec = Recorder()
    board = _idle_running(rec)

    board.start()
    again = board.start()

    assert again.succeeded
    assert rec.calls == ["idle.enter"]


@pytest.mark.fast
def test_round_trip_runs_each_handler_once_in_order() -> None:
    rec = Recorder()
    board = _idle_running(rec)
    board.start()
    before = board.current_state_name()
    rec.calls.clear()

    assert board.transition_to("running").succeeded
    assert board.transition_to("idle").succeeded

    assert board.current_state_name() == before
    assert rec.calls == ["idle.exit", "running.enter", "running.exit", "idle.enter"]


@pytest.mark.fast
def test_second_request_during_transition_is_rejected() -> None:
    rec = Recorder()
    board = _idle_running(rec, running_enter=rec.deferred("running.enter"))
    board.start()

    first = board.transition_to("running")
    assert board.is_transitioning()

    second = board.transition_to("idle")
    assert second.failed
    assert isinstance(second.reason, ReentrantTransitionError)
    assert board.current_state_name() == "idle"

    rec.pending["running.enter"].signal()
    assert first.succeeded
    assert board.current_state_name() == "running"


@pytest.mark.fast
def test_lifecycle_events_and_namespaced_events() -> None:
    rec = Recorder()
    board = _idle_running(rec)
    board.start()
    names = [
        "start", "exit", "enter", "end", "fail",
        "idle:exit", "running:enter", "running:start", "running:end",
    ]
    _record_events(board, rec, names)
    rec.calls.clear()

    board.transition_to("running")

    assert [c for c in rec.calls if "." not in c] == [
        "start", "exit", "idle:exit", "enter", "running:enter", "end",
    ]


@pytest.mark.fast
def test_lifecycle_events_receive_from_and_to_nodes() -> None:
    rec = Recorder()
    board = _idle_running(rec)
    board.start()
    seen = []
    board.subscribe("end", lambda from_node, to_node: seen.append((from_node.name, to_node.name)))

    board.transition_to("running")

    assert seen == [("idle", "running")]


@pytest.mark.fast
def test_first_start_has_no_exit_event() -> None:
    rec = Recorder()
    board = _idle_running(rec)
    _record_events(board, rec, ["start", "exit", "enter", "end"])

    board.start()

    assert rec.calls == ["start", "idle.enter", "enter", "end"]


@pytest.mark.fast
def test_namespaced_start_and_end_can_be_enabled() -> None:
    configure(namespaced_events=["start", "exit", "enter", "end", "fail"])
    rec = Recorder()
    board = _idle_running(rec)
    _record_events(board, rec, ["idle:start", "idle:enter", "idle:end"])

    board.start()

    assert rec.calls == ["idle:start", "idle.enter", "idle:enter", "idle:end"]


@pytest.mark.fast
def test_composite_without_initial_starts_in_enter_scene() -> None:
    rec = Recorder()
    board = Storyboard(enter=rec.handler("board.enter"), scenes={"a": rec.handler("a.enter")})

    assert board.start().succeeded
    assert board.current_state_name() == "enter"
    assert rec.calls == ["board.enter"]

    assert board.transition_to("a").succeeded
    assert rec.calls == ["board.enter", "a.enter"]


@pytest.mark.fast
def test_nested_storyboards_enter_initial_and_exit_through_exit_scene() -> None:
    rec = Recorder()
    board = Storyboard(
        initial="level",
        scenes={
            "level": {
                "initial": "one",
                "exit": rec.handler("level.exit"),
                "scenes": {
                    "one": {"enter": rec.handler("one.enter"), "exit": rec.handler("one.exit")},
                    "two": rec.handler("two.enter"),
                },
            },
            "menu": rec.handler("menu.enter"),
        },
    )

    assert board.start().succeeded
    level = board.scenes["level"]
    assert board.current_state_name() == "level"
    assert level.current_state_name() == "one"

    assert level.transition_to("two").succeeded
    assert board.transition_to("menu").succeeded

    assert level.current_state_name() == "exit"
    assert board.current_state_name() == "menu"
    assert rec.calls == ["one.enter", "one.exit", "two.enter", "level.exit", "menu.enter"]


@pytest.mark.fast
def test_nested_exit_failure_propagates_to_parent() -> None:
    rec = Recorder()
    board = Storyboard(
        initial="level",
        scenes={
            "level": {
                "initial": "one",
                "scenes": {"one": {"exit": rec.handler("one.exit", result=False)}},
            },
            "menu": rec.handler("menu.enter"),
        },
    )
    board.start()

    outcome = board.transition_to("menu")

    assert outcome.failed
    assert board.current_state_name() == "level"
    assert board.scenes["level"].current_state_name() == "one"
    assert "menu.enter" not in rec.calls


@pytest.mark.fast
def test_cancel_transition_is_cooperative() -> None:
    rec = Recorder()
    board = _idle_running(rec, running_enter=rec.deferred("running.enter", once=True))
    board.start()
    _record_events(board, rec, ["fail"])

    outcome = board.transition_to("running")
    running = board.scenes["running"]
    assert running.is_transitioning()

    assert board.cancel_transition() is True

    assert outcome.failed
    assert isinstance(outcome.reason, TransitionCancelledError)
    assert not board.is_transitioning()
    assert not running.is_transitioning()
    assert board.current_state_name() == "idle"
    assert rec.calls[-1] == "fail"

    # The handler finishing later changes nothing.
    rec.pending["running.enter"].signal(True)
    assert board.current_state_name() == "idle"
    assert running.current_state_name() is None

    assert board.transition_to("running").succeeded
    assert board.current_state_name() == "running"


@pytest.mark.fast
def test_cancel_without_transition_is_a_noop() -> None:
    board = _idle_running(Recorder())
    assert board.cancel_transition() is False
    board.start()
    assert board.cancel_transition() is False


@pytest.mark.fast
def test_cancel_leaves_independently_moving_children_alone() -> None:
    rec = Recorder()
    board = Storyboard(
        initial="idle",
        scenes={
            "idle": {},
            "running": rec.deferred("running.enter"),
            "side": {"scenes": {"x": rec.deferred("x.enter")}},
        },
    )
    board.start()
    side = board.scenes["side"]
    side_move = side.transition_to("x")

    outcome = board.transition_to("running")
    assert board.cancel_transition() is True

    assert outcome.failed
    assert not board.scenes["running"].is_transitioning()
    assert side.is_transitioning()
    assert not side_move.settled

    rec.pending["x.enter"].signal()
    assert side_move.succeeded
    assert side.current_state_name() == "x"


@pytest.mark.fast
def test_raising_lifecycle_subscriber_does_not_strand_transition(caplog) -> None:
    rec = Recorder()
    board = _idle_running(rec)
    board.start()

    def broken(from_node, to_node):
        raise RuntimeError("listener bug")

    board.subscribe("enter", broken, priority=10)
    _record_events(board, rec, ["end"])
    rec.calls.clear()

    with caplog.at_level("ERROR", logger="storyboard"):
        outcome = board.transition_to("running")

    assert outcome.succeeded
    assert not board.is_transitioning()
    assert board.current_state_name() == "running"
    assert rec.calls == ["idle.exit", "running.enter", "end"]
    assert any("Subscriber to 'enter'" in r.getMessage() for r in caplog.records)

    board.unsubscribe("enter", broken)
    assert board.transition_to("idle").succeeded


@pytest.mark.fast
def test_raising_fail_subscriber_still_rejects_transition() -> None:
    rec = Recorder()
    board = _idle_running(rec, running_enter=rec.handler("running.enter", result=False))
    board.start()
    board.subscribe("fail", lambda from_node, to_node: 1 / 0)

    outcome = board.transition_to("running")

    assert outcome.failed
    assert not board.is_transitioning()
    assert board.current_state_name() == "idle"
    assert board.transition_to("running").failed
