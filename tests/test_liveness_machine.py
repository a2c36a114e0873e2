import pytest

from votegate.liveness.machine import LivenessStage, LivenessStateMachine


def test_starts_awaiting_blink():
    machine = LivenessStateMachine()
    assert machine.stage is LivenessStage.AWAITING_BLINK
    assert machine.prompt == "Blink now..."
    assert not machine.passed


def test_open_eyes_never_leave_blink_stage(landmarks):
    machine = LivenessStateMachine()
    for _ in range(500):
        machine.observe(landmarks(ear=0.30, mar=0.9, turn=0.9))
    assert machine.stage is LivenessStage.AWAITING_BLINK
    assert machine.progress.blink is False


def test_full_sequence_passes(landmarks):
    machine = LivenessStateMachine()
    assert machine.observe(landmarks(ear=0.2)) is LivenessStage.AWAITING_MOUTH_OPEN
    assert machine.observe(landmarks(mar=0.8)) is LivenessStage.AWAITING_HEAD_TURN
    assert machine.observe(landmarks(turn=0.2)) is LivenessStage.PASSED
    assert machine.passed
    assert (machine.progress.blink, machine.progress.mouth, machine.progress.head) == (True, True, True)


def test_later_stage_frames_do_not_advance_early(landmarks):
    machine = LivenessStateMachine()
    machine.observe(landmarks(ear=0.35, turn=0.9))
    machine.observe(landmarks(ear=0.35, mar=0.9))
    assert machine.stage is LivenessStage.AWAITING_BLINK

    machine.observe(landmarks(ear=0.1))
    machine.observe(landmarks(ear=0.35, mar=0.1, turn=0.95))
    assert machine.stage is LivenessStage.AWAITING_MOUTH_OPEN


def test_one_transition_per_frame(landmarks):
    machine = LivenessStateMachine()
    # Satisfies every rule at once but only the blink stage may complete.
    machine.observe(landmarks(ear=0.1, mar=0.9, turn=0.9))
    assert machine.stage is LivenessStage.AWAITING_MOUTH_OPEN
    assert machine.progress.mouth is False


def test_missing_face_leaves_state_unchanged(landmarks):
    machine = LivenessStateMachine()
    machine.observe(landmarks(ear=0.1))
    for _ in range(10):
        machine.observe(None)
    assert machine.stage is LivenessStage.AWAITING_MOUTH_OPEN
    assert machine.frames_observed == 11


def test_head_turn_bounds_are_exclusive(landmarks):
    machine = LivenessStateMachine()
    machine.observe(landmarks(ear=0.1))
    machine.observe(landmarks(mar=0.9))
    machine.observe(landmarks(turn=0.35))
    machine.observe(landmarks(turn=0.65))
    assert machine.stage is LivenessStage.AWAITING_HEAD_TURN
    machine.observe(landmarks(turn=0.66))
    assert machine.passed


def test_on_passed_fires_exactly_once(landmarks):
    calls = []
    machine = LivenessStateMachine(on_passed=lambda: calls.append(1))
    machine.observe(landmarks(ear=0.1))
    machine.observe(landmarks(mar=0.9))
    machine.observe(landmarks(turn=0.1))
    machine.observe(landmarks(turn=0.9))
    machine.observe(landmarks(ear=0.1))
    assert calls == [1]
    assert machine.passed


def test_reset_clears_progress(landmarks):
    machine = LivenessStateMachine()
    machine.observe(landmarks(ear=0.1))
    machine.observe(landmarks(mar=0.9))
    machine.reset()
    assert machine.stage is LivenessStage.AWAITING_BLINK
    assert machine.progress.blink is False and machine.progress.mouth is False


def test_custom_thresholds(landmarks):
    machine = LivenessStateMachine(ear_threshold=0.2)
    machine.observe(landmarks(ear=0.25))
    assert machine.stage is LivenessStage.AWAITING_BLINK


def test_rejects_inverted_head_turn_bounds():
    with pytest.raises(ValueError):
        LivenessStateMachine(head_turn_low=0.7, head_turn_high=0.3)
