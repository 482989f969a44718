import pytest

from agent.actions import (
    BubbleAdjustments,
    ContinuousAction,
    DiscreteAction,
    LanternAdjustments,
    MalformedResponseError,
    Transition,
    decode_bubble_action,
    decode_lantern_action,
    decode_mirror_action,
)


def test_bubble_action_requires_adjustments():
    with pytest.raises(MalformedResponseError, match="adjustments"):
        decode_bubble_action({"action": [1, 2, 3, 4, 5, 6, 0]})


def test_bubble_action_keeps_action_vector():
    action = decode_bubble_action({"action": [1, 2, 3, 4, 5, 6, 0], "adjustments": {}})
    assert action.values == (1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 0.0)
    assert action.adjustments == BubbleAdjustments()


def test_bubble_action_reads_adjustments():
    action = decode_bubble_action(
        {"action": [0.0] * 7, "adjustments": {"bubble_size": 0.1, "spawn_rate": -0.2}}
    )
    assert action.adjustments.bubble_size == 0.1
    assert action.adjustments.spawn_rate == -0.2
    assert action.adjustments.positive_prob == 0.0


@pytest.mark.parametrize(
    "payload",
    [
        None,
        [],
        {},
        {"action": [0.0] * 6},
        {"action": [0.0] * 6 + [True]},
        {"action": "1,2,3"},
        {"action": [0.0] * 7, "adjustments": [1]},
        {"action": [0.0] * 7, "adjustments": {"bubble_size": "big"}},
    ],
)
def test_bubble_action_rejects_malformed(payload):
    with pytest.raises(MalformedResponseError):
        decode_bubble_action(payload)


def test_mirror_action_requires_adjustments():
    with pytest.raises(MalformedResponseError):
        decode_mirror_action({"action": [0.1, 0.2], "log_prob": -0.5})


def test_mirror_action_defaults_log_prob():
    action = decode_mirror_action({"adjustments": {"gap_change": 1.5}})
    assert action.log_prob == 0.0
    assert action.adjustments.gap_change == 1.5
    assert action.adjustments.difficulty_change == 0.0


def test_lantern_action_decodes_light_states():
    action = decode_lantern_action(
        {
            "action_index": 3,
            "adjustments": {"light_states": [-1, 0, 1.0, 2], "light_speed_change": 0.5},
            "q_value": 1.25,
            "epsilon": 0.1,
        },
        light_count=4,
    )
    assert action.index == 3
    assert action.adjustments.light_states == (-1, 0, 1, 2)
    assert action.adjustments.light_speed_change == 0.5
    assert action.q_value == 1.25


@pytest.mark.parametrize(
    "payload",
    [
        {"action_index": 1.0, "adjustments": {"light_states": [0, 0, 0, 0]}},
        {"action_index": True, "adjustments": {"light_states": [0, 0, 0, 0]}},
        {"action_index": 1},
        {"action_index": 1, "adjustments": {"light_states": [0, 0, 0]}},
        {"action_index": 1, "adjustments": {"light_states": [0, 0, 0, 1.5]}},
        {"action_index": 1, "adjustments": {"light_states": [0, 0, 0, float("inf")]}},
    ],
)
def test_lantern_action_rejects_malformed(payload):
    with pytest.raises(MalformedResponseError):
        decode_lantern_action(payload, light_count=4)


def test_transition_payload_serializes_action_kind():
    discrete = Transition([0.0], DiscreteAction(2, LanternAdjustments()), 1.0, [1.0], False)
    assert discrete.to_payload()["action"] == 2
    assert "log_prob" not in discrete.to_payload()

    continuous = Transition(
        [0.0], ContinuousAction((0.5, 0.25), BubbleAdjustments()), 1.0, [1.0], True, log_prob=-0.3
    )
    payload = continuous.to_payload()
    assert payload["action"] == [0.5, 0.25]
    assert payload["done"] is True
    assert payload["log_prob"] == -0.3
