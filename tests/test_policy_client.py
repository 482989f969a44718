import asyncio
import http.client
import logging
import threading
from typing import Any, Callable, Dict, List, Tuple

import pytest

from agent.episode import EpisodeState
from games.bubbles import BubbleGame
from games.lanterns import LanternGame
from games.mirror import MirrorGame
from runner.policy_client import Phase, PolicyClient
from runner.transport import PostResult
from services import policy


class FakeTransport:
    """Routes posts to per-path handlers and records every call."""

    def __init__(self, handlers: Dict[str, Callable[[Dict[str, Any]], PostResult]]) -> None:
        self.handlers = handlers
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self._lock = threading.Lock()

    def post_json(self, path: str, payload: Dict[str, Any]) -> PostResult:
        with self._lock:
            self.calls.append((path, payload))
        handler = self.handlers.get(path)
        if handler is None:
            return PostResult(success=True, status_code=200, response={"status": "ok"})
        return handler(payload)

    def paths(self, path: str) -> List[Dict[str, Any]]:
        return [payload for called, payload in self.calls if called == path]


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += seconds


def ok(body: Any) -> PostResult:
    return PostResult(success=True, status_code=200, response=body)


def server_error(_payload: Dict[str, Any]) -> PostResult:
    return PostResult(success=False, status_code=500, error="HTTP 500")


def _client(game, transport, clock, **kwargs) -> PolicyClient:
    return PolicyClient(game, transport, clock=clock, sleep=clock.sleep, **kwargs)


def test_win_at_thirty_stops_loop_and_flushes():
    game = BubbleGame()
    clock = FakeClock()
    results: List[str] = []

    def score_ten(_payload):
        game.telemetry.score += 10
        return ok(policy.neutral_bubble_action())

    transport = FakeTransport({"/ppo_action": score_ten})
    client = _client(game, transport, clock, result_sink=results.append)

    state = asyncio.run(client.run())

    assert state is EpisodeState.WON
    assert results == ["win"]
    assert client.cycles == 3
    assert clock.now == 75.0
    assert len(transport.paths("/ppo_action")) == 3
    train_calls = transport.paths("/ppo_train")
    assert len(train_calls) == 1
    assert len(train_calls[0]["transitions"]) == 2
    assert train_calls[0]["transitions"][-1]["done"] is True
    assert len(client.buffer) == 0
    assert client.phase is Phase.IDLE


def test_http_500_skips_cycle_without_recording():
    game = LanternGame()
    clock = FakeClock()
    transport = FakeTransport({"/dqn_action": server_error})
    client = _client(game, transport, clock)
    before = (list(game.params.light_states), game.params.spawn_rate, game.update_interval)

    async def scenario():
        outcomes = [await client.run_cycle() for _ in range(3)]
        await client.wait_background()
        return outcomes

    outcomes = asyncio.run(scenario())

    assert all(not o.applied and not o.recorded for o in outcomes)
    assert outcomes[0].error == "HTTP 500"
    assert len(client.buffer) == 0
    assert (list(game.params.light_states), game.params.spawn_rate, game.update_interval) == before
    assert len(transport.paths("/dqn_action")) == 3
    assert client.failed_cycles == 3


def test_timeout_ends_loop_while_policy_unreachable():
    game = MirrorGame()
    clock = FakeClock()
    results: List[str] = []
    transport = FakeTransport({"/mc_action": server_error})
    client = _client(game, transport, clock, result_sink=results.append, interval=60.0)

    state = asyncio.run(client.run())

    assert state is EpisodeState.LOST
    assert results == ["lose"]
    assert client.cycles == 3
    assert len(transport.paths("/store_mc_session")) == 3
    assert transport.paths("/mc_train") == []


def test_batch_of_five_triggers_flush_that_empties_buffer():
    game = LanternGame()
    clock = FakeClock()
    transport = FakeTransport({"/dqn_action": lambda p: ok(policy.neutral_lantern_action(p["training"]))})
    client = _client(game, transport, clock, session_logging=False)

    async def scenario():
        for _ in range(5):
            await client.run_cycle()
        assert len(client.buffer) == 4
        assert transport.paths("/dqn_train") == []
        await client.run_cycle()
        await client.wait_background()

    asyncio.run(scenario())

    train_calls = transport.paths("/dqn_train")
    assert len(train_calls) == 1
    assert len(train_calls[0]["transitions"]) == 5
    assert train_calls[0]["num_updates"] == 5
    assert train_calls[0]["update_target"] is False
    assert all(isinstance(t["action"], int) for t in train_calls[0]["transitions"])
    assert len(client.buffer) == 0


def test_failed_flush_keeps_transitions_for_next_trigger():
    game = LanternGame()
    clock = FakeClock()
    train_results = [PostResult(success=False, error="HTTP 503"), ok({"status": "ok"})]
    transport = FakeTransport(
        {
            "/dqn_action": lambda p: ok(policy.neutral_lantern_action(True)),
            "/dqn_train": lambda p: train_results.pop(0),
        }
    )
    client = _client(game, transport, clock, session_logging=False)

    async def scenario():
        for _ in range(6):
            await client.run_cycle()
        await client.wait_background()
        assert len(client.buffer) == 5
        await client.run_cycle()
        await client.wait_background()

    asyncio.run(scenario())

    train_calls = transport.paths("/dqn_train")
    assert [len(call["transitions"]) for call in train_calls] == [5, 6]
    assert len(client.buffer) == 0
    assert client.buffer.flushes_failed == 1


def test_training_mode_off_never_flushes():
    game = LanternGame()
    clock = FakeClock()
    transport = FakeTransport({"/dqn_action": lambda p: ok(policy.neutral_lantern_action(p["training"]))})
    client = _client(game, transport, clock, training_mode=False, session_logging=False)

    async def scenario():
        for _ in range(7):
            await client.run_cycle()
        await client.wait_background()

    asyncio.run(scenario())

    assert transport.paths("/dqn_train") == []
    assert len(client.buffer) == 6
    assert all(call["training"] is False for call in transport.paths("/dqn_action"))


def test_malformed_response_is_logged_and_skipped(caplog):
    game = MirrorGame()
    clock = FakeClock()
    transport = FakeTransport({"/mc_action": lambda p: ok({"action": [0.1]})})
    client = _client(game, transport, clock, session_logging=False)

    with caplog.at_level(logging.WARNING):
        outcome = asyncio.run(client.run_cycle())

    assert not outcome.applied
    assert "adjustments" in outcome.error
    assert "Skipping mirror cycle" in caplog.text


def test_transitions_pair_previous_state_and_action():
    game = MirrorGame()
    clock = FakeClock()
    log_probs = [-0.1, -0.2, -0.3]

    def respond(_payload):
        game.observe(0.5, 0.1)
        body = policy.neutral_mirror_action()
        body["log_prob"] = log_probs.pop(0)
        return ok(body)

    transport = FakeTransport({"/mc_action": respond})
    client = _client(game, transport, clock, session_logging=False)

    async def scenario():
        return [await client.run_cycle() for _ in range(3)]

    outcomes = asyncio.run(scenario())
    requests = transport.paths("/mc_action")
    transitions = list(client.buffer)

    assert [o.recorded for o in outcomes] == [False, True, True]
    assert len(transitions) == 2
    assert transitions[0].state == requests[0]["state"]
    assert transitions[0].next_state == requests[1]["state"]
    assert transitions[0].log_prob == -0.1
    assert transitions[1].log_prob == -0.2
    assert transitions[1].reward == outcomes[2].reward
    assert not any(t.done for t in transitions)
    assert requests[0]["success"] == 0.5


def test_stop_cancels_running_loop():
    game = LanternGame()
    transport = FakeTransport({})
    client = PolicyClient(game, transport, interval=100.0)

    async def scenario():
        task = asyncio.create_task(client.run())
        await asyncio.sleep(0)
        client.stop()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert transport.calls == []
    assert client.cycles == 0


def test_bubble_response_without_adjustments_is_skipped():
    game = BubbleGame()
    clock = FakeClock()
    transport = FakeTransport({"/ppo_action": lambda p: ok({"action": [0.5] * 7})})
    client = _client(game, transport, clock)
    before = (game.params.bubble_size, game.params.spawn_rate, game.params.bubble_speed)

    async def scenario():
        return [await client.run_cycle() for _ in range(2)]

    outcomes = asyncio.run(scenario())

    assert not any(o.applied for o in outcomes)
    assert not any(o.recorded for o in outcomes)
    assert all("adjustments" in o.error for o in outcomes)
    assert len(client.buffer) == 0
    assert client.failed_cycles == 2
    assert (game.params.bubble_size, game.params.spawn_rate, game.params.bubble_speed) == before


def test_raising_training_post_releases_batch():
    game = LanternGame()
    clock = FakeClock()
    attempts: List[int] = []

    def train(payload):
        attempts.append(len(payload["transitions"]))
        if len(attempts) == 1:
            raise http.client.IncompleteRead(b"", 10)
        return ok({"status": "ok"})

    transport = FakeTransport(
        {
            "/dqn_action": lambda p: ok(policy.neutral_lantern_action(True)),
            "/dqn_train": train,
        }
    )
    client = _client(game, transport, clock, session_logging=False)

    async def scenario():
        for _ in range(6):
            await client.run_cycle()
        await client.wait_background()
        assert not client.buffer.flush_in_flight
        assert len(client.buffer) == 5
        await client.run_cycle()
        await client.wait_background()

    asyncio.run(scenario())

    assert attempts == [5, 6]
    assert client.buffer.flushes_failed == 1
    assert len(client.buffer) == 0


def test_stop_during_flush_releases_batch():
    game = LanternGame()
    clock = FakeClock()
    release = threading.Event()

    def slow_train(_payload):
        release.wait(timeout=5)
        return ok({"status": "ok"})

    transport = FakeTransport(
        {
            "/dqn_action": lambda p: ok(policy.neutral_lantern_action(True)),
            "/dqn_train": slow_train,
        }
    )
    client = _client(game, transport, clock, session_logging=False)

    async def scenario():
        for _ in range(6):
            await client.run_cycle()
        await asyncio.sleep(0)
        assert client.buffer.flush_in_flight
        client.stop()
        await client.wait_background()
        release.set()

    asyncio.run(scenario())

    assert not client.buffer.flush_in_flight
    assert len(client.buffer) == 5
    assert client.buffer.ready()
