import logging

from agent.episode import EpisodeRules, EpisodeState, EpisodeStateMachine


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _machine(rules=None):
    clock = _Clock()
    results = []
    machine = EpisodeStateMachine(rules or EpisodeRules(win_score=30, time_limit=180), results.append, clock)
    return machine, clock, results


def test_win_latches_and_reports_once():
    machine, clock, results = _machine()
    clock.now = 60.0
    assert machine.evaluate(30) is EpisodeState.WON
    clock.now = 500.0
    assert machine.evaluate(0) is EpisodeState.WON
    assert results == ["win"]


def test_timeout_loses():
    machine, clock, results = _machine()
    clock.now = 179.9
    assert machine.evaluate(10) is EpisodeState.RUNNING
    clock.now = 180.0
    assert machine.evaluate(10) is EpisodeState.LOST
    assert results == ["lose"]


def test_win_takes_priority_over_timeout():
    machine, clock, results = _machine()
    clock.now = 200.0
    assert machine.evaluate(30) is EpisodeState.WON
    assert results == ["win"]


def test_lose_score():
    machine, _, results = _machine(EpisodeRules(win_score=20, time_limit=120, lose_score=-10))
    assert machine.evaluate(-9) is EpisodeState.RUNNING
    assert machine.evaluate(-10) is EpisodeState.LOST
    assert results == ["lose"]


def test_reset_starts_new_episode():
    machine, clock, results = _machine()
    clock.now = 180.0
    machine.evaluate(0)
    clock.now = 200.0
    machine.reset()
    assert machine.state is EpisodeState.RUNNING
    assert machine.elapsed() == 0.0
    clock.now = 230.0
    assert machine.evaluate(30) is EpisodeState.WON
    assert results == ["lose", "win"]


def test_failing_result_hook_is_logged(caplog):
    def broken(_outcome):
        raise RuntimeError("display gone")

    machine = EpisodeStateMachine(EpisodeRules(win_score=1, time_limit=10), broken, clock=lambda: 0.0)
    with caplog.at_level(logging.ERROR):
        assert machine.evaluate(1) is EpisodeState.WON
    assert "Result hook failed" in caplog.text
