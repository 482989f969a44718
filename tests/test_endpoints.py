import asyncio

import pytest

from app import create_app
from games.bubbles import STATE_SIZE as BUBBLE_STATE_SIZE
from games.lanterns import LanternGame
from games.mirror import STATE_SIZE as MIRROR_STATE_SIZE
from runner.policy_client import PolicyClient
from runner.transport import PostResult
from services.persistence import STORE


@pytest.fixture(autouse=True)
def clean_store():
    STORE.reset()
    yield
    STORE.reset()


@pytest.fixture()
def client():
    test_app = create_app()
    test_app.config["TESTING"] = True
    return test_app.test_client()


def _transition(state_size, action):
    return {
        "state": [0.0] * state_size,
        "action": action,
        "reward": 0.5,
        "next_state": [0.1] * state_size,
        "done": False,
    }


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_ppo_action_returns_neutral_action(client):
    response = client.post(
        "/ppo_action",
        json={"state": [0.0] * BUBBLE_STATE_SIZE, "fatigue": 0.1, "engagement": 0.7, "success": 0.5},
    )
    assert response.status_code == 200
    data = response.get_json()
    assert len(data["action"]) == 7
    assert set(data["adjustments"]) == {"bubble_size", "positive_prob", "negative_prob", "spawn_rate"}


def test_action_rejects_wrong_state_length(client):
    response = client.post("/mc_action", json={"state": [0.0, 1.0]})
    assert response.status_code == 400
    assert f"{MIRROR_STATE_SIZE} values" in response.get_json()["error"]


def test_action_rejects_non_json(client):
    response = client.post("/ppo_action", data="state=1", content_type="application/x-www-form-urlencoded")
    assert response.status_code == 400


def test_dqn_action_reports_exploration(client):
    state = [0.0] * LanternGame.state_size
    training = client.post("/dqn_action", json={"state": state, "training": True}).get_json()
    evaluation = client.post("/dqn_action", json={"state": state, "training": False}).get_json()
    assert training["epsilon"] == 1.0
    assert evaluation["epsilon"] == 0.0
    assert training["adjustments"]["light_states"] == [-1, -1, -1, -1]


def test_training_endpoints_record_batches(client):
    mirror = client.post(
        "/mc_train",
        json={"transitions": [_transition(MIRROR_STATE_SIZE, [0.0] * 4)], "batch_size": 64, "epochs": 10},
    )
    lanterns = client.post(
        "/dqn_train",
        json={
            "transitions": [_transition(LanternGame.state_size, 3)] * 2,
            "num_updates": 5,
            "update_target": False,
        },
    )

    assert mirror.get_json() == {"status": "ok", "trained_on": 1, "batch_size": 64, "epochs": 10}
    assert lanterns.get_json() == {"status": "ok", "trained_on": 2, "num_updates": 5, "update_target": False}
    assert STORE.training_batches("lanterns")[0].options == {"num_updates": 5, "update_target": False}


def test_training_rejects_incomplete_transition(client):
    response = client.post("/ppo_train", json={"transitions": [{"state": [0.0]}]})
    assert response.status_code == 400
    assert "missing" in response.get_json()["error"]


def test_training_rejects_empty_batch(client):
    response = client.post("/ppo_train", json={"transitions": []})
    assert response.status_code == 400


def test_session_logs_are_stored(client):
    first = client.post("/store_mc_session", json={"time": 5.0, "score": 1})
    second = client.post("/store_rogl_session", json={"time": 5.0, "score": 2})
    assert first.status_code == 201
    assert first.get_json() == {"status": "stored"}
    assert second.status_code == 201
    assert [r.payload["score"] for r in STORE.session_logs()] == [1, 2]


def test_session_summary(client):
    client.post("/mc_action", json={"state": [0.0] * MIRROR_STATE_SIZE})
    client.post("/store_mc_session", json={"time": 1.0})

    response = client.get("/api/sessions/mirror")

    assert response.status_code == 200
    assert response.get_json() == {
        "game": "mirror",
        "action_requests": 1,
        "session_logs": 1,
        "training_batches": 0,
        "transitions": 0,
    }


def test_session_summary_unknown_game(client):
    response = client.get("/api/sessions/tetris")
    assert response.status_code == 404


def test_request_size_limit(monkeypatch):
    monkeypatch.setenv("REQUEST_MAX_BYTES", "64")
    small = create_app().test_client()
    response = small.post("/ppo_train", json={"transitions": [_transition(BUBBLE_STATE_SIZE, [0.0] * 7)]})
    assert response.status_code == 413


class FlaskTransport:
    """Posts through the Flask test client instead of a socket."""

    def __init__(self, test_client):
        self.test_client = test_client

    def post_json(self, path, payload):
        response = self.test_client.post(path, json=payload)
        body = response.get_json(silent=True)
        if response.status_code >= 400:
            return PostResult(success=False, status_code=response.status_code, error=str(body))
        return PostResult(success=True, status_code=response.status_code, response=body)


def test_lantern_loop_against_dev_service(client):
    game = LanternGame()
    policy_client = PolicyClient(game, FlaskTransport(client))

    async def scenario():
        for _ in range(6):
            await policy_client.run_cycle()
        await policy_client.wait_background()

    asyncio.run(scenario())

    summary = STORE.summary("lanterns")
    assert summary["action_requests"] == 6
    assert summary["session_logs"] == 6
    assert summary["training_batches"] == 1
    assert summary["transitions"] == 5
    assert len(policy_client.buffer) == 0
    assert policy_client.failed_cycles == 0
