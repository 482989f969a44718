"""Policy, training and session-log routes for the development service."""
from __future__ import annotations

from typing import Any, Dict, Tuple

from flask import Blueprint, current_app, request

from games.bubbles import BubbleGame
from games.lanterns import LanternGame
from games.mirror import MirrorGame
from games.registry import GAMES
from services import policy
from services.decorators import json_body, json_endpoint
from services.persistence import STORE, SessionLogRecord, TrainingRecord

bp = Blueprint("main", __name__)


@bp.before_app_request
def _enforce_limits():
    max_size = current_app.config.get("REQUEST_SIZE_LIMIT")
    if max_size and request.content_length and request.content_length > max_size:
        return ("Request too large", 413)
    return None


def _action_request(game_name: str, state_size: int) -> Dict[str, Any]:
    payload = json_body()
    policy.validate_state_request(payload, state_size)
    count = STORE.count_action_request(game_name)
    current_app.logger.debug("%s action request #%d", game_name, count)
    return payload


def _store_training(game_name: str, options: Tuple[str, ...] = ()) -> Dict[str, Any]:
    payload = json_body()
    transitions = policy.validate_transitions(payload)
    recorded = {key: payload[key] for key in options if key in payload}
    STORE.add_training_batch(TrainingRecord(game=game_name, transitions=transitions, options=recorded))
    return {"status": "ok", "trained_on": len(transitions), **recorded}


def _store_session_log(game_name: str) -> tuple[Dict[str, Any], int]:
    payload = json_body()
    if not isinstance(payload, dict):
        raise ValueError("Session log must be a JSON object")
    STORE.add_session_log(SessionLogRecord(game=game_name, payload=payload))
    return {"status": "stored"}, 201


@bp.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@bp.post(BubbleGame.action_path)
@json_endpoint
def ppo_action() -> Dict[str, Any]:
    _action_request(BubbleGame.name, BubbleGame.state_size)
    return policy.neutral_bubble_action()


@bp.post(BubbleGame.train_path)
@json_endpoint
def ppo_train() -> Dict[str, Any]:
    return _store_training(BubbleGame.name)


@bp.post(MirrorGame.action_path)
@json_endpoint
def mc_action() -> Dict[str, Any]:
    _action_request(MirrorGame.name, MirrorGame.state_size)
    return policy.neutral_mirror_action()


@bp.post(MirrorGame.train_path)
@json_endpoint
def mc_train() -> Dict[str, Any]:
    return _store_training(MirrorGame.name, ("batch_size", "epochs"))


@bp.post(MirrorGame.session_log_path)
@json_endpoint
def store_mc_session() -> tuple[Dict[str, Any], int]:
    return _store_session_log(MirrorGame.name)


@bp.post(LanternGame.action_path)
@json_endpoint
def dqn_action() -> Dict[str, Any]:
    payload = _action_request(LanternGame.name, LanternGame.state_size)
    return policy.neutral_lantern_action(bool(payload.get("training", True)))


@bp.post(LanternGame.train_path)
@json_endpoint
def dqn_train() -> Dict[str, Any]:
    return _store_training(LanternGame.name, ("num_updates", "update_target"))


@bp.post(LanternGame.session_log_path)
@json_endpoint
def store_rogl_session() -> tuple[Dict[str, Any], int]:
    return _store_session_log(LanternGame.name)


@bp.get("/api/sessions/<game_name>")
@json_endpoint
def session_summary(game_name: str) -> tuple[Dict[str, Any], int] | Dict[str, Any]:
    if game_name not in GAMES:
        return {"error": "Unknown game"}, 404
    return STORE.summary(game_name)
