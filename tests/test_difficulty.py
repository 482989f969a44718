import json
import logging

from agent.difficulty import Bounds, StaticConfigProvider, parse_game_config, resolve_bounds


def test_parse_camel_case_maxima():
    config = parse_game_config(
        "bubbles",
        {
            "bubbleSpeedMax": 0.8,
            "numBubblesMax": "7",
            "target_score": 25,
            "time_limit": 90,
            "difficulty": "Hard",
            "guidanceEnabled": True,
        },
    )
    assert config.maximums == {"bubble_speed": 0.8, "num_bubbles": 7.0}
    assert config.target_score == 25
    assert config.time_limit == 90
    assert config.difficulty_level() == 1.5
    assert config.guidance_enabled is True


def test_parse_limits_object():
    config = parse_game_config("mirror", {"limits": {"upper_threshold": {"min": 75, "max": 90}}})
    bounds = config.bounds("upper_threshold", Bounds(70.0, 95.0))
    assert bounds == Bounds(75.0, 90.0)


def test_unknown_difficulty_defaults_to_medium():
    assert parse_game_config("bubbles", {"difficulty": "extreme"}).difficulty_level() == 1.0


def test_invalid_range_falls_back_with_warning(caplog):
    config = parse_game_config("lanterns", {"limits": {"spawn_rate": {"min": 4, "max": 1}}})
    fallback = Bounds(0.5, 5.0)
    with caplog.at_level(logging.WARNING):
        assert resolve_bounds(config, "spawn_rate", fallback) == fallback
    assert "Invalid bounds for lanterns.spawn_rate" in caplog.text


def test_floor_raises_low_configured_maximum():
    config = parse_game_config("bubbles", {"bubbleLifetimeMax": 3})
    assert resolve_bounds(config, "bubble_lifetime", Bounds(1.0, 10.0), floor=10.0) == Bounds(1.0, 10.0)
    assert resolve_bounds(config, "bubble_lifetime", Bounds(1.0, 10.0)) == Bounds(1.0, 3.0)


def test_missing_config_uses_fallback():
    assert resolve_bounds(None, "anything", Bounds(1.0, 2.0)) == Bounds(1.0, 2.0)


def test_provider_from_session_payload(caplog):
    provider = StaticConfigProvider.from_session_payload(
        {"gameConfigs": {"bubbles": {"bubbleSizeMax": 0.8}, "broken": "nope"}}
    )
    assert provider.names() == ["bubbles"]
    assert provider.get("bubbles").maximum("bubble_size") == 0.8
    assert provider.get("mirror") is None

    with caplog.at_level(logging.WARNING):
        empty = StaticConfigProvider.from_session_payload({"user": "x"})
    assert empty.names() == []
    assert "no gameConfigs" in caplog.text


def test_provider_from_file(tmp_path, caplog):
    path = tmp_path / "configs.json"
    path.write_text(json.dumps({"gameConfigs": {"lanterns": {"enabled": False}}}), encoding="utf-8")
    provider = StaticConfigProvider.from_file(path)
    assert provider.get("lanterns").enabled is False

    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with caplog.at_level(logging.WARNING):
        assert StaticConfigProvider.from_file(bad).names() == []
    assert "Unable to read difficulty config" in caplog.text
