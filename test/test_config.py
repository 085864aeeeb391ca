import json
import os

import pytest

from arm_teleop.config import (
    FileConfigSource,
    JointConfig,
    PipelineConfig,
    StaticConfigSource,
    parse_config,
)


def test_defaults():
    cfg = PipelineConfig()
    assert cfg.base == JointConfig(0, 180, reversed=True)
    assert cfg.shoulder == JointConfig(20, 160)
    assert cfg.elbow == JointConfig(20, 160, reversed=True)
    assert cfg.smoothing_coefficient == 0.1
    assert cfg.filter_window_size == 3
    assert cfg.deadband_threshold == 1.5
    assert cfg.pinch_threshold == 0.05


def test_output_range_swaps_when_reversed():
    assert JointConfig(20, 160).output_range == (20, 160)
    assert JointConfig(20, 160, reversed=True).output_range == (160, 20)


def test_joint_lookup():
    cfg = PipelineConfig()
    assert cfg.joint("elbow") is cfg.elbow
    with pytest.raises(KeyError):
        cfg.joint("wrist")


def test_parse_none_gives_defaults():
    assert parse_config(None) == PipelineConfig()
    assert parse_config([1, 2, 3]) == PipelineConfig()


def test_parse_full_document():
    cfg = parse_config({
        "joints": {
            "base": {"min": 10, "max": 170, "reversed": False, "trim": "4"},
            "shoulder": {"min": 30, "max": 150, "reversed": "true", "trim": -3},
        },
        "smoothing_coefficient": 0.2,
        "filter_window_size": 5,
        "deadband_threshold": 2,
        "pinch_threshold": 0.04,
    })
    assert cfg.base == JointConfig(10, 170, reversed=False, trim=4)
    assert cfg.shoulder == JointConfig(30, 150, reversed=True, trim=-3)
    assert cfg.elbow == PipelineConfig().elbow
    assert cfg.smoothing_coefficient == 0.2
    assert cfg.filter_window_size == 5
    assert cfg.deadband_threshold == 2.0
    assert cfg.pinch_threshold == 0.04


def test_camel_case_keys():
    cfg = parse_config({"smoothingCoefficient": 0.5, "filterWindowSize": 1, "deadbandThreshold": 0})
    assert cfg.smoothing_coefficient == 0.5
    assert cfg.filter_window_size == 1
    assert cfg.deadband_threshold == 0.0


def test_bad_values_fall_back_per_field():
    defaults = PipelineConfig()
    cfg = parse_config({
        "joints": {
            "base": {"min": "abc", "max": 150, "trim": "x", "reversed": "maybe"},
            "elbow": "not an object",
        },
        "smoothing_coefficient": 0,
        "filter_window_size": "three",
        "deadband_threshold": -1,
        "pinch_threshold": float("nan"),
    })
    assert cfg.base == JointConfig(defaults.base.min_angle, 150, defaults.base.reversed, 0)
    assert cfg.elbow == defaults.elbow
    assert cfg.smoothing_coefficient == defaults.smoothing_coefficient
    assert cfg.filter_window_size == defaults.filter_window_size
    assert cfg.deadband_threshold == defaults.deadband_threshold
    assert cfg.pinch_threshold == defaults.pinch_threshold


def test_inverted_limits_fall_back_to_defaults():
    cfg = parse_config({"joints": {"shoulder": {"min": 150, "max": 30}}})
    assert (cfg.shoulder.min_angle, cfg.shoulder.max_angle) == (20, 160)


def test_limits_outside_travel_are_rejected():
    cfg = parse_config({"joints": {"base": {"min": -20, "max": 270}}})
    assert (cfg.base.min_angle, cfg.base.max_angle) == (0, 180)


def test_booleans_are_not_numbers():
    cfg = parse_config({"filter_window_size": True})
    assert cfg.filter_window_size == 3


def test_static_source():
    cfg = PipelineConfig(filter_window_size=7)
    assert StaticConfigSource(cfg).current() is cfg
    assert StaticConfigSource().current() == PipelineConfig()


def _write(path, doc, mtime):
    path.write_text(json.dumps(doc) if not isinstance(doc, str) else doc, encoding="utf-8")
    os.utime(path, (mtime, mtime))


def test_file_source_reloads_on_change(tmp_path):
    path = tmp_path / "arm.json"
    _write(path, {"filter_window_size": 4}, 1_000_000)
    source = FileConfigSource(path)

    first = source.current()
    assert first.filter_window_size == 4
    assert source.current() is first
    assert source.reload_count == 1

    _write(path, {"filter_window_size": 6}, 1_000_010)
    assert source.current().filter_window_size == 6
    assert source.reload_count == 2


def test_file_source_keeps_last_good_config(tmp_path):
    path = tmp_path / "arm.json"
    _write(path, {"deadband_threshold": 3}, 1_000_000)
    source = FileConfigSource(path)
    assert source.current().deadband_threshold == 3.0

    _write(path, "{ not json", 1_000_010)
    assert source.current().deadband_threshold == 3.0

    path.unlink()
    assert source.current().deadband_threshold == 3.0


def test_file_source_missing_file_uses_defaults(tmp_path):
    source = FileConfigSource(tmp_path / "missing.json")
    assert source.current() == PipelineConfig()


def test_file_source_rereads_half_written_file_with_same_mtime(tmp_path):
    path = tmp_path / "arm.json"
    _write(path, '{"filter_window_size": ', 1_000_000)
    source = FileConfigSource(path)
    assert source.current() == PipelineConfig()
    assert source.reload_count == 0

    # Writer finishes within the same timestamp granularity
    _write(path, {"filter_window_size": 8}, 1_000_000)
    assert source.current().filter_window_size == 8
    assert source.reload_count == 1
