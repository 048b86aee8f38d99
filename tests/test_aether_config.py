"""
Tests for YAML engine configuration.
"""

import pytest
from aether import (
    Engine, EngineConfig, InvalidArgument, Limits, OptimizationFlags,
    config_from_env, load_config,
)


def _write(tmp_path, text, name="aether.yaml"):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:

    def test_full_file(self, tmp_path):
        path = _write(tmp_path, """
limits:
  max_steps: 5000
  max_recursion_depth: 32
optimization:
  tail_recursion: false
allow_io: true
trace:
  max_entries: 100
cache:
  max_entries: 0
""")
        config = load_config(path)
        assert config.limits == Limits(max_steps=5000, max_recursion_depth=32, max_duration_ms=0)
        assert config.optimization == OptimizationFlags(True, True, False)
        assert config.allow_io is True
        assert config.trace_max_entries == 100
        assert config.cache_max_entries is None

    def test_empty_file_gives_defaults(self, tmp_path):
        assert load_config(_write(tmp_path, "")) == EngineConfig()

    def test_unknown_top_level_key(self, tmp_path):
        with pytest.raises(InvalidArgument) as exc_info:
            load_config(_write(tmp_path, "limit:\n  max_steps: 1\n"))
        assert "limit" in exc_info.value.message

    def test_unknown_limit_field(self, tmp_path):
        with pytest.raises(InvalidArgument):
            load_config(_write(tmp_path, "limits:\n  steps: 1\n"))

    def test_wrong_types(self, tmp_path):
        with pytest.raises(InvalidArgument):
            load_config(_write(tmp_path, "allow_io: 'yes'\n"))
        with pytest.raises(InvalidArgument):
            load_config(_write(tmp_path, "limits:\n  max_steps: 1.5\n"))
        with pytest.raises(InvalidArgument):
            load_config(_write(tmp_path, "optimization:\n  constant_folding: 1\n"))

    def test_bad_yaml(self, tmp_path):
        with pytest.raises(InvalidArgument) as exc_info:
            load_config(_write(tmp_path, "limits: [unclosed\n"))
        assert "YAML" in exc_info.value.message

    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidArgument):
            load_config(tmp_path / "absent.yaml")

    def test_round_trip_through_dict(self):
        config = EngineConfig(limits=Limits(max_steps=7), allow_io=True, trace_max_entries=3)
        assert EngineConfig.from_dict(config.to_dict()) == config


class TestConfigFromEnv:

    def test_unset_gives_defaults(self):
        assert config_from_env({}) == EngineConfig()

    def test_reads_named_file(self, tmp_path):
        path = _write(tmp_path, "limits:\n  max_steps: 9\n")
        config = config_from_env({"AETHER_CONFIG": str(path)})
        assert config.limits.max_steps == 9


class TestEngineFromConfig:

    def test_settings_applied(self):
        config = EngineConfig(
            limits=Limits(max_steps=50),
            optimization=OptimizationFlags.none(),
            allow_io=True,
        )
        with Engine.from_config(config) as engine:
            assert engine.get_limits().max_steps == 50
            assert engine.get_optimization() == OptimizationFlags.none()
            assert engine.permissions.io is True

    def test_default_config_is_restricted(self):
        with Engine.from_config(EngineConfig()) as engine:
            assert engine.permissions.io is False

    def test_trace_bound_applied(self, tmp_path):
        config = load_config(_write(tmp_path, "trace:\n  max_entries: 1\n"))
        with Engine.from_config(config) as engine:
            engine.eval("TRACE('a')\nTRACE('b')")
            assert engine.trace_stats().dropped == 1
