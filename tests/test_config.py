"""
Tests for configuration loading: YAML defaults, environment overrides and
validation.
"""

import pytest

import intel_config
from intel_config import DEFAULT_CONFIG_PATH, IntelConfig, get_config, set_config


class TestFromYaml:
    def test_bundled_defaults(self, clean_env):
        config = IntelConfig.from_yaml(DEFAULT_CONFIG_PATH)
        assert config.sample_size == 500
        assert config.min_score == 55
        assert config.default_limit == 8
        assert config.sampler_seed is None
        assert config.sampling_strategy == 'uniform'
        assert config.query_deadline_ms == 0

    def test_missing_file_gives_dataclass_defaults(self, clean_env, tmp_path):
        assert IntelConfig.from_yaml(tmp_path / "missing.yaml") == IntelConfig()

    def test_sections_are_read(self, clean_env, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "sampling:\n  sample_size: 200\n  strategy: bucketed\n  seed: 17\n"
            "scoring:\n  min_score: 100\n  default_limit: 4\n  workers: 2\n  deadline_ms: 50\n"
            "cache:\n  build_workers: 3\n  build_on_startup: true\n"
            "data:\n  catalog_path: /data/catalog.csv\n"
        )
        config = IntelConfig.from_yaml(path)
        assert config.sample_size == 200
        assert config.sampling_strategy == 'bucketed'
        assert config.sampler_seed == '17'
        assert config.min_score == 100
        assert config.default_limit == 4
        assert config.scoring_workers == 2
        assert config.query_deadline_ms == 50
        assert config.build_workers == 3
        assert config.build_on_startup is True
        assert config.catalog_path == '/data/catalog.csv'

    def test_empty_file(self, clean_env, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert IntelConfig.from_yaml(path) == IntelConfig()


class TestEnvironmentOverrides:
    def test_env_wins_over_yaml(self, clean_env, monkeypatch):
        monkeypatch.setenv('INTEL_SAMPLE_SIZE', '250')
        monkeypatch.setenv('INTEL_MIN_SCORE', '80')
        monkeypatch.setenv('INTEL_DEFAULT_LIMIT', '12')
        monkeypatch.setenv('INTEL_SAMPLER_SEED', 'abc')
        monkeypatch.setenv('INTEL_SAMPLING_STRATEGY', 'bucketed')
        monkeypatch.setenv('INTEL_QUERY_DEADLINE_MS', '30')
        monkeypatch.setenv('INTEL_CATALOG_PATH', '/tmp/export.parquet')
        config = IntelConfig.from_yaml(DEFAULT_CONFIG_PATH)
        assert config.sample_size == 250
        assert config.min_score == 80
        assert config.default_limit == 12
        assert config.sampler_seed == 'abc'
        assert config.sampling_strategy == 'bucketed'
        assert config.query_deadline_ms == 30
        assert config.catalog_path == '/tmp/export.parquet'

    def test_blank_env_is_ignored(self, clean_env, monkeypatch):
        monkeypatch.setenv('INTEL_SAMPLE_SIZE', '  ')
        assert IntelConfig.from_yaml(DEFAULT_CONFIG_PATH).sample_size == 500


class TestValidation:
    @pytest.mark.parametrize("kwargs", [
        dict(sample_size=0),
        dict(default_limit=0),
        dict(min_score=-1),
        dict(scoring_workers=0),
        dict(build_workers=0),
        dict(query_deadline_ms=-5),
        dict(sampling_strategy='nearest'),
    ])
    def test_invalid_values_raise(self, kwargs):
        with pytest.raises(ValueError):
            IntelConfig(**kwargs)

    def test_invalid_env_value_raises(self, clean_env, monkeypatch):
        monkeypatch.setenv('INTEL_SAMPLING_STRATEGY', 'nearest')
        with pytest.raises(ValueError):
            IntelConfig.from_yaml(DEFAULT_CONFIG_PATH)


class TestGlobalConfig:
    def test_set_and_get(self, monkeypatch):
        monkeypatch.setattr(intel_config, '_config', None)
        custom = IntelConfig(sample_size=42)
        set_config(custom)
        assert get_config() is custom
