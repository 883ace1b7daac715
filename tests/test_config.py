"""Tests for configuration loading."""

import pytest
import yaml
from pydantic import ValidationError as PydanticValidationError
from rnaseq_eda import config as config_module
from rnaseq_eda.config import CONFIG_TEMPLATE, Config, get_config, set_config


@pytest.fixture
def config(tmp_path):
    return Config(paths={'user_home': tmp_path / "home"})


class TestConfig:

    def test_defaults(self, config, tmp_path):
        assert config.defaults.sample_key == 'sample'
        assert config.defaults.join_how == 'outer'
        assert config.paths.data_dir == tmp_path / "home" / "data"
        assert not hasattr(config.paths, "output_dir")

    def test_yaml_round_trip(self, config, tmp_path):
        path = tmp_path / "config.yaml"
        config.defaults.min_count = 25
        config.to_yaml(path)

        loaded = Config.from_yaml(path)

        assert loaded.defaults.min_count == 25
        assert loaded.paths.user_home == config.paths.user_home

    def test_template_parses(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_TEMPLATE)

        loaded = Config.from_yaml(path)

        assert loaded.defaults.correlation_method == 'spearman'
        assert not str(loaded.paths.user_home).startswith("~")

    def test_invalid_correlation_method(self):
        with pytest.raises(PydanticValidationError):
            Config(defaults={'correlation_method': 'cosine'})

    def test_environment_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("RNASEQ_EDA_DEBUG", "true")
        monkeypatch.setenv("RNASEQ_EDA_DEFAULTS__MIN_COUNT", "3")

        loaded = Config(paths={'user_home': tmp_path})

        assert loaded.debug is True
        assert loaded.defaults.min_count == 3

    def test_initialize_creates_directories(self, config):
        config.initialize()

        assert config.paths.data_dir.is_dir()
        assert (config.paths.user_home / "config.yaml").exists()
        assert yaml.safe_load((config.paths.user_home / "config.yaml").read_text())['app_title']

    def test_set_and_get_config(self, config, monkeypatch):
        monkeypatch.setattr(config_module, "_config", None)
        set_config(config)

        assert get_config() is config


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
