"""
Tests for configuration loading, mapping and validation.
"""

import pytest
import yaml

from config import (
    FuzzConfig,
    MainOptions,
    build_config,
    create_default_config,
    load_config,
    validate_config,
)


class TestBuildConfig:

    def test_defaults(self):
        config = build_config()
        assert config.dialect is None
        assert config.options.num_tries == 100
        assert config.options.num_threads >= 1
        assert config.options.random_seed is None
        assert config.validate() == []

    def test_sections_are_mapped(self):
        config = build_config({
            "dialect": "postgres",
            "database": {"host": "db.local", "port": 5433},
            "options": {"num_tries": 4, "num_queries": 10, "random_seed": 7},
            "dialect_options": {"oracles": ["NOREC"]},
            "debug": True,
        })
        assert config.dialect == "postgres"
        assert config.database.host == "db.local"
        assert config.database.port == 5433
        assert config.options.num_tries == 4
        assert config.options.random_seed == 7
        assert config.dialect_options == {"oracles": ["NOREC"]}
        assert config.debug

    def test_unknown_keys_are_ignored(self, caplog):
        config = build_config({"options": {"num_tries": 2, "bogus": 1}, "extra": {}})
        assert config.options.num_tries == 2
        assert not hasattr(config.options, "bogus")
        assert "options.bogus" in caplog.text
        assert "'extra'" in caplog.text

    def test_negative_seed_means_unset(self):
        assert build_config({"options": {"random_seed": -1}}).options.random_seed is None
        assert MainOptions(random_seed=-1).random_seed is None


class TestValidation:

    @pytest.mark.parametrize("overrides", [
        {"num_tries": 0},
        {"num_threads": 0},
        {"num_queries": -1},
        {"max_num_inserts": -1},
        {"max_generated_databases": 0},
        {"timeout_seconds": 0},
        {"progress_interval": 0},
        {"log_directory": ""},
    ])
    def test_invalid_options(self, overrides):
        config = build_config({"options": overrides})
        assert config.validate()
        assert not validate_config(config)

    def test_invalid_port(self):
        assert build_config({"database": {"port": 70000}}).validate() == ["Invalid database port"]

    def test_uppercase_dialect_rejected(self):
        assert build_config({"dialect": "Postgres"}).validate()

    def test_invalid_log_level(self):
        assert build_config({"logging": {"log_level": "LOUD"}}).validate()

    def test_valid_config(self):
        assert validate_config(FuzzConfig())


class TestLoadConfig:

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        with pytest.raises(ValueError):
            load_config(str(path))

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_config(str(path))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("options: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_config(str(path))

    def test_default_config_round_trip(self, tmp_path):
        path = tmp_path / "config.yaml"
        create_default_config(str(path))
        config = build_config(load_config(str(path)))
        assert config.to_dict() == FuzzConfig(
            options=MainOptions(num_threads=config.options.num_threads)).to_dict()
