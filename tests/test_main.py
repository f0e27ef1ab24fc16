"""
Tests for the command line: parsing, overrides and validation-only runs.
"""

import pytest
import yaml

import main
from config import build_config


class TestParser:

    def test_dialect_subcommands(self):
        args = main.build_parser().parse_args(["--num-threads", "2", "yugabyte", "--oracle", "NOREC"])
        assert args.dialect == "yugabyte"
        assert args.num_threads == 2
        assert args.oracles == ["NOREC"]

    def test_unknown_oracle_rejected(self):
        with pytest.raises(SystemExit):
            main.build_parser().parse_args(["postgres", "--oracle", "PQS"])

    def test_boolean_flags_default_to_unset(self):
        args = main.build_parser().parse_args(["postgres"])
        assert args.log_each_select is None
        assert args.print_progress is None


class TestOverrides:

    def test_flags_override_file_values(self):
        config = build_config({"options": {"num_tries": 10, "log_each_select": True}})
        args = main.build_parser().parse_args([
            "--num-tries", "3", "--random-seed", "-1", "--no-log-each-select",
            "--print-statements", "--host", "db.local", "--username", "fuzz", "postgres",
        ])
        main.apply_cli_overrides(config, args)
        assert config.options.num_tries == 3
        assert config.options.random_seed is None
        assert config.options.log_each_select is False
        assert config.options.print_all_statements is True
        assert config.database.host == "db.local"
        assert config.database.user == "fuzz"
        assert config.dialect == "postgres"

    def test_missing_flags_keep_file_values(self):
        config = build_config({"options": {"num_queries": 7}})
        main.apply_cli_overrides(config, main.build_parser().parse_args(["postgres"]))
        assert config.options.num_queries == 7


class TestMain:

    def test_validate_only(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"dialect": "postgres",
                                        "dialect_options": {"oracles": ["TLP_WHERE"]}}))
        assert main.main(["-c", str(path), "--validate-only"]) == 0

    def test_dialect_required(self):
        with pytest.raises(SystemExit):
            main.main(["--validate-only"])

    def test_invalid_options_fail(self):
        assert main.main(["--num-tries", "0", "--validate-only", "postgres"]) == 1

    def test_invalid_dialect_options_fail(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"dialect": "postgres", "dialect_options": {"bogus": 1}}))
        assert main.main(["-c", str(path), "--validate-only"]) == 1

    def test_missing_config_file(self, tmp_path):
        assert main.main(["-c", str(tmp_path / "missing.yaml"), "postgres"]) == 1
