"""
Configuration tests: defaults, YAML files, environment binding, validation.

Run with: pytest tests/test_config.py -v
"""

from pathlib import Path

import pytest
import yaml

from parrot.offchain.config import (
    ConfigError,
    ConfigManager,
    ConfigValidationError,
    get_config,
    get_config_manager,
)


class TestConfigDefaults:

    def test_singleton(self):
        assert ConfigManager() is get_config_manager()
        assert get_config() is get_config_manager().config

    def test_defaults(self):
        cfg = get_config()
        assert cfg.retry.max_attempts.get() == 1
        assert cfg.ledger.ss58_prefix.get() == 42
        assert cfg.confirmation.max_polls.get() == 60
        assert cfg.observability.log_format.get() == "json"

    def test_to_dict_and_yaml(self):
        data = get_config().to_dict()
        assert data["retry"]["max_attempts"] == 1
        assert yaml.safe_load(get_config().to_yaml()) == data

    def test_defaults_validate(self):
        assert get_config_manager().validate() == []


class TestConfigSources:

    def test_dotted_set_and_get(self):
        mgr = get_config_manager()
        mgr.set("confirmation.timeout_seconds", 12.5)
        assert mgr.get("confirmation.timeout_seconds") == 12.5

    def test_string_values_are_coerced(self):
        mgr = get_config_manager()
        mgr.set("retry.max_attempts", "3")
        assert mgr.get("retry.max_attempts") == 3

    def test_invalid_value_rejected(self):
        mgr = get_config_manager()
        with pytest.raises(ConfigValidationError):
            mgr.set("retry.max_attempts", 0)
        with pytest.raises(ConfigValidationError):
            mgr.set("observability.log_format", "xml")

    def test_unknown_path(self):
        with pytest.raises(ConfigError):
            get_config_manager().set("retry.nope", 1)
        with pytest.raises(ConfigError):
            get_config_manager().get("nope")

    def test_environment_overrides(self, monkeypatch):
        get_config_manager().set("retry.max_attempts", 2)
        monkeypatch.setenv("PARROT_RETRY_MAX_ATTEMPTS", "5")
        assert get_config().retry.max_attempts.get() == 5

    def test_bad_environment_value_reported(self, monkeypatch):
        monkeypatch.setenv("PARROT_CONFIRM_MAX_POLLS", "many")
        monkeypatch.setenv("PARROT_RETRY_BACKOFF", "random")
        problems = get_config_manager().validate()
        assert len(problems) == 2
        assert problems[0].startswith("retry.backoff")
        assert problems[1].startswith("confirmation.max_polls")

    def test_change_callback(self):
        seen = []
        get_config().retry.max_attempts.on_change(lambda old, new: seen.append((old, new)))
        get_config_manager().set("retry.max_attempts", 4)
        assert seen == [(None, 4)]

    def test_load_yaml_file(self, tmp_path: Path):
        path = tmp_path / "custom.yaml"
        path.write_text(
            "ledger:\n  endpoint: ws://node:9944\nretry:\n  max_attempts: 3\n  backoff: fixed\n",
            encoding="utf-8",
        )
        mgr = get_config_manager()
        mgr.load_from_file(path)
        assert mgr.get("ledger.endpoint") == "ws://node:9944"
        assert mgr.get("retry.backoff") == "fixed"
        assert mgr.loaded_files == [path]

    def test_unknown_key_in_file(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("retry:\n  attempts: 3\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="retry.attempts"):
            get_config_manager().load_from_file(path)

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError):
            get_config_manager().load_from_file(tmp_path / "absent.yaml")

    def test_default_locations(self, tmp_path: Path):
        # conftest chdirs into tmp_path and points HOME below it
        (tmp_path / "parrot.yaml").write_text("confirmation:\n  max_polls: 9\n", encoding="utf-8")
        home_cfg = tmp_path / "home" / ".parrot" / "config.yaml"
        home_cfg.parent.mkdir(parents=True)
        home_cfg.write_text("confirmation:\n  timeout_seconds: 3.0\n", encoding="utf-8")

        loaded = get_config_manager().load_defaults()
        assert [p.name for p in loaded] == ["parrot.yaml", "config.yaml"]
        assert get_config_manager().get("confirmation.max_polls") == 9
        assert get_config_manager().get("confirmation.timeout_seconds") == 3.0

    def test_unreadable_default_file_skipped(self, tmp_path: Path):
        (tmp_path / "parrot.yaml").write_text("- not\n- a mapping\n", encoding="utf-8")
        assert get_config_manager().load_defaults() == []

    def test_reset(self):
        mgr = get_config_manager()
        mgr.set("retry.max_attempts", 4)
        mgr.reset()
        assert mgr.get("retry.max_attempts") == 1
