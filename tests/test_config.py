"""
Configuration tests: defaults, environment overrides, YAML loading and the
process-wide manager.
"""

import pytest
import yaml

from carledger.config import (
    ConfigError,
    ConfigManager,
    ConfigValidationError,
    LedgerConfig,
    get_config,
    get_config_manager,
    load_config,
)


class TestDefaults:

    def test_policy_defaults(self):
        config = LedgerConfig()
        assert config.max_cars == 20
        assert config.admin_org == "IBMMSP"
        assert config.reserved_keys == ["CAR10"]

    def test_to_dict_and_yaml(self):
        config = LedgerConfig()
        d = config.to_dict()
        assert d["policy"]["max_cars"] == 20
        assert d["observability"]["log_format"] == "json"
        assert yaml.safe_load(config.to_yaml()) == d


class TestEnvironment:

    def test_env_overrides_value(self, monkeypatch):
        config = LedgerConfig()
        config.policy.max_cars.set(5)
        monkeypatch.setenv("CARLEDGER_MAX_CARS", "3")
        assert config.max_cars == 3

    def test_env_list(self, monkeypatch):
        monkeypatch.setenv("CARLEDGER_RESERVED_KEYS", "CAR10, CAR11,")
        assert LedgerConfig().reserved_keys == ["CAR10", "CAR11"]

    def test_env_bad_integer(self, monkeypatch):
        monkeypatch.setenv("CARLEDGER_MAX_CARS", "many")
        with pytest.raises(ConfigValidationError):
            LedgerConfig().max_cars


class TestValidation:

    def test_rejects_non_positive_quota(self):
        with pytest.raises(ConfigValidationError):
            LedgerConfig().policy.max_cars.set(0)

    def test_change_callback(self):
        seen = []
        config = LedgerConfig()
        config.policy.admin_org.on_change(lambda old, new: seen.append((old, new)))
        config.policy.admin_org.set("RegulatorMSP")
        assert seen == [(None, "RegulatorMSP")]
        assert config.admin_org == "RegulatorMSP"


class TestLoadConfig:

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "carledger.yaml"
        path.write_text(yaml.safe_dump({"policy": {"max_cars": 2, "admin_org": "AdminMSP"}}))
        config = load_config(path)
        assert config.max_cars == 2
        assert config.admin_org == "AdminMSP"
        assert config.reserved_keys == ["CAR10"]

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "carledger.yaml"
        path.write_text("")
        assert load_config(path).max_cars == 20

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(tmp_path / "nope.yaml")

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "carledger.yaml"
        path.write_text(yaml.safe_dump({"policy": {"max_trucks": 2}}))
        with pytest.raises(ConfigError, match="policy.max_trucks"):
            load_config(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "carledger.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            load_config(path)


class TestConfigManager:

    def test_singleton(self):
        assert ConfigManager() is get_config_manager()
        assert get_config() is ConfigManager().config

    def test_set_and_get_by_path(self):
        manager = get_config_manager()
        manager.set("policy.max_cars", 7)
        assert manager.get("policy.max_cars") == 7
        assert get_config().max_cars == 7

    def test_invalid_path(self):
        manager = get_config_manager()
        with pytest.raises(ConfigError):
            manager.set("policy.nothing", 1)
        with pytest.raises(ConfigError):
            manager.get("nothing.here")

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "carledger.yaml"
        path.write_text(yaml.safe_dump({"policy": {"max_cars": 4}}))
        get_config_manager().load_from_file(path)
        assert get_config().max_cars == 4

    def test_load_defaults(self, tmp_path, monkeypatch):
        home = tmp_path / "home"
        (home / ".carledger").mkdir(parents=True)
        (home / ".carledger" / "config.yaml").write_text(yaml.safe_dump({"policy": {"max_cars": 9}}))
        project = tmp_path / "project"
        project.mkdir()
        (project / "carledger.yaml").write_text(yaml.safe_dump({"policy": {"max_cars": 5}}))
        monkeypatch.setenv("HOME", str(home))
        monkeypatch.chdir(project)

        loaded = get_config_manager().load_defaults()

        assert len(loaded) == 2
        assert get_config().max_cars == 5

    def test_reset(self):
        manager = get_config_manager()
        manager.set("policy.max_cars", 7)
        manager.reset()
        assert get_config().max_cars == 20

    def test_validate_reports_bad_env(self, monkeypatch):
        monkeypatch.setenv("CARLEDGER_LOG_LEVEL", "verbose")
        errors = get_config_manager().validate()
        assert any("observability.log_level" in e for e in errors)
