"""Tests for config module."""

import pytest

from nsq_shipper.config import (
    Config,
    ConfigError,
    is_valid_endpoint,
    load_config,
    normalize_topic,
    parse_endpoint,
    validate_config,
)


class TestConfigDefaults:
    def test_defaults(self):
        cfg = Config()
        assert cfg.topic == "log.raw#ephemeral"
        assert cfg.endpoint == ""
        assert cfg.app == ""
        assert cfg.svc == ""
        assert cfg.max_retries == 0
        assert cfg.timeout == 5.0
        assert cfg.log_level == "INFO"

    def test_frozen(self):
        cfg = Config()
        with pytest.raises(AttributeError):
            cfg.topic = "other"


class TestLoadConfigCLI:
    def test_cli_flags(self):
        cfg = load_config([
            "--endpoint", "127.0.0.1:4150",
            "--topic", "app.logs",
            "--app", "x",
            "--svc", "y",
            "--max-retries", "3",
            "--timeout", "1.5",
        ])
        assert cfg.endpoint == "127.0.0.1:4150"
        assert cfg.topic == "app.logs"
        assert cfg.app == "x"
        assert cfg.svc == "y"
        assert cfg.max_retries == 3
        assert cfg.timeout == 1.5

    def test_empty_argv(self):
        assert load_config([]) == Config()

    def test_help_exits_zero(self, capsys):
        with pytest.raises(SystemExit) as exc:
            load_config(["--help"])
        assert exc.value.code == 0
        assert "--endpoint" in capsys.readouterr().out


class TestLoadConfigEnv:
    def test_env_vars(self, monkeypatch):
        monkeypatch.setenv("NSQ_ENDPOINT", "10.0.0.1:4150")
        monkeypatch.setenv("NSQ_TOPIC", "env.topic")
        monkeypatch.setenv("APP_NAME", "env-app")
        monkeypatch.setenv("SERVICE_NAME", "env-svc")
        monkeypatch.setenv("MAX_RETRIES", "2")
        cfg = load_config([])
        assert cfg.endpoint == "10.0.0.1:4150"
        assert cfg.topic == "env.topic"
        assert cfg.app == "env-app"
        assert cfg.svc == "env-svc"
        assert cfg.max_retries == 2

    def test_cli_overrides_env(self, monkeypatch):
        monkeypatch.setenv("NSQ_ENDPOINT", "10.0.0.1:4150")
        cfg = load_config(["--endpoint", "10.0.0.2:4150"])
        assert cfg.endpoint == "10.0.0.2:4150"

    def test_bad_env_value(self, monkeypatch):
        monkeypatch.setenv("MAX_RETRIES", "lots")
        with pytest.raises(ConfigError):
            load_config([])


class TestLoadConfigYaml:
    def test_yaml_file(self, tmp_path):
        path = tmp_path / "shipper.yml"
        path.write_text(
            "endpoint: 192.168.0.10:4150\n"
            "app: billing\n"
            "svc: invoices\n"
            "max_retries: 1\n"
            "unknown_key: ignored\n"
        )
        cfg = load_config(["--config", str(path)])
        assert cfg.endpoint == "192.168.0.10:4150"
        assert cfg.app == "billing"
        assert cfg.svc == "invoices"
        assert cfg.max_retries == 1

    def test_config_path_env(self, tmp_path, monkeypatch):
        path = tmp_path / "shipper.yml"
        path.write_text("svc: from-file\n")
        monkeypatch.setenv("CONFIG_PATH", str(path))
        assert load_config([]).svc == "from-file"

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "shipper.yml"
        path.write_text("app: from-file\n")
        monkeypatch.setenv("APP_NAME", "from-env")
        assert load_config(["--config", str(path)]).app == "from-env"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(["--config", str(tmp_path / "nope.yml")])

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "shipper.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            load_config(["--config", str(path)])


class TestNormalizeTopic:
    def test_appends_suffix(self):
        assert normalize_topic("foo") == "foo#ephemeral"

    def test_replaces_other_suffix(self):
        assert normalize_topic("foo#bar") == "foo#ephemeral"

    def test_keeps_ephemeral(self):
        assert normalize_topic("foo#ephemeral") == "foo#ephemeral"

    def test_empty_suffix(self):
        assert normalize_topic("foo#") == "foo#ephemeral"

    def test_only_first_hash_counts(self):
        assert normalize_topic("foo#ephemeral#x") == "foo#ephemeral"

    def test_rename_is_announced(self, caplog):
        with caplog.at_level("WARNING", logger="nsq_shipper.config"):
            normalize_topic("foo#bar")
        assert "foo#bar has been renamed to foo#ephemeral" in caplog.text

    def test_append_is_announced(self, caplog):
        with caplog.at_level("WARNING", logger="nsq_shipper.config"):
            normalize_topic("foo")
        assert "foo has been renamed to foo#ephemeral" in caplog.text


class TestEndpoint:
    def test_valid(self):
        assert is_valid_endpoint("127.0.0.1:4150")

    def test_invalid(self):
        for value in ("not-an-endpoint", "", "localhost:4150", "127.0.0.1",
                      "127.0.0.1:123456", "1270.0.0.1:4150"):
            assert not is_valid_endpoint(value), value

    def test_non_ascii_digits_rejected(self):
        assert not is_valid_endpoint("\u0661\u0662\u0667.0.0.1:4150")
        assert not is_valid_endpoint("127.0.0.1:\u0664\u0661\u0665\u0660")

    def test_parse(self):
        assert parse_endpoint("10.1.2.3:4150") == ("10.1.2.3", 4150)


class TestValidateConfig:
    def test_normalizes_topic(self):
        cfg = validate_config(Config(endpoint="127.0.0.1:4150", topic="foo"))
        assert cfg.topic == "foo#ephemeral"
        assert cfg.endpoint == "127.0.0.1:4150"

    def test_rejects_bad_endpoint(self):
        with pytest.raises(ConfigError, match="endpoint: 'not-an-endpoint' is invalid"):
            validate_config(Config(endpoint="not-an-endpoint"))

    def test_rejects_negative_retries(self):
        with pytest.raises(ConfigError):
            validate_config(Config(endpoint="127.0.0.1:4150", max_retries=-1))

    def test_rejects_non_positive_timeout(self):
        for timeout in (-1.0, 0.0):
            with pytest.raises(ConfigError, match="timeout"):
                validate_config(Config(endpoint="127.0.0.1:4150", timeout=timeout))
