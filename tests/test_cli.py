import logging
from types import SimpleNamespace

import pytest

from nexus_reader import cli
from nexus_reader.config import AppConfig, DatabaseConfig, EmbeddingsConfig, LoggingConfig


def test_configure_logging_defaults_to_console_only():
    original_handlers = list(logging.getLogger().handlers)
    for handler in logging.getLogger().handlers[:]:
        logging.getLogger().removeHandler(handler)

    try:
        cli.configure_logging("INFO")

        handlers = logging.getLogger().handlers
        assert any(isinstance(handler, logging.StreamHandler) for handler in handlers)
        assert not any(isinstance(handler, logging.FileHandler) for handler in handlers)
    finally:
        for handler in logging.getLogger().handlers[:]:
            logging.getLogger().removeHandler(handler)
            handler.close()
        for handler in original_handlers:
            logging.getLogger().addHandler(handler)


def test_configure_logging_with_log_file_creates_file_handler(tmp_path):
    original_handlers = list(logging.getLogger().handlers)
    for handler in logging.getLogger().handlers[:]:
        logging.getLogger().removeHandler(handler)

    try:
        log_path = tmp_path / "nested" / "custom.log"
        cli.configure_logging("INFO", str(log_path))

        assert log_path.exists()
        handlers = logging.getLogger().handlers
        assert any(isinstance(handler, logging.FileHandler) for handler in handlers)
    finally:
        for handler in logging.getLogger().handlers[:]:
            logging.getLogger().removeHandler(handler)
            handler.close()
        for handler in original_handlers:
            logging.getLogger().addHandler(handler)


def test_configure_logging_rejects_unknown_level():
    with pytest.raises(ValueError):
        cli.configure_logging("CHATTY")


def _capture_execute(monkeypatch, app_config):
    monkeypatch.setattr(cli, "configure_logging", lambda level, log_file=None: None)
    monkeypatch.setattr(cli, "parse_app_config", lambda path: app_config)
    monkeypatch.setattr(cli, "parse_env_config", lambda path: {})

    captured = {}

    def fake_execute(config):
        captured["config"] = config
        return SimpleNamespace(output_text="timeline", items=[], is_search=False)

    monkeypatch.setattr(cli, "execute", fake_execute)
    return captured


def test_main_loads_config_and_runs(monkeypatch, capsys):
    app_config = AppConfig(
        feeds_file="feeds.xml",
        per_source_limit=7,
        default_locale="en",
        embeddings=EmbeddingsConfig(provider="openai", model="m"),
    )
    captured = _capture_execute(monkeypatch, app_config)

    exit_code = cli.main(
        ["--config", "configs/test.xml", "--view", "all", "--query", "rust", "--locale", "zh"]
    )

    assert exit_code == 0
    assert capsys.readouterr().out.strip() == "timeline"
    run_config = captured["config"]
    assert run_config.feeds_file == "feeds.xml"
    assert run_config.per_source_limit == 7
    assert run_config.view == "all"
    assert run_config.query == "rust"
    assert run_config.locale == "zh"
    assert run_config.embedding_provider == "openai"


def test_main_cli_overrides_logging(monkeypatch):
    captured_log_config = {}

    def fake_configure(level, log_file=None):
        captured_log_config["level"] = level
        captured_log_config["file"] = log_file

    app_config = AppConfig(logging=LoggingConfig(level="INFO", file="config.log"))
    _capture_execute(monkeypatch, app_config)
    monkeypatch.setattr(cli, "configure_logging", fake_configure)

    cli.main(["--config", "c.xml", "--log-level", "DEBUG", "--log-file", "cli.log"])

    assert captured_log_config == {"level": "DEBUG", "file": "cli.log"}


def test_main_save_load_items_args(monkeypatch):
    captured = _capture_execute(monkeypatch, AppConfig())

    cli.main(["--config", "c.xml", "--save-items", "save.json", "--load-items", "load.json"])

    assert captured["config"].save_items_path == "save.json"
    assert captured["config"].load_items_path == "load.json"


def test_main_without_config_uses_defaults(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda level, log_file=None: None)

    def fail_parse(path):
        raise AssertionError("config should not be parsed")

    monkeypatch.setattr(cli, "parse_app_config", fail_parse)
    captured = {}

    def fake_execute(config):
        captured["config"] = config
        return SimpleNamespace(output_text="", items=[], is_search=False)

    monkeypatch.setattr(cli, "execute", fake_execute)

    assert cli.main([]) == 0
    assert captured["config"].feeds_file is None
    assert captured["config"].view == "today"


def test_main_source_requires_source_view(monkeypatch):
    _capture_execute(monkeypatch, AppConfig())

    with pytest.raises(SystemExit):
        cli.main(["--config", "c.xml", "--source", "1"])


def test_main_runtime_error_returns_one(monkeypatch):
    _capture_execute(monkeypatch, AppConfig())

    def boom(config):
        raise RuntimeError("No feeds found in the configuration.")

    monkeypatch.setattr(cli, "execute", boom)

    assert cli.main(["--config", "c.xml"]) == 1


def test_main_passes_toggle_favorite_ids(monkeypatch):
    captured = _capture_execute(monkeypatch, AppConfig())

    cli.main(["--config", "c.xml", "--toggle-favorite", "a", "--toggle-favorite", "b"])

    assert captured["config"].toggle_favorites == ["a", "b"]


def test_main_masks_database_connection_string(monkeypatch):
    app_config = AppConfig(
        database=DatabaseConfig(connection_string="postgresql://user:secret@db/nexus")
    )
    captured = _capture_execute(monkeypatch, app_config)
    messages = []
    monkeypatch.setattr(
        cli.logger, "info", lambda message, *args: messages.append(message % args)
    )

    cli.main(["--config", "c.xml"])

    assert captured["config"].database_connection_string == (
        "postgresql://user:secret@db/nexus"
    )
    logged = "\n".join(messages)
    assert "***MASKED***" in logged
    assert "secret" not in logged
