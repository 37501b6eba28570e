"""
Tests for genie_tales.settings
"""
import logging

import pytest

from genie_tales import settings


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


def test_configure_logging_writes_log_file(tmp_path, monkeypatch, restore_root_logger):
    log_dir = tmp_path / "logs"
    monkeypatch.setattr(settings, "LOG_TO_FILE", True)
    monkeypatch.setattr(settings, "LOG_DIR", str(log_dir))
    monkeypatch.setattr(settings, "LOG_LEVEL", "DEBUG")

    settings.configure_logging()
    logging.getLogger("genie_tales.test").info("rendering page 1")
    for handler in restore_root_logger.handlers:
        handler.flush()

    file_handlers = [h for h in restore_root_logger.handlers if isinstance(h, logging.FileHandler)]
    assert [h.baseFilename for h in file_handlers] == [str(log_dir / "app.log")]
    assert restore_root_logger.level == logging.DEBUG
    assert "rendering page 1" in (log_dir / "app.log").read_text(encoding="utf-8")


def test_configure_logging_console_only(tmp_path, monkeypatch, restore_root_logger):
    monkeypatch.setattr(settings, "LOG_TO_FILE", False)
    monkeypatch.setattr(settings, "LOG_DIR", str(tmp_path / "logs"))

    settings.configure_logging()

    assert not any(isinstance(h, logging.FileHandler) for h in restore_root_logger.handlers)
    assert not (tmp_path / "logs").exists()


def test_has_all_keys_reports_missing(monkeypatch, caplog):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(settings, "ELEVENLABS_API_KEY", "")
    monkeypatch.setattr(settings, "IMAGE_PROVIDER", "replicate")
    monkeypatch.setattr(settings, "REPLICATE_API_TOKEN", "")

    with caplog.at_level(logging.WARNING, logger="genie_tales.settings"):
        assert settings.has_all_keys() is False
    assert "ELEVENLABS_API_KEY, REPLICATE_API_TOKEN" in caplog.text


def test_has_all_keys_ignores_unused_provider(monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(settings, "ELEVENLABS_API_KEY", "xi-test")
    monkeypatch.setattr(settings, "IMAGE_PROVIDER", "openai")
    monkeypatch.setattr(settings, "REPLICATE_API_TOKEN", "")
    assert settings.has_all_keys() is True
