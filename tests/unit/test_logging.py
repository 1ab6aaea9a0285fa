"""Tests for logging configuration."""

import logging
import threading

from spirestats.config.logging import (
    LOGGER_NAME,
    get_log_path,
    get_logger,
    setup_logging,
)


class TestGetLogger:
    def test_module_loggers_are_children(self):
        logger = get_logger("spirestats.collector.watcher")
        assert logger.name == "spirestats.collector.watcher"
        assert logger.parent.name in (LOGGER_NAME, "spirestats.collector")

    def test_foreign_name_prefixed(self):
        assert get_logger("scripts.tool").name == "spirestats.scripts.tool"

    def test_default_is_app_logger(self):
        assert get_logger().name == LOGGER_NAME
        assert get_logger(LOGGER_NAME) is get_logger()


class TestSetupLogging:
    def test_writes_log_file_with_thread_name(self, tmp_path):
        log_path = tmp_path / "app.log"
        setup_logging(console=False, log_path=log_path)

        def work():
            get_logger("spirestats.collector.backup").info("snapshot written")

        thread = threading.Thread(target=work, name="backup-scheduler")
        thread.start()
        thread.join()
        for handler in logging.getLogger(LOGGER_NAME).handlers:
            handler.flush()

        line = log_path.read_text(encoding="utf-8").strip()
        assert "[INFO] backup-scheduler spirestats.collector.backup: snapshot written" in line

    def test_repeated_setup_replaces_handlers(self, tmp_path):
        setup_logging(console=True, log_path=tmp_path / "a.log")
        logger = setup_logging(console=True, log_path=tmp_path / "b.log")

        assert len(logger.handlers) == 2
        files = [h.baseFilename for h in logger.handlers if hasattr(h, "baseFilename")]
        assert files == [str(tmp_path / "b.log")]

    def test_level_applied(self, tmp_path):
        logger = setup_logging(console=False, level=logging.DEBUG, log_path=tmp_path / "d.log")
        assert logger.level == logging.DEBUG
        assert logging.getLogger("watchdog").level == logging.WARNING

    def test_default_path_in_data_dir(self, isolated_data_dir):
        assert get_log_path() == isolated_data_dir / "spirestats.log"
        setup_logging(console=False)
        assert get_log_path().exists()

    def test_unwritable_log_file_falls_back(self, tmp_path, capsys):
        logger = setup_logging(console=False, log_path=tmp_path / "missing" / "x.log")
        assert logger.handlers == []
        assert "Could not create log file" in capsys.readouterr().out
