"""Tests for structlog configuration and the log file tee."""

import pytest
import structlog

from guide_augment.config import Settings


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


class TestConfigureLogging:
    def test_configure_logging_runs(self) -> None:
        from guide_augment.logging import configure_logging

        configure_logging()

    def test_log_level_respected(self, monkeypatch) -> None:
        """LOG_LEVEL controls the structlog filtering level."""
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        monkeypatch.setattr("guide_augment.logging.settings", Settings())

        from guide_augment.logging import configure_logging

        configure_logging()

        # the wrapper class name encodes the level, e.g. BoundLoggerFilteringAtError
        class_name = type(structlog.get_logger().bind()).__name__
        assert "Error" in class_name, f"Expected filtering at ERROR, got {class_name}"

    def test_verbose_forces_debug(self, monkeypatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        monkeypatch.setattr("guide_augment.logging.settings", Settings())

        from guide_augment.logging import configure_logging

        configure_logging(verbose=True)

        class_name = type(structlog.get_logger().bind()).__name__
        assert "Debug" in class_name

    def test_unknown_log_level_falls_back_to_info(self, monkeypatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "BOGUS")
        monkeypatch.setattr("guide_augment.logging.settings", Settings())

        from guide_augment.logging import configure_logging

        configure_logging()

        class_name = type(structlog.get_logger().bind()).__name__
        assert "Info" in class_name, f"Expected filtering at INFO, got {class_name}"

    def test_json_renderer_outside_development(self, monkeypatch) -> None:
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setattr("guide_augment.logging.settings", Settings())

        from guide_augment.logging import configure_logging

        configure_logging()

        renderer = structlog.get_config()["processors"][-1]
        assert isinstance(renderer, structlog.processors.JSONRenderer)

    def test_console_renderer_in_development(self, monkeypatch) -> None:
        monkeypatch.setenv("ENVIRONMENT", "development")
        monkeypatch.setattr("guide_augment.logging.settings", Settings())

        from guide_augment.logging import configure_logging

        configure_logging()

        renderer = structlog.get_config()["processors"][-1]
        assert isinstance(renderer, structlog.dev.ConsoleRenderer)

    def test_log_file_creates_tee_writer(self, monkeypatch, tmp_path) -> None:
        monkeypatch.setenv("LOG_FILE", str(tmp_path / "run.log"))
        monkeypatch.setattr("guide_augment.logging.settings", Settings())

        from guide_augment.logging import _TeeWriter, configure_logging

        configure_logging()

        factory = structlog.get_config()["logger_factory"]
        assert isinstance(factory._file, _TeeWriter)

    def test_command_bound_to_every_line(self) -> None:
        from guide_augment.logging import configure_logging

        structlog.contextvars.bind_contextvars(document_id="stale.mdx")
        configure_logging(command="augment")

        assert structlog.contextvars.get_contextvars() == {"command": "augment"}

    def test_no_command_clears_previous_context(self) -> None:
        from guide_augment.logging import configure_logging

        configure_logging(command="extract")
        configure_logging()

        assert structlog.contextvars.get_contextvars() == {}


class TestTeeWriter:
    def test_writes_to_stderr_and_file(self, tmp_path, capsys) -> None:
        from guide_augment.logging import _TeeWriter

        log_path = tmp_path / "tee.log"
        writer = _TeeWriter(str(log_path))
        writer.write("document_enhanced products=2\n")
        writer.flush()

        assert "document_enhanced products=2" in log_path.read_text(encoding="utf-8")
        assert "document_enhanced products=2" in capsys.readouterr().err

    def test_degrades_on_bad_path(self, capsys) -> None:
        from guide_augment.logging import _TeeWriter

        writer = _TeeWriter("/nonexistent/dir/impossible.log")
        writer.write("still works\n")
        writer.flush()

        err = capsys.readouterr().err
        assert "still works" in err
        assert "WARNING" in err
