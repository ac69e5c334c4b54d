"""structlog configuration."""
import logging

import pytest

from regen.logger import configure_logger, get_logger


@pytest.fixture
def root_handlers():
    root = logging.getLogger()
    before = list(root.handlers)
    yield root
    for handler in root.handlers[:]:
        if handler not in before:
            handler.close()
            root.removeHandler(handler)


class TestConfigureLogger:

    def test_json_logs_to_file(self, root_handlers, tmp_path):
        log_file = tmp_path / "logs" / "regen.log"
        configure_logger(json_logs=True, log_file=str(log_file))
        get_logger("test").warning("layer_exhausted", layer="auto-repair")
        for handler in root_handlers.handlers:
            handler.flush()
        content = log_file.read_text()
        assert '"event": "layer_exhausted"' in content
        assert '"layer": "auto-repair"' in content

    def test_console_handler_added(self, root_handlers):
        count = len(root_handlers.handlers)
        configure_logger(json_logs=False)
        assert len(root_handlers.handlers) == count + 1
