import json
import logging
import sys

import pytest

from ripple.core.errors import ConfigFileNotFoundError
from ripple.core.logging_config import (
    TRACE,
    JsonFormatter,
    configure_logging,
    resolve_level,
)


@pytest.mark.parametrize(
    "name, level",
    [
        ("trace", TRACE),
        ("debug", logging.DEBUG),
        ("info", logging.INFO),
        ("warn", logging.WARNING),
        ("WARN", logging.WARNING),
        ("error", logging.ERROR),
    ],
)
def test_resolve_level(name, level):
    assert resolve_level(name) == level


def test_trace_level_has_a_name():
    assert logging.getLevelName(TRACE) == "TRACE"


def test_json_formatter_emits_one_object():
    record = logging.LogRecord(
        name="ripple.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=10,
        msg="cache size %d",
        args=(42,),
        exc_info=None,
    )
    data = json.loads(JsonFormatter().format(record))

    assert data["message"] == "cache size 42"
    assert data["level"] == "WARNING"
    assert data["logger"] == "ripple.test"
    assert data["line"] == 10
    assert "timestamp" in data
    assert "exception" not in data


def test_json_formatter_includes_exception():
    try:
        raise ValueError("bad input")
    except ValueError:
        exc_info = sys.exc_info()

    record = logging.LogRecord("ripple.test", logging.ERROR, __file__, 1, "failed", (), exc_info)
    data = json.loads(JsonFormatter().format(record))

    assert data["exception"]["type"] == "ValueError"
    assert data["exception"]["message"] == "bad input"
    assert "Traceback" in data["exception"]["traceback"]


def test_file_handler_writes_json_and_is_released(tmp_path, config_factory):
    log_path = tmp_path / "logs" / "ripple.log"
    config = config_factory(log_file_path=str(log_path), log_format="json", log_level="debug")
    root = logging.getLogger()
    handlers_before = list(root.handlers)

    with configure_logging(config) as logger:
        assert root.level == logging.DEBUG
        logger.getChild("test").info("hello %s", "world")

    assert root.handlers == handlers_before
    lines = [json.loads(line) for line in log_path.read_text().splitlines()]
    assert any(line["message"] == "hello world" for line in lines)


def test_text_format_respects_level(tmp_path, config_factory):
    log_path = tmp_path / "ripple.log"
    config = config_factory(log_file_path=str(log_path), log_format="text", log_level="warn")

    with configure_logging(config) as logger:
        logger.info("quiet")
        logger.warning("loud")

    content = log_path.read_text()
    assert "loud" in content
    assert "quiet" not in content


def test_unwritable_log_path_raises(tmp_path, config_factory):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    config = config_factory(log_file_path=str(blocker / "sub" / "ripple.log"))

    with pytest.raises(ConfigFileNotFoundError) as exc_info:
        with configure_logging(config):
            pass

    assert str(blocker) in str(exc_info.value)
