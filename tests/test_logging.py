"""Tests for the structured log formatter."""

import logging

from docrefine.core.logging import StructuredFormatter, log_with_context


class _Capture(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


def _captured_record(**context) -> logging.LogRecord:
    logger = logging.getLogger("docrefine.tests.logging")
    logger.setLevel(logging.INFO)
    handler = _Capture()
    logger.addHandler(handler)
    try:
        log_with_context(logger, logging.INFO, "Committed result", **context)
    finally:
        logger.removeHandler(handler)
    return handler.records[0]


def test_context_fields_lead_the_line():
    record = _captured_record(history_length=2, command_id="cmd-1", generation=3)

    line = StructuredFormatter().format(record)

    assert "level=INFO" in line
    assert line.index("command_id=cmd-1") < line.index("generation=3") < line.index("message=")
    assert line.endswith("message=Committed result history_length=2")


def test_plain_record_has_no_context():
    record = _captured_record()

    line = StructuredFormatter().format(record)

    assert "command_id" not in line
    assert line.endswith("message=Committed result")
