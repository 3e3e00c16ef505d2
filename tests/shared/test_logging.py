"""
구조적 로깅 시스템 테스트.
"""

import json
import logging

import pytest
from rich.logging import RichHandler

from civicsync.shared.errors import ErrorCode, ErrorContext, InfrastructureError
from civicsync.shared.logging import (
    StructuredFormatter,
    log_operation_error,
    log_operation_success,
    setup_structured_logger,
)


class TestStructuredFormatter:
    """StructuredFormatter 테스트."""

    def test_format_basic_record(self) -> None:
        record = logging.LogRecord(
            name="civicsync.test",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="hello %s",
            args=("world",),
            exc_info=None,
        )
        data = json.loads(StructuredFormatter().format(record))
        assert data["level"] == "INFO"
        assert data["logger"] == "civicsync.test"
        assert data["message"] == "hello world"
        assert "timestamp" in data

    def test_format_includes_extra_fields(self) -> None:
        record = logging.LogRecord(
            name="civicsync.test",
            level=logging.ERROR,
            pathname=__file__,
            lineno=1,
            msg="failed",
            args=(),
            exc_info=None,
        )
        record.error_code = "TIMEOUT"
        record.operation = "vote"
        data = json.loads(StructuredFormatter().format(record))
        assert data["error_code"] == "TIMEOUT"
        assert data["operation"] == "vote"


class TestSetupStructuredLogger:
    """setup_structured_logger 테스트."""

    def test_rich_console_handler(self) -> None:
        logger = setup_structured_logger(name="civicsync.test.rich", level="DEBUG")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], RichHandler)
        assert logger.propagate is False

    def test_json_console_handler(self) -> None:
        logger = setup_structured_logger(
            name="civicsync.test.json",
            level="warning",
            use_rich_console=False,
        )
        assert logger.level == logging.WARNING
        assert isinstance(logger.handlers[0].formatter, StructuredFormatter)

    def test_repeated_setup_does_not_duplicate_handlers(self) -> None:
        setup_structured_logger(name="civicsync.test.repeat")
        logger = setup_structured_logger(name="civicsync.test.repeat")
        assert len(logger.handlers) == 1

    def test_log_file_written_as_json(self, tmp_path) -> None:
        log_file = tmp_path / "logs" / "civicsync.log"
        logger = setup_structured_logger(
            name="civicsync.test.file",
            level="INFO",
            log_file=log_file,
            use_rich_console=False,
        )
        logger.info("written")
        for handler in logger.handlers:
            handler.flush()
        line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
        assert json.loads(line)["message"] == "written"


class TestOperationLogging:
    """작업 로그 헬퍼 테스트."""

    def test_log_operation_error(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("civicsync.test.ops")
        error = InfrastructureError(
            ErrorCode.TIMEOUT,
            "request timed out",
            ErrorContext(operation="vote", user_id="user-1", additional_data={"attempt": 2}),
        )
        with caplog.at_level(logging.ERROR, logger="civicsync.test.ops"):
            log_operation_error(
                logger=logger,
                error=error,
                additional_context={"campaign_id": "c-1"},
            )

        record = caplog.records[-1]
        assert record.getMessage() == "request timed out"
        assert record.error_code == "TIMEOUT"
        assert record.operation == "vote"
        assert record.context["additional_data"] == {"attempt": 2}
        assert record.context["campaign_id"] == "c-1"
        assert "user_id" not in record.context

    def test_log_operation_success(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("civicsync.test.ops")
        with caplog.at_level(logging.DEBUG, logger="civicsync.test.ops"):
            log_operation_success(
                logger=logger,
                operation="confirm",
                duration_ms=12.5,
                result_info={"entity_id": "c-1"},
            )

        record = caplog.records[-1]
        assert record.operation == "confirm"
        assert record.duration_ms == 12.5
        assert record.result_info == {"entity_id": "c-1"}

