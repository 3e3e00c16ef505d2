"""
civicsync 로깅 설정과 구조화 로그 헬퍼.

콘솔은 Rich 핸들러(stderr)로, 파일은 한 줄당 JSON 객체 하나로 기록합니다.
헬퍼 함수들은 ``extra`` 필드에 에러 코드와 작업 이름, 마스킹된 컨텍스트를
실어 보내므로 JSON 포맷터가 그대로 출력할 수 있습니다.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Union

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

from civicsync.shared.constants import Logging
from civicsync.shared.errors import CivicSyncError, ErrorContext

ContextLike = Union[Mapping[str, Any], ErrorContext, None]

# JSON 출력에 복사할 레코드 속성
_EXTRA_FIELDS = (
    "error_code",
    "operation",
    "context",
    "duration_ms",
    "result_info",
)

_CONSOLE_THEME = Theme(
    {
        "logging.level.debug": "cyan",
        "logging.level.info": "green",
        "logging.level.warning": "yellow",
        "logging.level.error": "red bold",
        "logging.level.critical": "red bold reverse",
        "log.time": "dim cyan",
    }
)


class StructuredFormatter(logging.Formatter):
    """레코드 하나를 JSON 한 줄로 직렬화합니다."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            {name: getattr(record, name) for name in _EXTRA_FIELDS if hasattr(record, name)}
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def _console_handler(*, use_rich: bool) -> logging.Handler:
    if not use_rich:
        handler = logging.StreamHandler()
        handler.setFormatter(StructuredFormatter())
        return handler
    return RichHandler(
        console=Console(theme=_CONSOLE_THEME, stderr=True),
        markup=False,
        rich_tracebacks=True,
        log_time_format="[%H:%M:%S]",
    )


def _file_handler(log_file: str | Path, max_bytes: int, backup_count: int) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(StructuredFormatter())
    return handler


def setup_structured_logger(
    name: str = Logging.LOGGER_NAME,
    level: str = Logging.DEFAULT_LEVEL,
    log_file: str | Path | None = None,
    *,
    use_rich_console: bool = True,
    max_bytes: int = Logging.MAX_BYTES,
    backup_count: int = Logging.BACKUP_COUNT,
) -> logging.Logger:
    """
    ``name`` 로거의 핸들러를 새로 구성합니다.

    다시 호출하면 기존 핸들러를 버리고 교체하므로 같은 줄이 두 번 찍히지
    않습니다. 상위 로거로 전파하지 않습니다.

    Args:
        name: 로거 이름
        level: 레벨 이름 (대소문자 무관)
        log_file: 지정하면 JSON 줄 형식의 회전 파일을 추가
        use_rich_console: False면 콘솔도 JSON 줄로 출력
        max_bytes: 파일 회전 기준 크기
        backup_count: 남겨 둘 회전 파일 수
    """
    logger = logging.getLogger(name)
    logger.handlers.clear()
    logger.setLevel(getattr(logging, level.upper()))

    console = _console_handler(use_rich=use_rich_console)
    console.setLevel(logger.level)
    logger.addHandler(console)

    if log_file:
        logger.addHandler(_file_handler(log_file, max_bytes, backup_count))

    logger.propagate = False
    return logger


def _context_to_dict(context: ContextLike) -> dict[str, Any]:
    if not context:
        return {}
    if isinstance(context, ErrorContext):
        return context.safe_dict()
    return dict(context)


def log_operation_error(
    logger: logging.Logger,
    error: CivicSyncError,
    operation: str | None = None,
    additional_context: ContextLike = None,
) -> None:
    """
    ``error``를 ERROR 레벨로 기록합니다.

    에러 자신의 컨텍스트(``user_id`` 제외)에 ``additional_context``를 덧붙이고,
    원인 예외가 있으면 traceback도 남깁니다.
    """
    context = error.context.safe_dict()
    context.update(_context_to_dict(additional_context))

    logger.error(
        error.message,
        extra={
            "error_code": error.code.name,
            "context": context,
            "operation": operation or error.context.operation,
        },
        exc_info=error.original_error is not None,
    )


def log_operation_success(
    logger: logging.Logger,
    operation: str,
    duration_ms: float,
    result_info: dict[str, Any] | None = None,
    additional_context: ContextLike = None,
) -> None:
    """작업 완료를 소요 시간과 함께 DEBUG 레벨로 기록합니다."""
    logger.debug(
        "Operation '%s' completed successfully",
        operation,
        extra={
            "operation": operation,
            "duration_ms": duration_ms,
            "result_info": result_info or {},
            "context": _context_to_dict(additional_context),
        },
    )


def log_validation_error(
    logger: logging.Logger,
    field: str,
    value: Any,
    reason: str,
    context: dict[str, Any] | None = None,
) -> None:
    """
    입력 검증 실패를 WARNING 레벨로 기록합니다.

    값은 ``str()``로 바꿔 남깁니다.
    """
    details = {"field": field, "value": str(value), "reason": reason, **(context or {})}
    logger.warning(
        "Validation failed for field '%s': %s",
        field,
        reason,
        extra={
            "error_code": "VALIDATION_ERROR",
            "context": details,
            "operation": "validation",
        },
    )
