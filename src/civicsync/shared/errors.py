"""Exception types shared by every civicsync layer.

Each failure carries an :class:`ErrorCode`, a message and an optional
:class:`ErrorContext`. The layer an error belongs to is expressed by its
base class:

``DomainError``
    Bad input or a mutation that could not be applied.
``InfrastructureError``
    The data store, the push channel or the filesystem misbehaved.
``ApplicationError``
    Configuration and command-line wiring.

Whether a failed call is worth repeating is decided from the code alone,
see :data:`NON_RETRYABLE_CODES`.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Union

# Values allowed in ErrorContext.additional_data
PrimitiveContextValue = Union[str, int, float, bool]

# Dropped by ErrorContext.safe_dict unless told otherwise
SAFE_DICT_MASK_KEYS: tuple[str, ...] = ("user_id",)


class ErrorCode(str, Enum):
    """Every code civicsync raises or receives.

    The first two groups are also the codes a data store response may
    carry, so gateway results and local exceptions share one vocabulary.
    """

    # Rejected by the data store
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"

    # Transient data store failures
    RATE_LIMITED = "RATE_LIMITED"
    TIMEOUT = "TIMEOUT"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"

    # Input
    VALIDATION_ERROR = "VALIDATION_ERROR"
    TYPE_COERCION_ERROR = "TYPE_COERCION_ERROR"

    # Query cache
    CACHE_UPDATE_FAILED = "CACHE_UPDATE_FAILED"
    CACHE_FETCH_FAILED = "CACHE_FETCH_FAILED"
    UNKNOWN_QUERY_KIND = "UNKNOWN_QUERY_KIND"

    # Mutations
    MUTATION_FAILED = "MUTATION_FAILED"
    MUTATION_ROLLED_BACK = "MUTATION_ROLLED_BACK"

    # Push channel
    REALTIME_CONNECTION_FAILED = "REALTIME_CONNECTION_FAILED"
    REALTIME_SUBSCRIPTION_FAILED = "REALTIME_SUBSCRIPTION_FAILED"

    # Settings and files
    CONFIG_ERROR = "CONFIG_ERROR"
    FILE_READ_ERROR = "FILE_READ_ERROR"
    FILE_PERMISSION_DENIED = "FILE_PERMISSION_DENIED"

    BACKGROUND_TASK_FAILED = "BACKGROUND_TASK_FAILED"

    # Command line
    CLI_UNEXPECTED_ERROR = "CLI_UNEXPECTED_ERROR"
    CLI_OUTPUT_ERROR = "CLI_OUTPUT_ERROR"


# Codes that describe a caller problem; retrying cannot help
NON_RETRYABLE_CODES: frozenset[ErrorCode] = frozenset(
    {
        ErrorCode.BAD_REQUEST,
        ErrorCode.VALIDATION_ERROR,
        ErrorCode.TYPE_COERCION_ERROR,
        ErrorCode.UNAUTHORIZED,
        ErrorCode.FORBIDDEN,
        ErrorCode.NOT_FOUND,
        ErrorCode.CONFLICT,
    },
)


def _to_primitive(key: str, val: Any) -> PrimitiveContextValue:
    if isinstance(val, (str, int, float, bool)):
        return val
    if isinstance(val, Path):
        return str(val)
    if isinstance(val, Enum):
        return val.value
    if isinstance(val, Decimal):
        return float(val)
    msg = (
        f"Cannot coerce {type(val).__name__} for {key!r}; "
        "use str, int, float, bool, Path, Enum or Decimal"
    )
    raise TypeError(msg)


def _coerce_primitives(value: Any | None) -> dict[str, PrimitiveContextValue] | None:
    """Flatten ``additional_data`` to log-safe scalars.

    Raises:
        TypeError: For a non-dict argument or a value with no scalar form
    """
    if value is None:
        return None
    if not isinstance(value, dict):
        msg = f"additional_data must be dict, got {type(value).__name__}"
        raise TypeError(msg)
    return {key: _to_primitive(key, val) for key, val in value.items()}


@dataclass(frozen=True)
class ErrorContextModel:
    """Where an error happened, in a form that is safe to log.

    ``additional_data`` is coerced to scalars on construction so a context
    can never drag a whole cache entry or settings object into a log line.
    """

    operation: str | None = None
    user_id: str | None = None
    additional_data: dict[str, PrimitiveContextValue] | None = None

    def __post_init__(self) -> None:
        if self.additional_data is not None:
            object.__setattr__(
                self, "additional_data", _coerce_primitives(self.additional_data)
            )

    def safe_dict(self, *, mask_keys: tuple[str, ...] | None = None) -> dict[str, Any]:
        """Fields for log output, minus ``mask_keys``.

        ``additional_data`` is always present, empty when unset or masked.

        Example:
            >>> ErrorContextModel(user_id="u-1", operation="vote").safe_dict()
            {'operation': 'vote', 'additional_data': {}}
        """
        hidden = SAFE_DICT_MASK_KEYS if mask_keys is None else mask_keys

        data: dict[str, Any] = {
            name: value
            for name, value in (("operation", self.operation), ("user_id", self.user_id))
            if value is not None and name not in hidden
        }
        extra = None if "additional_data" in hidden else self.additional_data
        data["additional_data"] = extra if extra is not None else {}
        return data


ErrorContext = ErrorContextModel


class CivicSyncError(Exception):
    """Root of the civicsync exception tree.

    Attributes:
        code: Machine-readable failure code
        message: Text without the code prefix
        context: Where it happened; an empty context when not given
        original_error: Lower-level exception this one wraps, if any
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: ErrorContext | None = None,
        original_error: Exception | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.context = context or ErrorContext()
        self.original_error = original_error
        super().__init__(f"{code.value}: {message}")

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    @property
    def is_retryable(self) -> bool:
        """Whether retrying the failed operation may succeed."""
        return self.code not in NON_RETRYABLE_CODES

    def to_dict(self) -> dict[str, Any]:
        """Log payload; the context goes through :meth:`ErrorContext.safe_dict`."""
        return {
            "code": self.code.value,
            "message": self.message,
            "context": self.context.safe_dict(),
            "original_error": str(self.original_error) if self.original_error else None,
        }


class DomainError(CivicSyncError):
    """Input rejected or a business rule violated."""


class InfrastructureError(CivicSyncError):
    """Failure talking to the data store, the push channel or the disk."""


class ApplicationError(CivicSyncError):
    """Configuration or wiring problem."""


class GatewayError(InfrastructureError):
    """Typed error returned by the data store gateway.

    Attributes:
        retry_after: Seconds the server asked us to wait, for RATE_LIMITED
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: ErrorContext | None = None,
        original_error: Exception | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(code, message, context, original_error)
        self.retry_after = retry_after


class CacheUpdateError(DomainError):
    """Raised when a cache updater throws; the entry is left unchanged."""


class RealtimeError(InfrastructureError):
    """Push channel connection or subscription failure."""


class MutationError(DomainError):
    """Mutation failure surfaced after the speculative edit was rolled back.

    Attributes:
        mutation_id: Identifier of the rolled back mutation
        user_message: Fixed, non-technical message safe to show to users
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: ErrorContext | None = None,
        original_error: Exception | None = None,
        mutation_id: str | None = None,
        user_message: str | None = None,
    ) -> None:
        super().__init__(code, message, context, original_error)
        self.mutation_id = mutation_id
        self.user_message = user_message or message

    @property
    def cause_code(self) -> ErrorCode:
        """Code of the underlying failure, or this error's own code."""
        if isinstance(self.original_error, CivicSyncError):
            return self.original_error.code
        return self.code


class TypeCoercionError(DomainError):
    """Mutation input that failed model validation.

    Attributes:
        model_name: Input model the payload was checked against
        validation_errors: pydantic's per-field error list
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: ErrorContext | None = None,
        original_error: Exception | None = None,
        model_name: str | None = None,
        validation_errors: list[dict[str, Any]] | None = None,
    ):
        super().__init__(code, message, context, original_error)
        self.model_name = model_name
        self.validation_errors = validation_errors or []


class CliError(ApplicationError):
    """CLI-specific error with the process exit code to use."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: ErrorContext | None = None,
        original_error: Exception | None = None,
        command: str | None = None,
        exit_code: int = 1,
    ):
        super().__init__(code, message, context, original_error)
        self.command = command
        self.exit_code = exit_code


def _context(operation: str | None, **data: PrimitiveContextValue | None) -> ErrorContext:
    present = {key: value for key, value in data.items() if value is not None}
    return ErrorContext(operation=operation, additional_data=present or None)


def create_validation_error(
    message: str,
    field: str | None = None,
    operation: str | None = None,
    original_error: Exception | None = None,
) -> DomainError:
    return DomainError(
        ErrorCode.VALIDATION_ERROR,
        message,
        _context(operation, field=field or None),
        original_error,
    )


def create_config_error(
    message: str,
    config_key: str | None = None,
    operation: str | None = None,
    original_error: Exception | None = None,
) -> ApplicationError:
    return ApplicationError(
        ErrorCode.CONFIG_ERROR,
        message,
        _context(operation, config_key=config_key or None),
        original_error,
    )


def create_type_coercion_error(
    message: str,
    model_name: str,
    validation_errors: list[dict[str, Any]] | None = None,
    operation: str | None = None,
    original_error: Exception | None = None,
) -> TypeCoercionError:
    """Wrap a pydantic ``ValidationError`` for ``model_name``.

    The code is VALIDATION_ERROR so the retry policy never repeats the call.
    """
    errors = validation_errors or []
    return TypeCoercionError(
        code=ErrorCode.VALIDATION_ERROR,
        message=message,
        context=_context(
            operation or "validate_input",
            model_name=model_name,
            validation_error_count=len(errors),
        ),
        original_error=original_error,
        model_name=model_name,
        validation_errors=errors,
    )


def create_cli_error(
    message: str,
    command: str | None = None,
    original_error: Exception | None = None,
    exit_code: int = 1,
) -> CliError:
    """Error for a command that failed in an unplanned way."""
    return CliError(
        ErrorCode.CLI_UNEXPECTED_ERROR,
        message,
        _context("cli_command", command=command),
        original_error,
        command,
        exit_code=exit_code,
    )


def create_cli_output_error(
    message: str,
    command: str | None = None,
    output_type: str | None = None,
    original_error: Exception | None = None,
) -> CliError:
    """Error for a result that could not be written to the terminal."""
    return CliError(
        ErrorCode.CLI_OUTPUT_ERROR,
        message,
        _context("cli_output", command=command, output_type=output_type),
        original_error,
        command,
        exit_code=1,
    )
