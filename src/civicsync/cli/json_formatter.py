"""JSON envelope written by ``--json`` commands.

Every command answers with the same top-level shape::

    {"command", "data", "errors", "success", "timestamp", "warnings"}

Keys are sorted and indented so the output diffs cleanly between runs.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

import orjson
from pydantic import BaseModel

_DUMP_OPTIONS = orjson.OPT_SORT_KEYS | orjson.OPT_INDENT_2


def _envelope(
    command: str,
    *,
    success: bool,
    data: Any,
    errors: list[str],
    warnings: list[str],
) -> dict[str, Any]:
    return {
        "command": command,
        "data": data,
        "errors": errors,
        "success": success and not errors,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "warnings": warnings,
    }


def format_json_output(
    success: bool,
    command: str,
    data: Any | None = None,
    errors: list[str] | None = None,
    warnings: list[str] | None = None,
) -> bytes:
    """Encode a command result.

    Any error message marks the result unsuccessful. A payload orjson
    cannot encode is replaced by an error envelope.

    Example:
        >>> orjson.loads(format_json_output(True, "demo", {"final": 10}))["data"]
        {'final': 10}
    """
    errors = list(errors or [])
    warnings = list(warnings or [])
    envelope = _envelope(
        command,
        success=success,
        data=safe_json_serialize(data),
        errors=errors,
        warnings=warnings,
    )
    try:
        return orjson.dumps(envelope, option=_DUMP_OPTIONS)
    except (TypeError, ValueError) as e:
        fallback = _envelope(
            command,
            success=False,
            data=None,
            errors=[f"JSON serialization failed: {e!s}"],
            warnings=[],
        )
        return orjson.dumps(fallback, option=_DUMP_OPTIONS)


def safe_json_serialize(obj: Any) -> Any:
    """Reduce cache values, settings and enums to JSON primitives."""
    if isinstance(obj, Enum):
        return obj.value
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {str(key): safe_json_serialize(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [safe_json_serialize(item) for item in obj]
    return str(obj)
