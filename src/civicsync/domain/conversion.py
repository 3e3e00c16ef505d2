"""
Type Conversion Utilities

This module provides utilities for converting between raw dicts (gateway
payloads, push channel row images, caller input) and typed Pydantic models.

Conversion Strategy:
- Use TypeAdapter for efficient dict → model conversion
- Cache TypeAdapter instances for performance
- Wrap ValidationError into TypeCoercionError so invalid input never
  reaches the mutation coordinator
"""

from __future__ import annotations

import functools
import logging
from typing import TYPE_CHECKING, Any, TypeVar, cast

from pydantic import BaseModel, TypeAdapter, ValidationError

from civicsync.shared.errors import create_type_coercion_error
from civicsync.shared.logging import log_validation_error

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


@functools.lru_cache(maxsize=128)
def _get_type_adapter(model_cls: type[BaseModel]) -> TypeAdapter[BaseModel]:
    """Get or create a cached TypeAdapter for the given model class."""
    return TypeAdapter(model_cls)


class ModelConverter:
    """Static utility class for converting between dict and Pydantic models.

    Usage:
        >>> from civicsync.domain.models import VoteInput
        >>> vote = ModelConverter.to_model(
        ...     {"campaign_id": "c1", "vote_type": "SUPPORT"}, VoteInput
        ... )
        >>> vote.vote_type.value
        'SUPPORT'
    """

    @staticmethod
    def to_model(
        data: Mapping[str, Any] | BaseModel,
        model_cls: type[T],
        *,
        operation: str = "dict_to_model",
    ) -> T:
        """Convert dictionary to Pydantic model with validation.

        Instances of ``model_cls`` are returned unchanged.

        Args:
            data: Source dictionary (or model instance) to convert
            model_cls: Target Pydantic model class
            operation: Operation name recorded in the error context

        Returns:
            Validated model instance

        Raises:
            TypeCoercionError: If validation fails (wraps Pydantic ValidationError)
        """
        if isinstance(data, model_cls):
            return data
        if isinstance(data, BaseModel):
            data = data.model_dump()
        try:
            adapter = _get_type_adapter(model_cls)
            return cast("T", adapter.validate_python(data))
        except ValidationError as e:
            model_name = model_cls.__name__
            validation_errors = cast(
                "list[dict[str, Any]]",
                [dict(err) for err in e.errors()],
            )
            error_msg = (
                f"Failed to convert dict to {model_name}: "
                f"{len(validation_errors)} validation error(s)"
            )
            first = validation_errors[0]
            log_validation_error(
                logger,
                ".".join(str(part) for part in first.get("loc", ())) or model_name,
                first.get("input"),
                str(first.get("msg", "invalid")),
                context={"model": model_name, "operation": operation},
            )
            raise create_type_coercion_error(
                message=error_msg,
                model_name=model_name,
                validation_errors=validation_errors,
                operation=operation,
                original_error=e,
            ) from e


__all__ = ["ModelConverter"]
