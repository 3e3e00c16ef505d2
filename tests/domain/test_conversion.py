"""Tests for ModelConverter."""

from __future__ import annotations

import logging

import pytest

from civicsync.domain.conversion import ModelConverter
from civicsync.domain.models import VoteInput, VoteType
from civicsync.shared.errors import ErrorCode, TypeCoercionError


class TestToModel:
    """Dict to model conversion."""

    def test_valid_dict(self) -> None:
        vote = ModelConverter.to_model({"campaign_id": "c-1", "vote_type": "SUPPORT"}, VoteInput)
        assert vote.vote_type is VoteType.SUPPORT

    def test_instance_returned_unchanged(self) -> None:
        vote = VoteInput(campaign_id="c-1", vote_type=VoteType.SUPPORT)
        assert ModelConverter.to_model(vote, VoteInput) is vote

    def test_invalid_dict_raises_type_coercion_error(self) -> None:
        with pytest.raises(TypeCoercionError) as exc_info:
            ModelConverter.to_model(
                {"campaign_id": "c-1", "vote_type": "MAYBE"},
                VoteInput,
                operation="vote",
            )

        error = exc_info.value
        assert error.code is ErrorCode.VALIDATION_ERROR
        assert error.model_name == "VoteInput"
        assert error.validation_errors
        assert error.context.operation == "vote"
        assert not error.is_retryable

    def test_missing_field(self) -> None:
        with pytest.raises(TypeCoercionError, match="1 validation error"):
            ModelConverter.to_model({"vote_type": "SUPPORT"}, VoteInput)

    def test_failure_logged_with_field(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="civicsync.domain.conversion"):
            with pytest.raises(TypeCoercionError):
                ModelConverter.to_model({"campaign_id": "c-1", "vote_type": "MAYBE"}, VoteInput)

        record = caplog.records[-1]
        assert record.context["field"] == "vote_type"
        assert record.context["model"] == "VoteInput"
