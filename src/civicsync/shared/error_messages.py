"""
civicsync Error Messages Module

This module provides user-facing error messages. Messages are fixed,
non-technical strings; technical details stay in logs.

The module follows these principles:
- One Source of Truth: All user-visible messages are centralized here
- User-friendly: Messages never leak codes, stack traces or row data
- Multilingual: Supports English and Korean
"""

from __future__ import annotations

from typing import Any

from .errors import ErrorCode

DEFAULT_LANGUAGE = "en"

ERROR_MESSAGES: dict[str, dict[ErrorCode, str]] = {
    "en": {
        ErrorCode.BAD_REQUEST: "That request could not be processed.",
        ErrorCode.VALIDATION_ERROR: "Some of the information you entered is invalid.",
        ErrorCode.UNAUTHORIZED: "Please sign in to continue.",
        ErrorCode.FORBIDDEN: "You don't have permission to do that.",
        ErrorCode.NOT_FOUND: "This item no longer exists.",
        ErrorCode.CONFLICT: "Someone else changed this item. Please try again.",
        ErrorCode.RATE_LIMITED: "You're doing that too often. Please wait a moment.",
        ErrorCode.TIMEOUT: "The server took too long to respond. Please try again.",
        ErrorCode.INTERNAL_SERVER_ERROR: "Something went wrong on our side. Please try again.",
        ErrorCode.NETWORK_ERROR: "Network connection problem. Please check your connection.",
        ErrorCode.CACHE_UPDATE_FAILED: "Something went wrong while updating the page.",
        ErrorCode.MUTATION_FAILED: "Your change could not be saved.",
        ErrorCode.REALTIME_CONNECTION_FAILED: "Live updates are temporarily unavailable.",
    },
    "ko": {
        ErrorCode.BAD_REQUEST: "요청을 처리할 수 없습니다.",
        ErrorCode.VALIDATION_ERROR: "입력한 정보에 문제가 있습니다.",
        ErrorCode.UNAUTHORIZED: "계속하려면 로그인해주세요.",
        ErrorCode.FORBIDDEN: "이 작업을 수행할 권한이 없습니다.",
        ErrorCode.NOT_FOUND: "이 항목은 더 이상 존재하지 않습니다.",
        ErrorCode.CONFLICT: "다른 사용자가 이 항목을 변경했습니다. 다시 시도해주세요.",
        ErrorCode.RATE_LIMITED: "요청이 너무 많습니다. 잠시 후 다시 시도해주세요.",
        ErrorCode.TIMEOUT: "서버 응답이 지연되고 있습니다. 다시 시도해주세요.",
        ErrorCode.INTERNAL_SERVER_ERROR: "서버에서 문제가 발생했습니다. 다시 시도해주세요.",
        ErrorCode.NETWORK_ERROR: "네트워크 연결에 문제가 있습니다. 연결을 확인해주세요.",
        ErrorCode.CACHE_UPDATE_FAILED: "화면을 갱신하는 중 문제가 발생했습니다.",
        ErrorCode.MUTATION_FAILED: "변경 사항을 저장하지 못했습니다.",
        ErrorCode.REALTIME_CONNECTION_FAILED: "실시간 업데이트를 일시적으로 사용할 수 없습니다.",
    },
}


def get_error_message(
    error_code: ErrorCode,
    language: str = DEFAULT_LANGUAGE,
    **kwargs: Any,
) -> str:
    """Get user-friendly error message for the given error code.

    Args:
        error_code: The error code to get message for
        language: Language code ('en' or 'ko'), defaults to 'en'
        **kwargs: Variables to substitute in the message template

    Returns:
        User-friendly error message. Codes without a dedicated message fall
        back to the generic MUTATION_FAILED text.
    """
    if language not in ERROR_MESSAGES:
        language = DEFAULT_LANGUAGE

    messages = ERROR_MESSAGES[language]
    message_template = messages.get(error_code, messages[ErrorCode.MUTATION_FAILED])

    try:
        return message_template.format(**kwargs)
    except KeyError:
        return message_template


def get_available_languages() -> list[str]:
    """Get list of available languages for error messages."""
    return list(ERROR_MESSAGES.keys())
