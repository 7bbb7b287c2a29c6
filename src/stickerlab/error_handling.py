"""Error taxonomy and standardized error handling for StickerLab.

Tool-level errors (``ToolUnavailableError``, ``ToolExecutionError``,
``SizeConstraintExceededError``) are recovered inside the conversion pipeline
by moving on to the next candidate or fallback path.  Transport errors
(``DownloadError``, ``UploadError``, ``SendError``) are never retried; the chat
handlers turn them into a short user-facing reply.
"""

from __future__ import annotations

import logging
import re
import traceback
from contextlib import contextmanager
from enum import Enum
from typing import Any


class ErrorLevel(Enum):
    """Error severity levels for consistent logging."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class StickerLabError(Exception):
    """Base exception class for all StickerLab errors."""

    def __init__(
        self, message: str, cause: Exception | None = None, context: dict | None = None
    ):
        super().__init__(message)
        self.cause = cause
        self.context = context or {}

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.cause:
            return f"{base_msg} (caused by: {self.cause})"
        return base_msg


class ConfigurationError(StickerLabError):
    """Raised when configuration is invalid or missing."""


class DownloadError(StickerLabError):
    """Raised when the messaging collaborator cannot deliver the media bytes."""


class UploadError(StickerLabError):
    """Raised when the converted media cannot be uploaded."""


class SendError(StickerLabError):
    """Raised when the reply message cannot be sent."""


class UnsupportedFormatError(StickerLabError):
    """Raised when the sniffed format has no viable conversion path."""


class DecodeError(StickerLabError):
    """Raised when bytes do not parse as the format they claim to be."""


class ToolUnavailableError(StickerLabError):
    """Raised when no candidate tool for a conversion kind is installed."""


class ToolExecutionError(StickerLabError):
    """Raised when a candidate tool ran but failed or produced no usable output."""


class SizeConstraintExceededError(StickerLabError):
    """Raised when valid output stays above the byte ceiling after every retry tier."""

    def __init__(
        self,
        message: str,
        smallest_size: int | None = None,
        max_bytes: int | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause=cause, context=context)
        self.smallest_size = smallest_size
        self.max_bytes = max_bytes


class ConversionTimeoutError(StickerLabError):
    """Raised when a conversion runs past its deadline."""


# Short replies sent back to the chat when a task fails.
USER_MESSAGES: dict[type[StickerLabError], str] = {
    DownloadError: "Couldn't download the media. Please try again.",
    UnsupportedFormatError: "That format isn't supported.",
    DecodeError: "Couldn't read that file. Is it a valid image?",
    ToolUnavailableError: "Conversion isn't available right now.",
    ToolExecutionError: "Conversion failed. Please try again.",
    SizeConstraintExceededError: "The result is too large to send.",
    ConversionTimeoutError: "Conversion took too long. Try a shorter clip.",
    UploadError: "Couldn't upload the result. Please try again.",
    SendError: "Couldn't send the result. Please try again.",
}

GENERIC_USER_MESSAGE = "Something went wrong. Please try again."


def user_message_for(error: BaseException) -> str:
    """Return the short chat reply for *error* (walks the class hierarchy)."""
    for cls in type(error).__mro__:
        message = USER_MESSAGES.get(cls)  # type: ignore[arg-type]
        if message is not None:
            return message
    return GENERIC_USER_MESSAGE


def handle_error(
    error: Exception,
    operation: str,
    error_type: type[StickerLabError] = ToolExecutionError,
    level: ErrorLevel = ErrorLevel.ERROR,
    context: dict | None = None,
    logger: logging.Logger | None = None,
    reraise: bool = True,
) -> StickerLabError | None:
    """Standardized error handling with consistent logging and error transformation.

    Args:
        error: Original exception that occurred
        operation: Description of operation that failed
        error_type: Type of StickerLabError to raise
        level: Logging level for the error
        context: Additional context information
        logger: Logger to use (defaults to module logger)
        reraise: Whether to reraise the transformed exception

    Returns:
        The transformed error if reraise=False, otherwise None

    Raises:
        StickerLabError: Transformed error if reraise=True
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    message = f"Failed to {operation}: {error}"

    error_context = dict(context or {})
    error_context.update(
        {
            "operation": operation,
            "original_error_type": type(error).__name__,
        }
    )

    transformed_error = error_type(message, cause=error, context=error_context)

    log_message = f"🚨 {operation.capitalize()} failed: {error}"
    context_str = ", ".join(f"{k}={v}" for k, v in error_context.items())
    if context_str:
        log_message += f" (context: {context_str})"

    log_func = getattr(logger, level.value)
    log_func(log_message)

    if level in [ErrorLevel.ERROR, ErrorLevel.CRITICAL]:
        logger.debug(f"Traceback for {operation}: {traceback.format_exc()}")

    if reraise:
        raise transformed_error from error
    return transformed_error


@contextmanager
def error_context(
    operation: str,
    error_type: type[StickerLabError] = ToolExecutionError,
    level: ErrorLevel = ErrorLevel.ERROR,
    context: dict | None = None,
    logger: logging.Logger | None = None,
) -> Any:
    """Context manager for standardized error handling.

    Usage:
        with error_context("upload sticker", UploadError, context={"chat": chat_id}):
            client.upload(data, MediaCategory.STICKER)

    StickerLab errors raised inside the block pass through unchanged; any other
    exception is wrapped in *error_type* and logged.
    """
    try:
        yield
    except StickerLabError:
        raise
    except Exception as e:
        handle_error(e, operation, error_type, level, context, logger, reraise=True)


def log_warning_with_context(
    message: str, context: dict | None = None, logger: logging.Logger | None = None
) -> None:
    """Log a warning with standardized context formatting."""
    if logger is None:
        logger = logging.getLogger(__name__)

    warning_msg = f"⚠️  {message}"
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        warning_msg += f" (context: {context_str})"

    logger.warning(warning_msg)


def log_info_with_context(
    message: str, context: dict | None = None, logger: logging.Logger | None = None
) -> None:
    """Log an info message with standardized context formatting."""
    if logger is None:
        logger = logging.getLogger(__name__)

    info_msg = f"ℹ️  {message}"
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        info_msg += f" (context: {context_str})"

    logger.info(info_msg)


def clean_error_message(error_msg: str, max_length: int = 500) -> str:
    """Collapse tool output into a single bounded line for logs and error texts.

    Line breaks and tabs become spaces, control characters are removed,
    whitespace runs are collapsed and the result is truncated to *max_length*.
    """
    cleaned = str(error_msg)
    cleaned = cleaned.replace("\n", " ").replace("\r", " ").replace("\t", " ")
    cleaned = re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]", "", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()

    if len(cleaned) > max_length:
        cleaned = cleaned[: max_length - 3] + "..."

    return cleaned
