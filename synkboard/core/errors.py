"""
Error taxonomy and shared error-handling helpers.

Condition, template and action errors never escape the rule engine; they are
turned into result data. Query validation errors are raised to the caller
before any query runs. Collaborator errors are fatal to a single rule only.
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

T = TypeVar("T")


class SynkboardError(Exception):
    """Base class for all errors raised by the SynkBoard core."""


class ConditionError(SynkboardError):
    """A condition could not be evaluated (e.g. unknown operator)."""


class TemplateError(SynkboardError):
    """An interpolated structured payload could not be parsed back."""


class ActionError(SynkboardError):
    """An action failed or its configuration is malformed."""


class QueryValidationError(SynkboardError, ValueError):
    """A widget configuration was rejected before any query executed."""


class CollaboratorError(SynkboardError):
    """An external collaborator (repository, directory, store) failed."""


def _format_extra(extra: dict | None) -> str:
    if not extra:
        return ""
    parts: list[str] = []
    for key, value in extra.items():
        if value is None:
            continue
        parts.append(f"{key}={value}")
    return f" {' '.join(parts)}" if parts else ""


def log_exception(logger: logging.Logger, msg: str, *, extra: dict | None = None, exc: Exception | None = None) -> None:
    """
    Log an exception with context. Uses logger.exception for stack traces.
    """
    suffix = _format_extra(extra)
    if exc is not None:
        logger.error(f"{msg}{suffix}: {exc}", exc_info=exc)
        return
    logger.exception(f"{msg}{suffix}")


def guarded_call(
    name: str,
    fn: Callable[[], T],
    *,
    fallback: T | None = None,
    logger: logging.Logger | None = None,
    context: dict | None = None,
) -> T | None:
    """
    Execute fn with logging on failure. Returns fallback if provided.
    """
    try:
        return fn()
    except Exception as exc:
        if logger:
            log_exception(logger, f"{name} failed", extra=context or {}, exc=exc)
        return fallback
