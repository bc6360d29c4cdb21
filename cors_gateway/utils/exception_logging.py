"""
Helpers for logging and describing upstream failures.

Transport libraries sometimes raise exceptions with an empty message (an
``httpx.ConnectTimeout`` raised by anyio, for instance) or wrap the real cause
in an exception group. The helpers below always produce something useful for
the ``details`` field of a 502 body and for the error log.
"""

import logging


def _safe_str(obj) -> str:
    """
    Convert an object to string without letting a broken ``__str__`` escape.

    Args:
        obj: The object to convert to string

    Returns:
        A string representation of the object
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _sub_exceptions(exception) -> list:
    try:
        return list(getattr(exception, "exceptions", None) or [])
    except Exception:
        return []


def format_exception_message(exception: BaseException) -> str:
    """
    Describe an exception for a client-facing error body.

    Empty messages fall back to the exception type name so the caller always
    learns what kind of failure happened. Exception groups list their members.

    Args:
        exception: The exception to format

    Returns:
        A non-empty description
    """
    if exception is None:
        return "None"

    message = _safe_str(exception).strip()
    if not message:
        message = type(exception).__name__

    sub_exceptions = _sub_exceptions(exception)
    if sub_exceptions:
        members = "; ".join(
            f"{type(sub).__name__}: {format_exception_message(sub)}"
            for sub in sub_exceptions
        )
        return f"{message} (Sub-exceptions: {members})"
    return message


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception, including the members of an exception group.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[HTTP-Forward]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    sub_exceptions = _sub_exceptions(exception)
    if not sub_exceptions:
        logger.log(
            level,
            f"{prefix} Exception: {format_exception_message(exception)}",
            exc_info=exception,
        )
        return

    logger.log(
        level,
        f"{prefix} Exception with {len(sub_exceptions)} sub-exceptions: "
        f"{_safe_str(exception)}",
    )
    for i, sub_exc in enumerate(sub_exceptions):
        logger.log(
            level,
            f"{prefix} Sub-exception {i+1}: {type(sub_exc).__name__}: "
            f"{_safe_str(sub_exc)}",
            exc_info=sub_exc,
        )
