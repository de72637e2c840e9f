"""Call-leg correlation logging for tracing a single call across modules.

Every inbound event (utterance, digit, transfer outcome, webhook) sets the
call-leg id for its async context, so log lines from the orchestrator, the
transfer coordinator and the notification tasks can be tied together.

Usage:
    from switchboard.logging_context import get_call_logger, set_call_id

    set_call_id("CA1234")
    logger = get_call_logger(__name__)
    logger.info("Transfer started")  # record.call_id == "CA1234"
"""

import logging
from contextvars import ContextVar

_call_id: ContextVar[str] = ContextVar("call_id", default="NO_CALL_ID")


def set_call_id(call_id: str) -> None:
    """Set the correlation ID for the current async context."""
    _call_id.set(call_id)


def get_call_id() -> str:
    """Retrieve the current correlation ID."""
    return _call_id.get()


class CallIdFilter(logging.Filter):
    """Injects call_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.call_id = _call_id.get()  # type: ignore[attr-defined]
        return True


def get_call_logger(name: str) -> logging.Logger:
    """Return a logger with the CallIdFilter attached.

    The filter adds ``call_id`` to each record so formatters can
    include ``%(call_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, CallIdFilter) for f in logger.filters):
        logger.addFilter(CallIdFilter())
    return logger
