"""Cooperative cancellation for long-running repository operations."""

import logging

logger = logging.getLogger(__name__)


class CancellationToken:
    """A shared flag polled by the repository before each remote call.

    Cancelling never interrupts a call that is already running; the
    operation stops at its next checkpoint.

    Example:
        >>> token = CancellationToken()
        >>> token.cancel()
        >>> token.is_cancelled
        True
    """

    def __init__(self):
        self._cancelled = False

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if not self._cancelled:
            logger.info("Cancellation requested")
        self._cancelled = True
