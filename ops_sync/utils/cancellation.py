# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - SPRINT 8: Cooperative Cancellation
# Tasks: T0045
# ═══════════════════════════════════════════════════════════════════════

"""
Cancellation token passed into every unit of work.

Cancellation is cooperative: workers check the token at safe points (top
of each endpoint/file loop, each poll tick). Nothing is preempted.
"""

import threading

from ..errors import OperationCancelled


class CancellationToken:
    """Thread-safe, one-way cancellation flag"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation (idempotent)"""
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("Operation cancelled by user")

