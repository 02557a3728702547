from __future__ import annotations


class CancellationToken:
    """Cooperative cancellation flag passed explicitly through a turn.

    Setting it never interrupts a judgment call already in flight; the
    orchestrator checks it before each phase and each character or pair.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str | None = None) -> None:
        self._cancelled = True
        self.reason = reason

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"


class ExtractionAborted(Exception):
    """Raised inside the orchestrator when the token is found set."""
