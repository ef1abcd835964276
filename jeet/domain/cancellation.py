"""Signal de cancellation coopératif partagé entre producteurs et consommateurs."""

from __future__ import annotations

import threading


class CancellationToken:
    """Drapeau de cancellation thread-safe, testé entre deux unités de travail."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Attend au plus `timeout` secondes; retourne True si annulé entre-temps."""
        if timeout <= 0:
            return self._event.is_set()
        return self._event.wait(timeout)
