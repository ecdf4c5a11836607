"""Cooperative cancellation for long-running sweeps."""

import threading


class CancellationToken:
    """Flag checked by the job runner between job boundaries.

    Setting the token never interrupts a job that is already fitting. The
    runner stops submitting work, cancels pending jobs, discards completed
    results and raises SweepCancelledError.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def reset(self) -> None:
        self._event.clear()
