"""
Cooperative cancellation for MCMC runs.

The scheduler checks the token once per outer iteration, after the
reduction step, so a chain step that is already running always completes
and everything recorded so far is kept.
"""

import threading


class CancellationToken:
    """Thread-safe cancellation flag passed to MCMCSampler.sample()."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request that the run stop after the current outer iteration."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel_after(self, seconds: float) -> threading.Timer:
        """
        Cancel from a background timer.

        Returns the started timer so the caller can cancel it if the run
        finishes first.
        """
        timer = threading.Timer(seconds, self.cancel)
        timer.daemon = True
        timer.start()
        return timer

    def __repr__(self):
        return f"CancellationToken(cancelled={self.cancelled})"
