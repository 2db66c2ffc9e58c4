"""Global admission gate enforcing the total access count limit.

Every inbound request takes the next ordinal from a process-wide counter,
whether or not it is admitted. Once the counter passes the configured
limit, all further requests are rejected before any upstream call.
"""

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class AdmissionResult:
    ordinal: int
    admitted: bool
    limit: int | None  # None = unlimited


class AdmissionGate:
    """Lock-protected request counter with an optional ceiling."""

    def __init__(self, limit: int | None = None):
        if limit is not None and limit < 0:
            raise ValueError(f"Access count limit must be non-negative, got {limit}")
        self._limit = limit
        self._counter = 0
        self._lock = threading.Lock()

    @property
    def limit(self) -> int | None:
        return self._limit

    @property
    def count(self) -> int:
        """Number of ordinals handed out so far."""
        with self._lock:
            return self._counter

    def admit(self) -> AdmissionResult:
        """Consume the next ordinal and decide admission in one atomic step."""
        with self._lock:
            self._counter += 1
            ordinal = self._counter
            admitted = self._limit is None or ordinal <= self._limit
        return AdmissionResult(ordinal=ordinal, admitted=admitted, limit=self._limit)
