import random
from dataclasses import dataclass, field


@dataclass
class ExponentialBackoff:
    """
    Delay schedule for reconnect attempts.

    Each call to `next_delay()` returns the current delay plus a random
    jitter, then multiplies the delay by `factor` up to `maximum`:

        delay = current + uniform(0, jitter)
        current = min(current * factor, maximum)

    Jitter keeps several editors from hammering a restarted peer in
    lockstep. `reset()` goes back to `initial` after a successful
    connect.
    """

    initial: float = 0.5
    """Delay (in seconds) before the first retry."""

    maximum: float = 30.0
    """Upper bound of the delay, jitter excluded."""

    factor: float = 2.0
    """Growth applied after each retry."""

    jitter: float = 0.5
    """Largest random amount added to a delay."""

    attempts: int = field(default=0, init=False)
    """Number of delays handed out since the last reset."""

    _current: float = field(default=0.0, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.initial < 0 or self.maximum < self.initial:
            raise ValueError("Backoff requires 0 <= initial <= maximum")
        if self.factor < 1:
            raise ValueError("Backoff factor must be >= 1")
        self._current = self.initial

    def next_delay(self) -> float:
        delay = self._current
        self._current = min(self._current * self.factor, self.maximum)
        self.attempts += 1

        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)

        return delay

    def reset(self) -> None:
        self._current = self.initial
        self.attempts = 0
