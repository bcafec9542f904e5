import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class ThrottlePolicy:
    """
    Pacing for sequential loops: how long to pause between items and how many
    items may be in flight at once. Only sequential execution is supported.
    """

    delay: float = 0.0
    max_concurrent: int = 1

    def __post_init__(self) -> None:
        if self.delay < 0:
            raise ValueError("delay must be >= 0")
        if self.max_concurrent != 1:
            raise ValueError("only max_concurrent=1 is supported")


GENERATION_THROTTLE = ThrottlePolicy(delay=0.01)
EXPORT_THROTTLE = ThrottlePolicy(delay=0.6)


class CancellationToken:
    """Cooperative cancellation flag checked between loop iterations."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
