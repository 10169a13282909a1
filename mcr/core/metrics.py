"""Usage accounting for generation calls."""

import threading
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict


class UsageMetrics(BaseModel):
    """Immutable snapshot of usage totals. Latency is in seconds."""
    model_config = ConfigDict(frozen=True)

    calls: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_latency: float = 0.0


class UsageCounter:
    """Lock-guarded usage totals.

    A session's counter forwards every addition to `on_update`, which the
    manager points at its own process-wide counter, so global totals are
    the sum of what sessions report.
    """

    def __init__(self, on_update: Optional[Callable[[int, int, int, float], None]] = None):
        self._lock = threading.Lock()
        self._calls = 0
        self._prompt_tokens = 0
        self._completion_tokens = 0
        self._latency = 0.0
        self._on_update = on_update

    def add(self, calls: int = 1, prompt_tokens: int = 0, completion_tokens: int = 0, latency: float = 0.0) -> None:
        with self._lock:
            self._calls += calls
            self._prompt_tokens += prompt_tokens
            self._completion_tokens += completion_tokens
            self._latency += latency
        if self._on_update is not None:
            self._on_update(calls, prompt_tokens, completion_tokens, latency)

    def snapshot(self) -> UsageMetrics:
        with self._lock:
            return UsageMetrics(
                calls=self._calls,
                prompt_tokens=self._prompt_tokens,
                completion_tokens=self._completion_tokens,
                total_latency=self._latency
            )
