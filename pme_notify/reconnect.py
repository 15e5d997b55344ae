# =============================================================================
# PME Notify -- Reconnect Policy
# =============================================================================

from __future__ import annotations

from .types import ReconnectConfig


class ReconnectPolicy:
    """Exponential backoff calculator for reconnect timers.

    ``next_delay()`` hands out the current delay and doubles it for the
    following retry, capped at *max_delay*. ``reset()`` runs on every
    successful open.

    Args:
        config: Backoff settings. Defaults to 1s initial, 30s cap, factor 2.
    """

    def __init__(self, config: ReconnectConfig | None = None) -> None:
        cfg = config or ReconnectConfig()
        if cfg.initial_delay <= 0 or cfg.max_delay < cfg.initial_delay:
            raise ValueError(
                f"Invalid backoff bounds: initial={cfg.initial_delay} max={cfg.max_delay}"
            )
        if cfg.factor < 1.0:
            raise ValueError(f"Backoff factor must be >= 1, got {cfg.factor}")

        self._initial_delay = cfg.initial_delay
        self._max_delay = cfg.max_delay
        self._factor = cfg.factor
        self._current_delay = cfg.initial_delay

    @property
    def initial_delay(self) -> float:
        return self._initial_delay

    @property
    def max_delay(self) -> float:
        return self._max_delay

    @property
    def current_delay(self) -> float:
        return self._current_delay

    def next_delay(self) -> float:
        delay = self._current_delay
        self._current_delay = min(self._current_delay * self._factor, self._max_delay)
        return delay

    def reset(self) -> None:
        self._current_delay = self._initial_delay
