"""Hysteresis-based switching between the slow and fast poll intervals."""

import logging

from netspeed.config import MonitorConfig

logger = logging.getLogger(__name__)


class AdaptiveInterval:
    """
    Chooses the poll interval from the latest smoothed rates.

    Switches to the fast interval once the busier direction reaches
    ``fast_threshold`` and back to the slow one only when it drops to
    ``slow_threshold``. Rates between the two keep the current interval.
    """

    def __init__(self, config: MonitorConfig | None = None) -> None:
        self._config = config or MonitorConfig()
        self._is_fast = False

    @property
    def is_fast(self) -> bool:
        return self._is_fast

    @property
    def seconds(self) -> float:
        """Current poll interval in seconds."""
        return self._config.fast_interval if self._is_fast else self._config.slow_interval

    def observe(self, upload: float, download: float) -> bool:
        """
        Feed the latest rates.

        Returns:
            True if the interval changed.
        """
        max_rate = max(upload, download)
        if self._is_fast:
            if max_rate <= self._config.slow_threshold:
                self._is_fast = False
                logger.info("Rate %.0f B/s, switching to slow interval %.2fs", max_rate, self.seconds)
                return True
        elif max_rate >= self._config.fast_threshold:
            self._is_fast = True
            logger.info("Rate %.0f B/s, switching to fast interval %.2fs", max_rate, self.seconds)
            return True
        return False

    def reset(self) -> None:
        self._is_fast = False
